"""
Dispatch generator.

Replaces one mock point by two definitions: the renamed original, holding the
untouched body under the mangled name, and the dispatch wrapper, exposed
under the public name, whose only statement returns a call to the branch
selected by the build profile. Only the selected branch is emitted.
"""

from __future__ import annotations

import ast
import copy
import logging
from dataclasses import dataclass
from typing import Optional

from covers.config import Profile
from covers.declaration import Declaration, ResolvedPath, Scope, decorator_name
from covers.scope import CLASS_CELL
from covers.write_code import CodeTemplate

logger = logging.getLogger(__name__)

WRAPPER = CodeTemplate(
    """
    {async_prefix}def {name}{type_params}({parameters}){returns}:
        return {await_prefix}{call}
    """
)


@dataclass
class DispatchPlan:
    declaration: Declaration
    scope: Scope
    mangled_name: str
    target: Optional[ResolvedPath] = None


def forward_arguments(declaration: Declaration) -> str:
    """
    Arguments forwarding every parameter of the declaration unchanged.

    >>> from covers.signature import parse_declaration
    >>> forward_arguments(parse_declaration("def f(self, a, /, b, *args, c, **kw): pass"))
    'self, a, b, *args, c=c, **kw'
    """
    return ", ".join(param.forwarded for param in declaration.parameters)


def is_docstring(statement: ast.stmt) -> bool:
    return (
        isinstance(statement, ast.Expr)
        and isinstance(statement.value, ast.Constant)
        and isinstance(statement.value.value, str)
    )


def relocate(tree: ast.AST, source: ast.AST) -> ast.AST:
    """Give every node of ``tree`` the location of ``source``."""
    for node in ast.walk(tree):
        if "lineno" in node._attributes:
            ast.copy_location(node, source)
    return tree


class DispatchGenerator:
    def __init__(self, profile: Profile = Profile.DEBUG):
        self.profile = profile

    def original_expression(self, plan: DispatchPlan) -> str:
        if plan.declaration.parent_kind == "class":
            return f"{CLASS_CELL}.{plan.mangled_name}"
        return plan.mangled_name

    def branch_expression(self, plan: DispatchPlan) -> str:
        if self.profile is Profile.TEST and plan.target is not None:
            return plan.target.expression
        return self.original_expression(plan)

    def render_wrapper(self, plan: DispatchPlan, node: ast.AST) -> str:
        declaration = plan.declaration
        # Generators are returned unchanged: only plain coroutines are awaited
        awaits = declaration.is_async and not declaration.is_generator
        type_params = getattr(node, "type_params", None) or []
        return WRAPPER.render(
            async_prefix="async " if awaits else "",
            await_prefix="await " if awaits else "",
            name=declaration.name,
            type_params=(
                "[%s]" % ", ".join(ast.unparse(param) for param in type_params)
                if type_params
                else ""
            ),
            parameters=ast.unparse(node.args),
            returns=f" -> {declaration.return_type}" if declaration.return_type else "",
            call=f"{self.branch_expression(plan)}({forward_arguments(declaration)})",
        )

    def renamed_original(self, plan: DispatchPlan, node: ast.AST) -> ast.AST:
        original = copy.copy(node)
        original.name = plan.mangled_name
        original.decorator_list = [
            item for item in node.decorator_list if decorator_name(item) == "staticmethod"
        ]
        return original

    def wrapper(self, plan: DispatchPlan, node: ast.AST) -> ast.AST:
        text = self.render_wrapper(plan, node)
        wrapper = ast.parse(text, plan.declaration.filename).body[0]
        relocate(wrapper, node)
        wrapper.decorator_list = list(plan.declaration.decorators)
        if node.body and is_docstring(node.body[0]):
            wrapper.body.insert(0, copy.deepcopy(node.body[0]))
        return wrapper

    def generate(self, plan: DispatchPlan, node: ast.AST) -> tuple[ast.AST, ast.AST]:
        """Return (renamed original, dispatch wrapper) for the def ``node``."""
        original = self.renamed_original(plan, node)
        wrapper = self.wrapper(plan, node)
        logger.debug(
            "%s:%s: %s in %s dispatches to %s",
            plan.declaration.filename,
            plan.declaration.lineno,
            plan.declaration.qualname,
            plan.scope,
            self.branch_expression(plan),
        )
        return original, wrapper
