"""
Signature parser: turns declaration text, or a ``def`` node found while
collecting a module, into a Declaration.

Parsing and rendering are delegated to the standard ``ast`` module; this
module only decides what the structure means: parameter kinds, the receiver
parameter, the visibility and the return type.
"""

from __future__ import annotations

import ast
import inspect
from textwrap import dedent
from typing import Iterable, Optional

from covers.declaration import Declaration, Parameter, decorator_name, visibility_of
from covers.errors import MalformedSignature

RECEIVER_ALIASES = ("self", "this")

FUNCTION_NODES = (ast.FunctionDef, ast.AsyncFunctionDef)


class ReceiverPredicate:
    """
    Decide whether a parameter is the receiver of its function.

    Only the first parameter can be a receiver. It is one when its name is a
    receiver alias, when its annotation names exactly the enclosing class, or
    when the function is a classmethod.
    """

    def __init__(self, aliases: Iterable[str] = RECEIVER_ALIASES):
        self.aliases = frozenset(aliases)

    def __call__(
        self,
        position: int,
        name: str,
        annotation: Optional[str],
        enclosing_type: Optional[str],
        is_classmethod: bool = False,
    ) -> bool:
        if position != 0:
            return False
        if is_classmethod or name in self.aliases:
            return True
        if enclosing_type and annotation:
            short_type = enclosing_type.rpartition(".")[2]
            return annotation.strip("'\"") == short_type
        return False


DEFAULT_PREDICATE = ReceiverPredicate()


def _unparse(node: Optional[ast.AST]) -> Optional[str]:
    if node is None:
        return None
    return ast.unparse(node)


def parse_parameters(
    arguments: ast.arguments,
    enclosing_type: Optional[str] = None,
    is_classmethod: bool = False,
    predicate: ReceiverPredicate = DEFAULT_PREDICATE,
) -> list[Parameter]:
    """Flatten an ``ast.arguments`` node into Parameters, in declaration order."""
    positional = [(arg, inspect.Parameter.POSITIONAL_ONLY) for arg in arguments.posonlyargs]
    positional += [(arg, inspect.Parameter.POSITIONAL_OR_KEYWORD) for arg in arguments.args]
    # Defaults align with the tail of the positional parameters
    defaults = [None] * (len(positional) - len(arguments.defaults)) + list(arguments.defaults)

    parameters = []
    for position, ((arg, kind), default) in enumerate(zip(positional, defaults)):
        annotation = _unparse(arg.annotation)
        is_receiver = predicate(position, arg.arg, annotation, enclosing_type, is_classmethod)
        parameters.append(
            Parameter(arg.arg, kind, annotation, _unparse(default), is_receiver)
        )

    if arguments.vararg is not None:
        parameters.append(
            Parameter(
                arguments.vararg.arg,
                inspect.Parameter.VAR_POSITIONAL,
                _unparse(arguments.vararg.annotation),
            )
        )
    for arg, default in zip(arguments.kwonlyargs, arguments.kw_defaults):
        parameters.append(
            Parameter(
                arg.arg,
                inspect.Parameter.KEYWORD_ONLY,
                _unparse(arg.annotation),
                _unparse(default),
            )
        )
    if arguments.kwarg is not None:
        parameters.append(
            Parameter(
                arguments.kwarg.arg,
                inspect.Parameter.VAR_KEYWORD,
                _unparse(arguments.kwarg.annotation),
            )
        )
    return parameters


def contains_yield(node: ast.AST) -> bool:
    """True if the function body yields, ignoring nested functions and classes."""
    pending = list(ast.iter_child_nodes(node))
    while pending:
        child = pending.pop()
        if isinstance(child, (ast.Yield, ast.YieldFrom)):
            return True
        if isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef, ast.Lambda)):
            continue
        pending.extend(ast.iter_child_nodes(child))
    return False


def declaration_from_node(
    node: ast.FunctionDef | ast.AsyncFunctionDef,
    module: str = "",
    qualname: Optional[str] = None,
    parent_kind: str = "module",
    enclosing_type: Optional[str] = None,
    filename: str = "<string>",
    predicate: ReceiverPredicate = DEFAULT_PREDICATE,
    decorators: Optional[list[ast.expr]] = None,
) -> Declaration:
    """Build the Declaration of a ``def`` node located by the collector."""
    if not isinstance(node, FUNCTION_NODES):
        raise MalformedSignature(
            f"expected a function definition, got {type(node).__name__}",
            filename=filename,
            lineno=getattr(node, "lineno", None),
        )
    if decorators is None:
        decorators = list(node.decorator_list)
    is_classmethod = any(decorator_name(item) == "classmethod" for item in decorators)
    in_class = parent_kind == "class"
    parameters = parse_parameters(
        node.args,
        enclosing_type if in_class else None,
        is_classmethod and in_class,
        predicate,
    )
    return Declaration(
        name=node.name,
        visibility=visibility_of(node.name, in_class),
        parameters=parameters,
        return_type=_unparse(node.returns),
        body=node.body,
        module=module,
        qualname=qualname or node.name,
        parent_kind=parent_kind,
        enclosing_type=enclosing_type if in_class else None,
        is_async=isinstance(node, ast.AsyncFunctionDef),
        is_generator=contains_yield(node),
        decorators=decorators,
        filename=filename,
        lineno=node.lineno,
        node=node,
    )


def _parse_function(text: str, filename: str) -> ast.AST:
    source = dedent(text).strip()
    try:
        tree = ast.parse(source, filename)
    except SyntaxError as err:
        # A bare signature has no body: give it one and retry
        stub = source if source.endswith(":") else source + ":"
        try:
            tree = ast.parse(stub + " ...", filename)
        except SyntaxError:
            raise MalformedSignature(
                f"cannot parse declaration: {err.msg}",
                filename=filename,
                lineno=err.lineno,
            ) from err

    functions = [item for item in tree.body if isinstance(item, FUNCTION_NODES)]
    if len(functions) != 1 or len(tree.body) != 1:
        raise MalformedSignature(
            "declaration text must hold exactly one function definition",
            filename=filename,
        )
    return functions[0]


def parse_declaration(
    text: str,
    enclosing_type: Optional[str] = None,
    module: str = "",
    filename: str = "<string>",
    predicate: ReceiverPredicate = DEFAULT_PREDICATE,
) -> Declaration:
    """
    Parse raw declaration text into a Declaration.

    ``enclosing_type`` names the class whose body holds the declaration, if
    any; it enables receiver detection by annotation and class-private
    visibility.
    """
    node = _parse_function(text, filename)
    parent_kind = "class" if enclosing_type else "module"
    qualname = f"{enclosing_type}.{node.name}" if enclosing_type else node.name
    return declaration_from_node(
        node,
        module=module,
        qualname=qualname,
        parent_kind=parent_kind,
        enclosing_type=enclosing_type,
        filename=filename,
        predicate=predicate,
    )
