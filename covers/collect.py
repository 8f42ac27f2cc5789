"""
Collection pass: walk the syntax tree of one module and record what the
build needs from it, without changing the tree.
"""

from __future__ import annotations

import ast
from dataclasses import dataclass, field
from typing import Iterator, Optional

from covers.declaration import Declaration
from covers.errors import MalformedSignature
from covers.markers import Marker, MarkerNames, parse_markers
from covers.signature import DEFAULT_PREDICATE, ReceiverPredicate, declaration_from_node

COMPOUND_FIELDS = ("body", "orelse", "finalbody", "handlers", "cases")
SCOPE_NODES = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef, ast.Lambda)
COMPREHENSIONS = (ast.ListComp, ast.SetComp, ast.DictComp, ast.GeneratorExp)
TRY_NODES = (ast.Try, ast.TryStar) if hasattr(ast, "TryStar") else (ast.Try,)


@dataclass
class MockPoint:
    declaration: Declaration
    marker: Marker
    node: ast.AST = field(repr=False)


@dataclass
class ModuleUnit:
    """Everything collected from one module of the build unit."""

    module_name: str
    filename: str
    tree: ast.Module = field(repr=False)
    is_package: bool = False
    imports: dict[str, str] = field(default_factory=dict)
    declarations: list[Declaration] = field(default_factory=list, repr=False)
    mock_points: list[MockPoint] = field(default_factory=list)
    candidates: list[Declaration] = field(default_factory=list)
    # '' for the module, 'Struct' for a class body, 'outer.<locals>' for a function
    scope_names: dict[str, set[str]] = field(default_factory=dict, repr=False)

    def mock_point_of(self, node: ast.AST) -> Optional[MockPoint]:
        for mock_point in self.mock_points:
            if mock_point.node is node:
                return mock_point
        return None

    def candidate_of(self, node: ast.AST) -> Optional[Declaration]:
        for candidate in self.candidates:
            if candidate.node is node:
                return candidate
        return None


def iter_statements(statements: list[ast.stmt]) -> Iterator[ast.stmt]:
    """Statements of one scope, through compound statements but not nested scopes."""
    pending = list(reversed(statements))
    while pending:
        statement = pending.pop()
        yield statement
        if isinstance(statement, SCOPE_NODES):
            continue
        children = []
        for name in COMPOUND_FIELDS:
            for child in getattr(statement, name, None) or ():
                if isinstance(child, (ast.ExceptHandler, ast.match_case)):
                    children.extend(child.body)
                else:
                    children.append(child)
        pending.extend(reversed(children))


def _target_names(node: ast.AST) -> Iterator[str]:
    pending = [node]
    while pending:
        child = pending.pop()
        if isinstance(child, SCOPE_NODES + COMPREHENSIONS):
            continue
        if isinstance(child, ast.Name) and isinstance(child.ctx, ast.Store):
            yield child.id
        elif isinstance(child, (ast.MatchAs, ast.MatchStar)) and child.name:
            yield child.name
        elif isinstance(child, ast.MatchMapping) and child.rest:
            yield child.rest
        pending.extend(ast.iter_child_nodes(child))


def bound_names(statements: list[ast.stmt]) -> set[str]:
    """
    Names bound by the statements of one scope.

    >>> sorted(bound_names(ast.parse("import os.path\\nx = 1\\ndef _f(): y = 2").body))
    ['_f', 'os', 'x']
    """
    names = set()
    for statement in iter_statements(statements):
        if isinstance(statement, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            names.add(statement.name)
        elif isinstance(statement, ast.Import):
            for alias in statement.names:
                names.add(alias.asname or alias.name.partition(".")[0])
        elif isinstance(statement, ast.ImportFrom):
            for alias in statement.names:
                if alias.name != "*":
                    names.add(alias.asname or alias.name)
        elif isinstance(statement, TRY_NODES):
            names.update(handler.name for handler in statement.handlers if handler.name)
        if not isinstance(statement, SCOPE_NODES):
            for child in ast.iter_child_nodes(statement):
                if not isinstance(child, (ast.stmt, ast.ExceptHandler)):
                    names.update(_target_names(child))
    return names


def parameter_names(arguments: ast.arguments) -> set[str]:
    args = arguments.posonlyargs + arguments.args + arguments.kwonlyargs
    names = {arg.arg for arg in args}
    if arguments.vararg is not None:
        names.add(arguments.vararg.arg)
    if arguments.kwarg is not None:
        names.add(arguments.kwarg.arg)
    return names


def resolve_relative(module_name: str, is_package: bool, level: int, target: Optional[str]):
    """
    Absolute name of a relative import.

    >>> resolve_relative("pkg.main", False, 1, "mocks")
    'pkg.mocks'
    >>> resolve_relative("pkg", True, 1, None)
    'pkg'
    """
    if not level:
        return target
    parts = module_name.split(".") if module_name else []
    if not is_package:
        parts = parts[:-1]
    if level - 1 > len(parts):
        return None
    parts = parts[: len(parts) - (level - 1)]
    base = ".".join(parts)
    if target:
        return f"{base}.{target}" if base else target
    return base or None


def import_table(tree: ast.Module, module_name: str, is_package: bool) -> dict[str, str]:
    """Map each name bound by a module-level import to its absolute dotted path."""
    imports = {}
    for statement in iter_statements(tree.body):
        if isinstance(statement, ast.Import):
            for alias in statement.names:
                if alias.asname:
                    imports[alias.asname] = alias.name
                else:
                    head = alias.name.partition(".")[0]
                    imports[head] = head
        elif isinstance(statement, ast.ImportFrom):
            base = resolve_relative(module_name, is_package, statement.level, statement.module)
            if base is None:
                continue
            for alias in statement.names:
                if alias.name != "*":
                    imports[alias.asname or alias.name] = f"{base}.{alias.name}"
    return imports


class Collector(ast.NodeVisitor):
    """
    Record the declarations, mock points and candidates of a module, with
    the qualified name each function will have.
    """

    def __init__(self, unit: ModuleUnit, predicate: ReceiverPredicate = DEFAULT_PREDICATE):
        self.unit = unit
        self.predicate = predicate
        self.names = MarkerNames.from_tree(unit.tree)
        # (qualname prefix, parent kind, enclosing class)
        self.stack = [("", "module", None)]

    @classmethod
    def collect(cls, unit: ModuleUnit, predicate: ReceiverPredicate = DEFAULT_PREDICATE):
        collector = cls(unit, predicate)
        unit.imports = import_table(unit.tree, unit.module_name, unit.is_package)
        unit.scope_names[""] = bound_names(unit.tree.body)
        collector.visit(unit.tree)
        return unit

    def _qualname(self, name):
        prefix = self.stack[-1][0]
        return f"{prefix}.{name}" if prefix else name

    def visit_FunctionDef(self, node):
        prefix, parent_kind, enclosing_type = self.stack[-1]
        filename = self.unit.filename
        if self.names:
            marker, is_candidate, remaining = parse_markers(node.decorator_list, self.names, filename)
        else:
            marker, is_candidate, remaining = None, False, list(node.decorator_list)

        qualname = self._qualname(node.name)
        declaration = declaration_from_node(
            node,
            module=self.unit.module_name,
            qualname=qualname,
            parent_kind=parent_kind,
            enclosing_type=enclosing_type,
            filename=filename,
            predicate=self.predicate,
            decorators=remaining,
        )
        self.unit.declarations.append(declaration)
        if marker is not None:
            self.unit.mock_points.append(MockPoint(declaration, marker, node))
        elif is_candidate:
            self.unit.candidates.append(declaration)

        for item in node.decorator_list:
            self.visit(item)
        locals_path = f"{qualname}.<locals>"
        self.unit.scope_names[locals_path] = bound_names(node.body) | parameter_names(node.args)
        self.stack.append((locals_path, "function", None))
        try:
            for statement in node.body:
                self.visit(statement)
        finally:
            self.stack.pop()

    visit_AsyncFunctionDef = visit_FunctionDef

    def visit_ClassDef(self, node):
        if self.names:
            for item in node.decorator_list:
                if self.names.kind_of(item) is not None:
                    raise MalformedSignature(
                        f"class {node.name!r} cannot be mocked: only functions take covers markers",
                        filename=self.unit.filename,
                        lineno=item.lineno,
                    )
        qualname = self._qualname(node.name)
        self.unit.scope_names[qualname] = bound_names(node.body)
        self.stack.append((qualname, "class", qualname))
        try:
            for statement in node.body:
                self.visit(statement)
        finally:
            self.stack.pop()

    def visit_Lambda(self, node):
        # No def statement can hide in a lambda
        return
