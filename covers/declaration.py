"""
Data model shared by the covers build pass.

A Declaration is the structured view of one ``def`` statement. Mock points
and candidates are Declarations carrying a marker; MockBinding and
ResolvedPath are transient artifacts of one build.
"""

from __future__ import annotations

import ast
import inspect
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional

POSITIONAL_KINDS = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
)


class Visibility(IntEnum):
    SCOPED = 0
    PRIVATE = 1
    PUBLIC = 2


def visibility_of(name: str, in_class: bool = False) -> Visibility:
    """
    Visibility implied by the spelling of a name.

    >>> visibility_of("foo")
    <Visibility.PUBLIC: 2>
    >>> visibility_of("_foo")
    <Visibility.PRIVATE: 1>
    >>> visibility_of("__foo", in_class=True)
    <Visibility.SCOPED: 0>
    """
    if len(name) > 4 and name.startswith("__") and name.endswith("__"):
        return Visibility.PUBLIC
    if in_class and name.startswith("__"):
        return Visibility.SCOPED
    if name.startswith("_"):
        return Visibility.PRIVATE
    return Visibility.PUBLIC


class ScopeKind(Enum):
    FREE = "Free"
    MODULE = "Module"
    TYPE_IMPL = "TypeImpl"


@dataclass(frozen=True)
class Scope:
    kind: ScopeKind
    path: str = ""
    is_static: bool = False

    def __str__(self):
        if self.kind is ScopeKind.FREE:
            return "Free"
        if self.kind is ScopeKind.MODULE:
            return f"Module({self.path})"
        path = self.path or "<unknown>"
        if self.is_static:
            return f"TypeImpl({path}, static)"
        return f"TypeImpl({path})"


FREE = Scope(ScopeKind.FREE)


@dataclass(frozen=True)
class Parameter:
    name: str
    kind: inspect._ParameterKind = inspect.Parameter.POSITIONAL_OR_KEYWORD
    annotation: Optional[str] = None
    default: Optional[str] = None
    is_receiver: bool = False

    @property
    def forwarded(self) -> str:
        """Render the argument that forwards this parameter unchanged."""
        if self.kind is inspect.Parameter.VAR_POSITIONAL:
            return f"*{self.name}"
        if self.kind is inspect.Parameter.VAR_KEYWORD:
            return f"**{self.name}"
        if self.kind is inspect.Parameter.KEYWORD_ONLY:
            return f"{self.name}={self.name}"
        return self.name


@dataclass
class Declaration:
    name: str
    visibility: Visibility
    parameters: list[Parameter]
    return_type: Optional[str]
    body: list[ast.stmt] = field(default_factory=list, repr=False)
    module: str = ""
    qualname: str = ""
    parent_kind: str = "module"
    enclosing_type: Optional[str] = None
    is_async: bool = False
    is_generator: bool = False
    decorators: list[ast.expr] = field(default_factory=list, repr=False)
    filename: str = "<string>"
    lineno: int = 0
    node: Optional[ast.AST] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        if not self.qualname:
            self.qualname = self.name
        receivers = [index for index, param in enumerate(self.parameters) if param.is_receiver]
        if receivers and receivers != [0]:
            # Imported here: errors.py formats Declarations, not the reverse.
            from covers.errors import MalformedSignature

            raise MalformedSignature(
                "only the first parameter may be a receiver",
                declaration=self.name,
                filename=self.filename,
                lineno=self.lineno,
            )

    @property
    def key(self) -> tuple[str, str]:
        return (self.module, self.qualname)

    @property
    def parent_path(self) -> str:
        """Qualified name of the enclosing scope, '' at module level."""
        return self.qualname.rpartition(".")[0]

    @property
    def receiver(self) -> Optional[Parameter]:
        if self.parameters and self.parameters[0].is_receiver:
            return self.parameters[0]
        return None

    @property
    def has_receiver(self) -> bool:
        return self.receiver is not None

    @property
    def is_classmethod(self) -> bool:
        return any(decorator_name(node) == "classmethod" for node in self.decorators)

    @property
    def is_staticmethod(self) -> bool:
        return any(decorator_name(node) == "staticmethod" for node in self.decorators)

    @property
    def enclosing_scope(self) -> Scope:
        """Scope implied by where the declaration sits, before classification."""
        if self.parent_kind == "class":
            return Scope(ScopeKind.TYPE_IMPL, self.enclosing_type or "", not self.has_receiver)
        if self.parent_kind == "module" and self.module:
            return Scope(ScopeKind.MODULE, self.module)
        return FREE

    def call_parameters(self) -> list[Parameter]:
        """Parameters a caller supplies when calling through a class or module path."""
        if self.is_classmethod:
            return self.parameters[1:]
        return list(self.parameters)


def decorator_name(node: ast.expr) -> str:
    """Last component of a decorator expression: 'x' for @a.b.x and @a.b.x(...)."""
    if isinstance(node, ast.Call):
        node = node.func
    if isinstance(node, ast.Attribute):
        return node.attr
    if isinstance(node, ast.Name):
        return node.id
    return ""


@dataclass
class MockBinding:
    declaration: Declaration
    target_path: Optional[str]
    explicit_scope_hint: Optional[str] = None
    scope: Optional[Scope] = None

    @property
    def is_bound(self) -> bool:
        return self.target_path is not None


@dataclass(frozen=True)
class ResolvedPath:
    expression: str
    module: Optional[str] = None
    qualname: Optional[str] = None
    declaration: Optional[Declaration] = field(default=None, compare=False)
    deferred: bool = False

    def __str__(self):
        if self.deferred:
            return f"{self.expression} (deferred)"
        if self.module:
            return f"{self.module}:{self.qualname}"
        return self.qualname or self.expression
