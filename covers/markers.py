"""
The annotation surface of covers.

``mocked`` marks a mock point and names the substitute bound to it; ``mock``
marks a mock candidate. Both are read from the syntax tree by the build
pass, which removes them. When a module runs without being rewritten they
are identity decorators.
"""

from __future__ import annotations

import ast
from dataclasses import dataclass, field
from typing import Callable, Optional

from covers.errors import MalformedSignature

PACKAGE_NAME = "covers"
MOCK_POINT = "mocked"
MOCK_CANDIDATE = "mock"
SCOPE_IMPL = "impl"


def mocked(target=None, *, scope: Optional[str] = None) -> Callable:
    """Mark the decorated function as a mock point bound to ``target``."""
    if scope is not None and str(scope).lower() != SCOPE_IMPL:
        raise ValueError(f"scope must be {SCOPE_IMPL!r}, not {scope!r}")

    def decorator(func):
        return func

    return decorator


def mock(func=None):
    """Mark the decorated function as usable as a substitute."""
    if func is None:
        return mock
    return func


@dataclass
class MarkerNames:
    """Names under which a module can refer to the markers."""

    mock_point: set[str] = field(default_factory=set)
    candidate: set[str] = field(default_factory=set)
    modules: set[str] = field(default_factory=set)

    @classmethod
    def from_tree(cls, tree: ast.Module) -> "MarkerNames":
        names = cls()
        for node in tree.body:
            if isinstance(node, ast.ImportFrom) and node.module == PACKAGE_NAME and not node.level:
                for alias in node.names:
                    if alias.name == MOCK_POINT:
                        names.mock_point.add(alias.asname or alias.name)
                    elif alias.name == MOCK_CANDIDATE:
                        names.candidate.add(alias.asname or alias.name)
            elif isinstance(node, ast.Import):
                for alias in node.names:
                    if alias.name == PACKAGE_NAME:
                        names.modules.add(alias.asname or alias.name)
        return names

    def __bool__(self):
        return bool(self.mock_point or self.candidate or self.modules)

    def kind_of(self, node: ast.expr) -> Optional[str]:
        """MOCK_POINT, MOCK_CANDIDATE or None for a decorator expression."""
        target = node.func if isinstance(node, ast.Call) else node
        if isinstance(target, ast.Name):
            if target.id in self.mock_point:
                return MOCK_POINT
            if target.id in self.candidate:
                return MOCK_CANDIDATE
        elif (
            isinstance(target, ast.Attribute)
            and isinstance(target.value, ast.Name)
            and target.value.id in self.modules
            and target.attr in (MOCK_POINT, MOCK_CANDIDATE)
        ):
            return target.attr
        return None


@dataclass
class Marker:
    """A parsed mock-point marker."""

    target_path: Optional[str]
    scope_hint: Optional[str] = None
    lineno: int = 0


def dotted_path(node: ast.expr) -> Optional[str]:
    """'a.b.c' for a Name/Attribute chain, None for any other expression."""
    parts = []
    while isinstance(node, ast.Attribute):
        parts.append(node.attr)
        node = node.value
    if not isinstance(node, ast.Name):
        return None
    parts.append(node.id)
    return ".".join(reversed(parts))


def _is_dotted_identifier(text: str) -> bool:
    return bool(text) and all(part.isidentifier() for part in text.split("."))


def parse_mock_point(node: ast.expr, filename: str = "<string>") -> Marker:
    """Read the target path and options of a ``@mocked(...)`` decorator."""
    lineno = getattr(node, "lineno", 0)
    if not isinstance(node, ast.Call):
        raise MalformedSignature(
            f"@{MOCK_POINT} must be called: @{MOCK_POINT}(target)",
            filename=filename,
            lineno=lineno,
        )
    if len(node.args) > 1:
        raise MalformedSignature(
            f"@{MOCK_POINT} takes a single target path, got {len(node.args)} arguments",
            filename=filename,
            lineno=lineno,
        )

    target_path = None
    if node.args:
        arg = node.args[0]
        if isinstance(arg, ast.Constant) and arg.value is None:
            target_path = None
        elif isinstance(arg, ast.Constant) and isinstance(arg.value, str):
            target_path = arg.value.strip()
            if not _is_dotted_identifier(target_path):
                raise MalformedSignature(
                    f"target path {arg.value!r} is not a dotted identifier",
                    filename=filename,
                    lineno=lineno,
                )
        else:
            target_path = dotted_path(arg)
            if target_path is None:
                raise MalformedSignature(
                    f"target must be a name or dotted path, not {ast.unparse(arg)!r}",
                    filename=filename,
                    lineno=lineno,
                )

    scope_hint = None
    for keyword in node.keywords:
        if keyword.arg != "scope":
            name = keyword.arg or "**"
            raise MalformedSignature(
                f"unknown option {name!r}: options are written as scope=\"{SCOPE_IMPL}\"",
                filename=filename,
                lineno=lineno,
            )
        value = keyword.value
        if not (isinstance(value, ast.Constant) and isinstance(value.value, str)):
            raise MalformedSignature(
                f"scope option must be the string {SCOPE_IMPL!r}",
                filename=filename,
                lineno=lineno,
            )
        scope_hint = value.value.strip().lower()
        if scope_hint != SCOPE_IMPL:
            raise MalformedSignature(
                f"unknown scope {value.value!r}, expected {SCOPE_IMPL!r}",
                filename=filename,
                lineno=lineno,
            )
    return Marker(target_path, scope_hint, lineno)


def parse_markers(
    decorators: list[ast.expr],
    names: MarkerNames,
    filename: str = "<string>",
) -> tuple[Optional[Marker], bool, list[ast.expr]]:
    """
    Split a decorator list into (mock-point marker, is candidate, remaining).

    A function carries at most one marker of either kind.
    """
    marker = None
    is_candidate = False
    remaining = []
    for node in decorators:
        kind = names.kind_of(node)
        if kind is None:
            remaining.append(node)
            continue
        if marker is not None or is_candidate:
            raise MalformedSignature(
                "a function takes at most one covers marker",
                filename=filename,
                lineno=node.lineno,
            )
        if kind == MOCK_POINT:
            marker = parse_mock_point(node, filename)
        else:
            if isinstance(node, ast.Call) and (node.args or node.keywords):
                raise MalformedSignature(
                    f"@{MOCK_CANDIDATE} takes no arguments",
                    filename=filename,
                    lineno=node.lineno,
                )
            is_candidate = True
    return marker, is_candidate, remaining
