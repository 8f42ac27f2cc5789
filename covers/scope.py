"""
Scope resolution.

Classifies each mock point as a free function, a module function or a
function of a class body, and finds the declaration a binding's target path
refers to. Ambiguity is always an error: guessing a scope or a target would
produce a dispatch wrapper that compiles but calls the wrong function.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from covers.declaration import (
    FREE,
    Declaration,
    MockBinding,
    ResolvedPath,
    Scope,
    ScopeKind,
)
from covers.errors import MalformedSignature, MissingScopeHint, UnresolvedTarget
from covers.markers import SCOPE_IMPL

if TYPE_CHECKING:
    from covers.registry import SymbolIndex

logger = logging.getLogger(__name__)

CLASS_CELL = "__class__"
LOCALS = "<locals>"


def classify(declaration: Declaration, hint: Optional[str] = None) -> Scope:
    """Classify a mock point into Free, Module(path) or TypeImpl(type, is_static)."""
    if declaration.has_receiver:
        type_name = declaration.enclosing_type
        if type_name is None:
            annotation = declaration.receiver.annotation
            type_name = annotation.strip("'\"") if annotation else ""
        return Scope(ScopeKind.TYPE_IMPL, type_name, is_static=False)

    if declaration.parent_kind == "class":
        if hint == SCOPE_IMPL:
            return Scope(ScopeKind.TYPE_IMPL, declaration.enclosing_type or "", is_static=True)
        raise MissingScopeHint(
            f"{declaration.name!r} has no receiver but sits in class "
            f"{declaration.enclosing_type!r}: add scope=\"{SCOPE_IMPL}\" to the marker "
            "if it is a static function of the class",
            declaration=declaration,
        )

    if hint == SCOPE_IMPL:
        raise MalformedSignature(
            f"scope=\"{SCOPE_IMPL}\" is only valid for functions of a class body",
            declaration=declaration,
        )
    if declaration.parent_kind == "module" and declaration.module:
        return Scope(ScopeKind.MODULE, declaration.module)
    return FREE


def enclosing_paths(declaration: Declaration) -> list[str]:
    """
    Qualified names of the scopes enclosing a declaration, innermost first,
    ending with '' for the module.

    >>> from covers.signature import parse_declaration
    >>> decl = parse_declaration("def f(): pass")
    >>> decl.qualname = "outer.<locals>.Inner.f"
    >>> enclosing_paths(decl)
    ['outer.<locals>.Inner', 'outer.<locals>', '']
    """
    paths = []
    path = declaration.parent_path
    while path:
        paths.append(path)
        path = path.rpartition(".")[0]
    paths.append("")
    return paths


class ScopeResolver:
    """Resolve binding targets against the declarations of the build unit."""

    def __init__(self, index: "SymbolIndex", strict: bool = True):
        self.index = index
        self.strict = strict

    def resolve_target(self, binding: MockBinding) -> Optional[ResolvedPath]:
        if not binding.is_bound:
            return None
        declaration = binding.declaration
        path = binding.target_path
        if "." in path:
            resolved = self._resolve_qualified(declaration, path)
        else:
            resolved = self._resolve_unqualified(declaration, path)

        if resolved is None:
            return self._unresolved(declaration, path)
        if resolved.declaration is declaration:
            raise UnresolvedTarget(
                f"{path!r} refers to the mock point itself",
                declaration=declaration,
            )
        return resolved

    def _resolve_unqualified(self, declaration, name):
        module = declaration.module
        for position, scope_path in enumerate(enclosing_paths(declaration)):
            in_class = position == 0 and declaration.parent_kind == "class"
            # Class bodies do not enclose the functions nested in them
            if scope_path and not (in_class or scope_path.endswith(LOCALS)):
                continue
            qualname = f"{scope_path}.{name}" if scope_path else name
            match = self._lookup(declaration, module, qualname)
            if match is not None:
                expression = f"{CLASS_CELL}.{name}" if in_class else name
                return ResolvedPath(expression, module, match.qualname, match)

        imported = self.index.imports_of(module).get(name)
        if imported is not None:
            return self._resolve_absolute(declaration, imported, expression=name)
        return None

    def _resolve_qualified(self, declaration, path):
        module = declaration.module
        # A class of the module, or one local to an enclosing function
        for scope_path in enclosing_paths(declaration):
            if scope_path and not scope_path.endswith(LOCALS):
                continue
            qualname = f"{scope_path}.{path}" if scope_path else path
            match = self._lookup(declaration, module, qualname)
            if match is not None:
                return ResolvedPath(path, module, match.qualname, match)

        head, _, rest = path.partition(".")
        imported = self.index.imports_of(module).get(head)
        if imported is not None:
            return self._resolve_absolute(declaration, f"{imported}.{rest}", expression=path)
        # The wrapper evaluates the path in this module: its head must be bound here
        if self._resolve_absolute(declaration, path, expression=path) is not None:
            raise UnresolvedTarget(
                f"target {path!r} is a function of the build unit but {head!r} is "
                f"not imported in {module or '<source>'}",
                declaration=declaration,
            )
        return None

    def _resolve_absolute(self, declaration, dotted, expression):
        parts = dotted.split(".")
        # Longest module prefix wins
        for size in range(len(parts) - 1, 0, -1):
            module = ".".join(parts[:size])
            if not self.index.is_module(module):
                continue
            qualname = ".".join(parts[size:])
            match = self._lookup(declaration, module, qualname)
            if match is not None:
                return ResolvedPath(expression, module, match.qualname, match)
            return None
        return None

    def _lookup(self, declaration, module, qualname):
        matches = self.index.lookup(module, qualname)
        if len(matches) > 1:
            lines = ", ".join(str(match.lineno) for match in matches)
            raise UnresolvedTarget(
                f"target {qualname!r} is ambiguous: {len(matches)} definitions "
                f"in {module or '<source>'} (lines {lines})",
                declaration=declaration,
            )
        return matches[0] if matches else None

    def _unresolved(self, declaration, path):
        if self.strict:
            raise UnresolvedTarget(
                f"no function matches target {path!r} in the build unit",
                declaration=declaration,
            )
        logger.warning(
            "%s:%s: target %r of %r is outside the build unit, resolved at run time",
            declaration.filename,
            declaration.lineno,
            path,
            declaration.name,
        )
        return ResolvedPath(path, deferred=True)
