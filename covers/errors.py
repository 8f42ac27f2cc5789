"""
Errors raised by the covers build pass.

Every error is fatal: the build stops at the first one and writes no output.
Each error keeps enough context (declaration name, scope, file and line) to
locate the offending source.
"""

from __future__ import annotations


class CoversError(Exception):
    """Base class of all build-time errors."""

    kind = "CoversError"

    def __init__(
        self,
        message: str,
        declaration=None,
        scope=None,
        filename: str | None = None,
        lineno: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        if declaration is not None and not isinstance(declaration, str):
            filename = filename or declaration.filename
            lineno = lineno or declaration.lineno
            scope = scope if scope is not None else declaration.enclosing_scope
            declaration = declaration.name
        self.declaration = declaration
        self.scope = scope
        self.filename = filename
        self.lineno = lineno

    def __str__(self):
        text = f"{self.kind}: {self.message}"
        if self.declaration:
            text += f" [declaration {self.declaration!r}"
            if self.scope is not None:
                text += f" in {self.scope}"
            text += "]"
        if self.filename:
            location = self.filename
            if self.lineno:
                location += f":{self.lineno}"
            text = f"{location}: {text}"
        return text


class MalformedSignature(CoversError):
    """A declaration or its marker cannot be parsed into the structured model."""

    kind = "MalformedSignature"


class MissingScopeHint(CoversError):
    """A function without receiver inside a class body lacks scope="impl"."""

    kind = "MissingScopeHint"


class UnresolvedTarget(CoversError):
    """A binding target matches no declaration of the build unit, or several."""

    kind = "UnresolvedTarget"


class NameCollision(CoversError):
    """The mangled name is already bound in the same scope."""

    kind = "NameCollision"


class SignatureMismatch(CoversError):
    """A substitute is not structurally call-compatible with its mock point."""

    kind = "SignatureMismatch"


class VisibilityWidening(CoversError):
    """The mangled original would be reachable more widely than its source."""

    kind = "VisibilityWidening"
