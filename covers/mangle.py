"""
Name mangling of mock points.

The original body of a mock point is preserved under ``prefix + name``. The
prefix is the only knob and comes from the build configuration.
"""

from __future__ import annotations

from dataclasses import dataclass

from covers.declaration import Declaration, visibility_of
from covers.errors import NameCollision, VisibilityWidening

DEFAULT_PREFIX = "_"


def validate_prefix(prefix: str) -> str:
    """Return the prefix or raise InvalidConfiguration for a degenerate one."""
    # Imported here: config.py builds NamePolicy objects.
    from covers.config import InvalidConfiguration

    if not isinstance(prefix, str) or not prefix:
        raise InvalidConfiguration("the mangling prefix must not be empty")
    if not (prefix + "x").isidentifier():
        raise InvalidConfiguration(f"mangling prefix {prefix!r} cannot start an identifier")
    if not prefix.startswith("_"):
        raise InvalidConfiguration(
            f"mangling prefix {prefix!r} must start with '_': "
            "mangled originals are never public"
        )
    return prefix


def mangle(name: str, prefix: str = DEFAULT_PREFIX) -> str:
    return prefix + name


def unmangle(mangled_name: str, prefix: str = DEFAULT_PREFIX) -> str:
    """
    Inverse of mangle().

    >>> unmangle(mangle("foo", "_orig_"), "_orig_")
    'foo'
    """
    if not mangled_name.startswith(prefix) or len(mangled_name) == len(prefix):
        raise ValueError(f"{mangled_name!r} was not mangled with prefix {prefix!r}")
    return mangled_name[len(prefix):]


@dataclass(frozen=True)
class NamePolicy:
    prefix: str = DEFAULT_PREFIX

    def __post_init__(self):
        validate_prefix(self.prefix)

    def mangle(self, name: str) -> str:
        return mangle(name, self.prefix)

    def unmangle(self, mangled_name: str) -> str:
        return unmangle(mangled_name, self.prefix)


class NameMangler:
    """Compute mangled names, refusing to shadow anything in the same scope."""

    def __init__(self, policy: NamePolicy):
        self.policy = policy

    def mangle(self, declaration: Declaration, taken: set[str]) -> str:
        """
        Mangle the declaration's name and reserve it in ``taken``, the set of
        names bound in the declaration's scope.
        """
        mangled_name = self.policy.mangle(declaration.name)
        if mangled_name in taken:
            raise NameCollision(
                f"{mangled_name!r} already exists in this scope",
                declaration=declaration,
            )
        in_class = declaration.parent_kind == "class"
        if visibility_of(mangled_name, in_class) > declaration.visibility:
            raise VisibilityWidening(
                f"{mangled_name!r} would be more visible than {declaration.name!r}; "
                f"use a prefix starting with '__' for class-private names",
                declaration=declaration,
            )
        taken.add(mangled_name)
        return mangled_name
