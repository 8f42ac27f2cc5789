"""
covers: build-time function mocking.

Mark a function with ``@mocked(target)`` and its substitute with ``@mock``;
the build pass rewrites the module so that the function dispatches to its
original body or, under the test profile, to the substitute.
"""

from covers.build import Build, BuildResult, transform_source
from covers.config import BuildOptions, ConfigError, CoversConfig, InvalidConfiguration, Profile
from covers.errors import (
    CoversError,
    MalformedSignature,
    MissingScopeHint,
    NameCollision,
    SignatureMismatch,
    UnresolvedTarget,
    VisibilityWidening,
)
from covers.import_hook import install, uninstall
from covers.markers import mock, mocked
from covers.version import VERSION as __version__

__all__ = [
    "Build",
    "BuildOptions",
    "BuildResult",
    "ConfigError",
    "CoversConfig",
    "CoversError",
    "InvalidConfiguration",
    "MalformedSignature",
    "MissingScopeHint",
    "NameCollision",
    "Profile",
    "SignatureMismatch",
    "UnresolvedTarget",
    "VisibilityWidening",
    "install",
    "mock",
    "mocked",
    "transform_source",
    "uninstall",
]
