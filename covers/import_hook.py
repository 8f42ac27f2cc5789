"""
Import hook serving rewritten modules.

install() builds whole packages up front, so every binding is validated
against the complete build unit, then puts a finder at the front of
sys.meta_path. Importing a module of the unit executes its rewritten tree;
every other import goes through the regular finders.
"""

from __future__ import annotations

import importlib.abc
import importlib.util
import logging
import sys
from os.path import dirname
from pathlib import Path

from covers.build import Build, BuildResult
from covers.config import CoversConfig

logger = logging.getLogger(__name__)


class CoversLoader(importlib.abc.Loader):
    def __init__(self, result: BuildResult):
        self.result = result

    def create_module(self, spec):
        return None

    def exec_module(self, module):
        code = self.result.compile()
        exec(code, module.__dict__)

    def get_source(self, fullname):
        return self.result.source


class CoversFinder(importlib.abc.MetaPathFinder):
    def __init__(self, results: dict[str, BuildResult]):
        self.results = results

    def find_spec(self, fullname, path=None, target=None):
        result = self.results.get(fullname)
        if result is None:
            return None
        locations = [dirname(result.filename)] if result.is_package else None
        return importlib.util.spec_from_file_location(
            fullname,
            result.filename,
            loader=CoversLoader(result),
            submodule_search_locations=locations,
        )

    def __repr__(self):
        return "<CoversFinder %s>" % ", ".join(sorted(self.results))


def install(*paths, config=None) -> CoversFinder:
    """
    Build the packages or files at ``paths`` and serve them on import.

    ``config`` is a CoversConfig or BuildOptions; by default the configuration
    files of the current directory and COVERS_PROFILE are read.
    """
    if config is None:
        config = CoversConfig()
    build = Build(config)
    for path in paths:
        path = Path(path)
        if path.is_dir():
            build.add_package(path)
        else:
            build.add_file(path)
    finder = CoversFinder(build.run())
    sys.meta_path.insert(0, finder)
    logger.debug("Installed %r (%s profile)", finder, build.options.profile.value)
    return finder


def uninstall(finder: CoversFinder, purge: bool = True):
    """Remove the finder and, with ``purge``, forget the modules it loaded."""
    if finder in sys.meta_path:
        sys.meta_path.remove(finder)
    if purge:
        for name in finder.results:
            sys.modules.pop(name, None)
