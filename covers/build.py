"""
The build pass.

A Build takes the modules of one build unit and rewrites their syntax trees
in three phases: collect every module, validate every binding against the
whole unit, then replace each mock point by its renamed original and its
dispatch wrapper. The first error aborts the build before any tree is
modified.
"""

from __future__ import annotations

import ast
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from covers.collect import Collector, ModuleUnit
from covers.config import BuildOptions, CoversConfig, Profile
from covers.dispatch import DispatchGenerator, DispatchPlan
from covers.errors import MalformedSignature
from covers.mangle import NameMangler
from covers.registry import BindingRegistry

logger = logging.getLogger(__name__)


@dataclass
class BuildResult:
    module_name: str
    filename: str
    tree: ast.Module = field(repr=False)
    is_package: bool = False

    @property
    def source(self) -> str:
        return ast.unparse(self.tree) + "\n"

    def compile(self):
        return compile(self.tree, self.filename, "exec", dont_inherit=True)


@dataclass
class _Source:
    module_name: str
    filename: str
    text: str
    is_package: bool = False


def module_name_of(path: Path, root: Path) -> tuple[str, bool]:
    """Dotted module name of ``path`` in the package directory ``root``."""
    relative = path.relative_to(root.parent).with_suffix("")
    parts = list(relative.parts)
    is_package = parts[-1] == "__init__"
    if is_package:
        parts.pop()
    return ".".join(parts), is_package


class Rewriter(ast.NodeTransformer):
    """Replace the mock points of one module by the generated pair."""

    def __init__(self, unit: ModuleUnit, plans: dict[int, DispatchPlan], generator):
        self.unit = unit
        self.plans = plans
        self.generator = generator

    def visit_FunctionDef(self, node):
        # Nested mock points first: the pair below reuses this node's body
        self.generic_visit(node)
        candidate = self.unit.candidate_of(node)
        if candidate is not None:
            node.decorator_list = list(candidate.decorators)
            return node
        plan = self.plans.get(id(node))
        if plan is None:
            return node
        return list(self.generator.generate(plan, node))

    visit_AsyncFunctionDef = visit_FunctionDef


class Stripper(ast.NodeTransformer):
    """Release profile: drop the markers and every candidate."""

    def __init__(self, unit: ModuleUnit):
        self.unit = unit

    def visit_FunctionDef(self, node):
        if self.unit.candidate_of(node) is not None:
            logger.debug("%s:%s: dropping candidate %s", self.unit.filename, node.lineno, node.name)
            return None
        self.generic_visit(node)
        mock_point = self.unit.mock_point_of(node)
        if mock_point is not None:
            node.decorator_list = list(mock_point.declaration.decorators)
        return node

    visit_AsyncFunctionDef = visit_FunctionDef


def fill_empty_bodies(tree: ast.AST):
    """Put a ``pass`` in every block emptied by the removal of candidates."""
    for node in ast.walk(tree):
        if isinstance(node, ast.Module):
            continue
        body = getattr(node, "body", None)
        if isinstance(body, list) and not body:
            node.body = [ast.copy_location(ast.Pass(), node)]


class Build:
    """
    One build unit.

    >>> build = Build()
    >>> build.add_source("def f(): return 1", module_name="app")
    >>> build.run()["app"].source
    'def f():\\n    return 1\\n'
    """

    def __init__(self, options: Union[BuildOptions, CoversConfig, None] = None):
        if options is None:
            options = BuildOptions()
        elif isinstance(options, CoversConfig):
            options = options.build_options()
        self.options = options
        self.sources: list[_Source] = []
        self.registry: Optional[BindingRegistry] = None

    def add_source(self, text: str, module_name: str = "", filename: str = "<string>", is_package=False):
        for source in self.sources:
            if source.module_name == module_name:
                raise ValueError("module %r is already part of the build" % (module_name or "<anonymous>"))
        self.sources.append(_Source(module_name, filename, text, is_package))

    def add_file(self, path, module_name: Optional[str] = None):
        path = Path(path)
        if module_name is None:
            module_name = path.stem
        text = path.read_text(encoding="utf-8")
        self.add_source(text, module_name, str(path), path.stem == "__init__")

    def add_package(self, directory):
        """Add every module of a package directory, named from the directory."""
        root = Path(directory).resolve()
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(
                name for name in dirnames if name.isidentifier() and name != "__pycache__"
            )
            for filename in sorted(filenames):
                if not filename.endswith(".py"):
                    continue
                path = Path(dirpath) / filename
                module_name, is_package = module_name_of(path, root)
                text = path.read_text(encoding="utf-8")
                self.add_source(text, module_name, str(path), is_package)

    def _collect_one(self, source: _Source) -> ModuleUnit:
        try:
            tree = ast.parse(source.text, source.filename)
        except SyntaxError as err:
            raise MalformedSignature(
                f"cannot parse module: {err.msg}",
                filename=source.filename,
                lineno=err.lineno,
            ) from err
        unit = ModuleUnit(source.module_name, source.filename, tree, source.is_package)
        return Collector.collect(unit, self.options.predicate)

    def collect(self) -> list[ModuleUnit]:
        if self.options.jobs > 1 and len(self.sources) > 1:
            with ThreadPoolExecutor(max_workers=self.options.jobs) as executor:
                return list(executor.map(self._collect_one, self.sources))
        return [self._collect_one(source) for source in self.sources]

    def register(self, units: list[ModuleUnit]) -> BindingRegistry:
        registry = BindingRegistry(strict_targets=self.options.strict_targets)
        for unit in units:
            registry.register_module(unit.module_name, unit.imports)
            for declaration in unit.declarations:
                registry.register_declaration(declaration)
            for candidate in unit.candidates:
                registry.register_candidate(candidate)
            for mock_point in unit.mock_points:
                registry.register_binding(
                    mock_point.declaration,
                    mock_point.marker.target_path,
                    mock_point.marker.scope_hint,
                )
        return registry

    def plan(self, units: list[ModuleUnit]) -> dict[int, DispatchPlan]:
        """Mangle the name of every mock point, keyed by its def node."""
        mangler = NameMangler(self.options.policy)
        plans = {}
        for unit in units:
            for mock_point in unit.mock_points:
                declaration = mock_point.declaration
                taken = unit.scope_names.setdefault(declaration.parent_path, set())
                plans[id(mock_point.node)] = DispatchPlan(
                    declaration=declaration,
                    scope=self.registry.binding_for(declaration).scope,
                    mangled_name=mangler.mangle(declaration, taken),
                    target=self.registry.resolved_target(declaration),
                )
        return plans

    def run(self) -> dict[str, BuildResult]:
        """Build every module and return the results by module name."""
        units = self.collect()
        profile = self.options.profile
        if profile is Profile.RELEASE:
            for unit in units:
                Stripper(unit).visit(unit.tree)
                fill_empty_bodies(unit.tree)
        else:
            self.registry = self.register(units)
            self.registry.validate()
            # Every name is mangled before any tree is touched
            plans = self.plan(units)
            generator = DispatchGenerator(profile)
            for unit in units:
                Rewriter(unit, plans, generator).visit(unit.tree)

        results = {}
        for unit in units:
            ast.fix_missing_locations(unit.tree)
            logger.debug(
                "%s: %s mock points, %s candidates (%s)",
                unit.module_name or unit.filename,
                len(unit.mock_points),
                len(unit.candidates),
                profile.value,
            )
            results[unit.module_name] = BuildResult(
                unit.module_name, unit.filename, unit.tree, unit.is_package
            )
        return results


def transform_source(
    source: str,
    config: Union[BuildOptions, CoversConfig, None] = None,
    module_name: str = "",
    filename: str = "<string>",
) -> str:
    """Rewrite the mock points of a single module and return the new source."""
    build = Build(config)
    build.add_source(source, module_name, filename)
    return build.run()[module_name].source
