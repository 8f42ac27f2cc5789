"""
Binding registry.

Collection registers every function of the build unit, the mock candidates
and the bindings of the mock points. Nothing is resolved until validate()
runs, once all modules are collected: a binding may name a candidate defined
further down the same module or in a module collected later.
"""

from __future__ import annotations

import inspect
import logging
import threading
from collections import defaultdict
from typing import Optional

from covers.declaration import POSITIONAL_KINDS, Declaration, MockBinding, ResolvedPath
from covers.errors import MalformedSignature, SignatureMismatch
from covers.scope import ScopeResolver, classify

logger = logging.getLogger(__name__)


class SymbolIndex:
    """Functions of the build unit, by module and qualified name."""

    def __init__(self):
        self._imports = {}
        self._declarations = defaultdict(list)

    def add_module(self, name: str, imports: Optional[dict[str, str]] = None):
        self._imports[name] = dict(imports or {})

    def add(self, declaration: Declaration):
        self._declarations[declaration.key].append(declaration)

    def lookup(self, module: str, qualname: str) -> list[Declaration]:
        return list(self._declarations.get((module, qualname), ()))

    def is_module(self, name: str) -> bool:
        return name in self._imports

    def imports_of(self, module: str) -> dict[str, str]:
        """Local name to absolute dotted path, for the imports of a module."""
        return self._imports.get(module, {})

    def __len__(self):
        return sum(len(items) for items in self._declarations.values())


def _signature_shape(parameters):
    positional = [param for param in parameters if param.kind in POSITIONAL_KINDS]
    keyword_only = {
        param.name for param in parameters if param.kind is inspect.Parameter.KEYWORD_ONLY
    }
    kinds = {param.kind for param in parameters}
    return (
        len(positional),
        keyword_only,
        inspect.Parameter.VAR_POSITIONAL in kinds,
        inspect.Parameter.VAR_KEYWORD in kinds,
    )


def _call_kind(declaration: Declaration) -> str:
    if declaration.is_async and declaration.is_generator:
        return "async generator"
    if declaration.is_async:
        return "coroutine"
    if declaration.is_generator:
        return "generator"
    return "function"


def check_compatible(source: Declaration, substitute: Declaration):
    """Raise SignatureMismatch unless ``substitute`` accepts every call of ``source``."""
    kind, sub_kind = _call_kind(source), _call_kind(substitute)
    # Plain functions and generators are both called without await
    if kind != sub_kind and (source.is_async or substitute.is_async):
        raise SignatureMismatch(
            f"substitute {substitute.qualname!r} is of kind {sub_kind} "
            f"but {source.name!r} is of kind {kind}",
            declaration=source,
        )
    # A classmethod receives its class implicitly; callers never pass it
    substitute_params = substitute.call_parameters()
    if substitute.has_receiver and not substitute.is_classmethod and not source.has_receiver:
        raise SignatureMismatch(
            f"substitute {substitute.qualname!r} takes a receiver "
            f"but {source.name!r} has none",
            declaration=source,
        )

    arity, keyword_only, varargs, varkw = _signature_shape(source.parameters)
    sub_arity, sub_keyword_only, sub_varargs, sub_varkw = _signature_shape(substitute_params)
    problems = []
    if arity != sub_arity:
        problems.append(f"{arity} positional parameters against {sub_arity}")
    if keyword_only != sub_keyword_only:
        problems.append(
            "keyword-only parameters %s against %s"
            % (sorted(keyword_only) or "none", sorted(sub_keyword_only) or "none")
        )
    if varargs != sub_varargs:
        problems.append("*args present on one side only")
    if varkw != sub_varkw:
        problems.append("**kwargs present on one side only")
    if problems:
        raise SignatureMismatch(
            f"substitute {substitute.qualname!r} does not match: " + "; ".join(problems),
            declaration=source,
        )


class BindingRegistry:
    """
    Append-only record of the declarations, candidates and bindings of one
    build. Frozen by validate().
    """

    def __init__(self, strict_targets: bool = True):
        self.index = SymbolIndex()
        self.resolver = ScopeResolver(self.index, strict=strict_targets)
        self.bindings: dict[tuple[str, str, int], MockBinding] = {}
        self.candidates: dict[tuple[str, str, int], Declaration] = {}
        self._resolved: dict[tuple[str, str, int], Optional[ResolvedPath]] = {}
        self._lock = threading.Lock()
        self._frozen = False

    @staticmethod
    def _key(declaration):
        return declaration.module, declaration.qualname, declaration.lineno

    def _check_open(self):
        if self._frozen:
            raise RuntimeError("binding registry is frozen after validation")

    def register_module(self, name, imports=None):
        with self._lock:
            self._check_open()
            self.index.add_module(name, imports)

    def register_declaration(self, declaration: Declaration):
        with self._lock:
            self._check_open()
            self.index.add(declaration)

    def register_candidate(self, declaration: Declaration):
        with self._lock:
            self._check_open()
            self.candidates[self._key(declaration)] = declaration

    def register_binding(
        self,
        declaration: Declaration,
        target_path: Optional[str],
        scope_hint: Optional[str] = None,
    ) -> MockBinding:
        with self._lock:
            self._check_open()
            key = self._key(declaration)
            if key in self.bindings:
                raise MalformedSignature(
                    "a mock point takes a single binding",
                    declaration=declaration,
                )
            binding = MockBinding(declaration, target_path, scope_hint)
            binding.scope = classify(declaration, scope_hint)
            self.bindings[key] = binding
            return binding

    @property
    def frozen(self) -> bool:
        return self._frozen

    def validate(self):
        """Resolve and check every binding, then freeze the registry."""
        with self._lock:
            self._check_open()
            for key, binding in self.bindings.items():
                resolved = self.resolver.resolve_target(binding)
                if resolved is not None and resolved.declaration is not None:
                    check_compatible(binding.declaration, resolved.declaration)
                self._resolved[key] = resolved

            used = {
                resolved.declaration.key
                for resolved in self._resolved.values()
                if resolved is not None and resolved.declaration is not None
            }
            for candidate in self.candidates.values():
                if candidate.key not in used:
                    logger.debug(
                        "%s:%s: candidate %s is not bound to any mock point",
                        candidate.filename,
                        candidate.lineno,
                        candidate.qualname,
                    )
            self._frozen = True

    def binding_for(self, declaration: Declaration) -> Optional[MockBinding]:
        return self.bindings.get(self._key(declaration))

    def resolved_target(self, declaration: Declaration) -> Optional[ResolvedPath]:
        if not self._frozen:
            raise RuntimeError("binding registry is not validated yet")
        return self._resolved.get(self._key(declaration))

    def is_candidate(self, declaration: Declaration) -> bool:
        return self._key(declaration) in self.candidates
