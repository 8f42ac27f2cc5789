"""
Tests for scope classification and target resolution.

Run with: pytest tests/test_scope.py -v
"""

import pytest

from covers.declaration import FREE, MockBinding, Scope, ScopeKind
from covers.errors import MalformedSignature, MissingScopeHint, UnresolvedTarget
from covers.registry import SymbolIndex
from covers.scope import ScopeResolver, classify, enclosing_paths
from covers.signature import parse_declaration


def declare(text, module="app", qualname=None, enclosing_type=None):
    decl = parse_declaration(text, enclosing_type=enclosing_type, module=module)
    if qualname is not None:
        decl.qualname = qualname
    return decl


class TestClassify:
    """Every mock point lands in exactly one scope."""

    def test_receiver_wins_over_hint(self):
        decl = declare("def bar(self): pass", enclosing_type="Struct")
        assert classify(decl) == Scope(ScopeKind.TYPE_IMPL, "Struct")
        assert classify(decl, "impl") == Scope(ScopeKind.TYPE_IMPL, "Struct")

    def test_static_needs_hint(self):
        decl = declare("def baz(name): pass", enclosing_type="Struct")
        with pytest.raises(MissingScopeHint):
            classify(decl)
        assert classify(decl, "impl") == Scope(ScopeKind.TYPE_IMPL, "Struct", is_static=True)

    def test_module_function(self):
        decl = declare("def foo(): pass", module="pkg.main")
        assert classify(decl) == Scope(ScopeKind.MODULE, "pkg.main")
        assert str(classify(decl)) == "Module(pkg.main)"

    def test_free_function(self):
        assert classify(declare("def foo(): pass", module="")) is FREE
        local = declare("def inner(): pass", qualname="outer.<locals>.inner")
        local.parent_kind = "function"
        assert classify(local) == FREE

    def test_hint_outside_class(self):
        with pytest.raises(MalformedSignature):
            classify(declare("def foo(): pass"), "impl")

    def test_receiver_type_from_annotation(self):
        decl = declare("def area(this: 'Shape'): pass")
        assert classify(decl) == Scope(ScopeKind.TYPE_IMPL, "Shape")


def test_enclosing_paths():
    decl = declare("def f(): pass", qualname="Outer.Inner.f")
    assert enclosing_paths(decl) == ["Outer.Inner", "Outer", ""]
    assert enclosing_paths(declare("def f(): pass")) == [""]


class TestResolveTarget:
    """Target paths resolve against the declarations of the build unit."""

    def setup_method(self):
        self.index = SymbolIndex()
        self.index.add_module(
            "pkg.main", {"mocks": "pkg.mocks", "fake": "pkg.mocks.fake_qux", "pkg": "pkg"}
        )
        self.index.add_module("pkg.other", {})
        self.index.add_module("pkg.mocks", {})
        self.foo = declare("def foo(x): pass", module="pkg.main")
        self.mock_foo = declare("def mock_foo(x): pass", module="pkg.main")
        self.bar = declare("def bar(self): pass", module="pkg.main", enclosing_type="Struct")
        self.mock_bar = declare("def mock_bar(self): pass", module="pkg.main", enclosing_type="Struct")
        self.mock_baz = declare("def mock_baz(x): pass", module="pkg.mocks")
        self.fake_qux = declare("def fake_qux(x): pass", module="pkg.mocks")
        self.on_shape = declare(
            "def mock_area(self): pass", module="pkg.mocks", enclosing_type="Shape"
        )
        for decl in (
            self.foo, self.mock_foo, self.bar, self.mock_bar,
            self.mock_baz, self.fake_qux, self.on_shape,
        ):
            self.index.add(decl)
        self.resolver = ScopeResolver(self.index)

    def resolve(self, decl, path, strict=True):
        self.resolver.strict = strict
        return self.resolver.resolve_target(MockBinding(decl, path))

    def test_unbound(self):
        assert self.resolve(self.foo, None) is None

    def test_same_module(self):
        resolved = self.resolve(self.foo, "mock_foo")
        assert resolved.expression == "mock_foo"
        assert resolved.declaration is self.mock_foo
        assert str(resolved) == "pkg.main:mock_foo"

    def test_same_class(self):
        resolved = self.resolve(self.bar, "mock_bar")
        assert resolved.expression == "__class__.mock_bar"
        assert resolved.declaration is self.mock_bar

    def test_class_path(self):
        resolved = self.resolve(self.foo, "Struct.mock_bar")
        assert resolved.expression == "Struct.mock_bar"
        assert resolved.declaration is self.mock_bar

    def test_module_alias(self):
        resolved = self.resolve(self.foo, "mocks.mock_baz")
        assert resolved.expression == "mocks.mock_baz"
        assert resolved.declaration is self.mock_baz

    def test_imported_name(self):
        resolved = self.resolve(self.foo, "fake")
        assert resolved.expression == "fake"
        assert resolved.declaration is self.fake_qux

    def test_absolute_path(self):
        resolved = self.resolve(self.foo, "pkg.mocks.Shape.mock_area")
        assert resolved.declaration is self.on_shape
        assert resolved.qualname == "Shape.mock_area"

    def test_absolute_path_needs_import(self):
        other = declare("def other(self): pass", module="pkg.other")
        self.index.add(other)
        with pytest.raises(UnresolvedTarget) as error:
            self.resolve(other, "pkg.mocks.Shape.mock_area")
        assert "'pkg' is not imported in pkg.other" in str(error.value)
        # Not a deferred target either: the function is part of the build unit
        with pytest.raises(UnresolvedTarget):
            self.resolve(other, "pkg.mocks.Shape.mock_area", strict=False)

    def test_unresolved(self):
        with pytest.raises(UnresolvedTarget):
            self.resolve(self.foo, "nothing")
        with pytest.raises(UnresolvedTarget):
            self.resolve(self.foo, "mocks.nothing")

    def test_deferred(self):
        resolved = self.resolve(self.foo, "elsewhere.fake", strict=False)
        assert resolved.deferred
        assert resolved.declaration is None
        assert resolved.expression == "elsewhere.fake"

    def test_self_target(self):
        with pytest.raises(UnresolvedTarget):
            self.resolve(self.foo, "foo")

    def test_ambiguous(self):
        self.index.add(declare("def mock_foo(x, y): pass", module="pkg.main"))
        with pytest.raises(UnresolvedTarget) as error:
            self.resolve(self.foo, "mock_foo")
        assert "ambiguous" in str(error.value)
