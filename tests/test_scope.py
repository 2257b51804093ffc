"""
Scope Tests

Predicate construction, scope context composition and the capability registry.
"""

import threading
from datetime import datetime

import pytest

from paranoid import CapabilityRegistry, ConfigurationError, build_predicate, config, current_time
from paranoid.includes import EMPTY, Keyed, Leaf, Sequence, compose_scope, parse_include
from paranoid.scope import ScopeContext, with_scope
from sample_models import Category, Label, Part, SpecialWidget, Widget

NOW = datetime(2026, 1, 1, 12, 0, 0)


def capture(captured: list):
    def inner(context: ScopeContext):
        captured.append(context)
        return context

    return inner


# ============================================================================
# Predicate Tests
# ============================================================================


class TestPredicate:
    """Test the deletion predicate"""

    def test_predicate_shape(self):
        """Test the predicate keeps rows deleted after the reference time"""
        sql = str(build_predicate(Widget, NOW))

        assert "widgets.deleted_at IS NULL OR widgets.deleted_at >" in sql

    def test_predicate_custom_attribute(self):
        """Test the configured attribute is used"""
        sql = str(build_predicate(Part, NOW))

        assert "parts.removed_at IS NULL" in sql

    def test_current_time_utc(self, monkeypatch):
        """Test UTC reference times are naive"""
        monkeypatch.setattr(config, "DEFAULT_TIMEZONE", "utc")

        assert current_time().tzinfo is None

    def test_current_time_local(self, monkeypatch):
        """Test local reference times follow the host clock"""
        monkeypatch.setattr(config, "DEFAULT_TIMEZONE", "local")
        before = datetime.now()

        assert current_time() >= before


# ============================================================================
# Scope Context Tests
# ============================================================================


class TestScopeContext:
    """Test scope context immutability and merging"""

    def test_merge_returns_new_context(self):
        """Test merging leaves the original context untouched"""
        base = ScopeContext()
        merged = base.merge(Widget, build_predicate(Widget, NOW), NOW)

        assert base.criteria == ()
        assert merged.scoped_entities == [Widget]

    def test_merge_deduplicates(self):
        """Test the same entity and timestamp are merged once"""
        context = ScopeContext().merge(Widget, build_predicate(Widget, NOW), NOW)

        assert context.merge(Widget, build_predicate(Widget, NOW), NOW) is context

    def test_scope_ends_with_call(self):
        """Test a scope only exists inside the call it wraps"""
        base = ScopeContext()
        captured = []

        with_scope(base, Widget, NOW, capture(captured))

        assert captured[0].conditions_for(Widget)
        assert base.conditions_for(Widget) == []

    def test_scope_ends_on_error(self):
        """Test a failing call leaves the outer context unchanged"""
        base = ScopeContext()

        def fail(context):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            with_scope(base, Widget, NOW, fail)

        assert base.criteria == ()

    def test_concurrent_scopes_are_independent(self):
        """Test threads composing scopes never see each other's criteria"""
        results = {}

        def run(entity):
            captured = []
            with_scope(ScopeContext(), entity, NOW, capture(captured))
            results[entity] = captured[0].scoped_entities

        threads = [threading.Thread(target=run, args=(entity,)) for entity in (Widget, Part, Category)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results == {Widget: [Widget], Part: [Part], Category: [Category]}


# ============================================================================
# Include Composition Tests
# ============================================================================


class TestIncludeComposition:
    """Test include specifications folding into a scope"""

    def test_parse_include(self):
        """Test accepted specification shapes"""
        assert parse_include(None) is EMPTY
        assert parse_include("parts") == Leaf("parts")
        assert parse_include(["parts", "tags"]) == Sequence((Leaf("parts"), Leaf("tags")))
        assert parse_include({"parts": "labels"}) == Keyed((("parts", Leaf("labels")),))

    def test_parse_include_rejects_bad_shapes(self):
        """Test malformed specifications"""
        with pytest.raises(TypeError):
            parse_include(42)
        with pytest.raises(TypeError):
            parse_include({1: None})

    def test_nested_include(self):
        """Test nested includes scope paranoid targets and record every path"""
        captured = []
        call = compose_scope(Widget, {"parts": {"labels": None}}, capture(captured), NOW)

        call(ScopeContext())
        context = captured[0]

        assert context.scoped_entities == [Part]
        assert {tuple(step.name for step in path) for path in context.paths} == {
            ("parts",),
            ("parts", "labels"),
        }
        assert Label in context.association_targets

    def test_include_without_timestamp(self):
        """Test a missing timestamp eager-loads without filtering"""
        captured = []
        call = compose_scope(Widget, ["parts", "category"], capture(captured), None)

        call(ScopeContext())

        assert captured[0].criteria == ()
        assert len(captured[0].paths) == 2

    def test_cyclic_include(self):
        """Test a self-referential chain yields one predicate per entity"""
        captured = []
        call = compose_scope(Category, {"parent": {"parent": "parent"}}, capture(captured), NOW)

        call(ScopeContext())

        assert len(captured[0].criteria) == 1
        assert len(captured[0].paths) == 3

    def test_unknown_association(self):
        """Test naming a relationship the entity does not have"""
        with pytest.raises(ConfigurationError):
            compose_scope(Widget, "owners", capture([]), NOW)


# ============================================================================
# Registry Tests
# ============================================================================


class TestRegistry:
    """Test a standalone capability registry"""

    def test_enable_once(self):
        """Test repeated enabling is a no-op"""
        local = CapabilityRegistry()

        assert local.enable(Label) is True
        assert local.enable(Label, with_="other") is False
        assert local.deleted_attribute(Label) == config.DEFAULT_DELETED_ATTRIBUTE

    def test_disable(self):
        """Test forgetting a registration"""
        local = CapabilityRegistry()
        local.enable(Label)
        local.disable(Label)

        assert local.is_paranoid(Label) is False
        with pytest.raises(ConfigurationError):
            local.options_for(Label)

    def test_subclass_inherits_registration(self):
        """Test subclasses share their base class entry"""
        local = CapabilityRegistry()
        local.enable(Widget, with_="removed_at")

        assert local.is_paranoid(SpecialWidget) is True
        assert local.enable(SpecialWidget) is False
        assert local.deleted_attribute(SpecialWidget) == "removed_at"

        local.disable(SpecialWidget)

        assert local.is_paranoid(SpecialWidget) is True
