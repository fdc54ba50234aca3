"""Unit tests for the scope provider.

These tests verify:
- Filters added to model and relation queries
- only_relations mode
- Context isolation of the active scope
- Swapping the process-wide provider
"""

import asyncio

import pytest
from sqlalchemy import select
from sqlalchemy.orm import aliased

from rolegate.core.database.scope import Scope, _active_scopes, get_scope, set_scope
from rolegate.core.permissions.models import Role, permissions


pytestmark = pytest.mark.unit


def _sql(stmt) -> str:
    return str(stmt.compile(compile_kwargs={"literal_binds": True}))


class TestScopeFilters:
    """Tests for the filters applied to queries."""

    def test_no_active_scope_filters_global_rows(self):
        """Without an active scope only rows with a null scope match."""
        scope = Scope()
        stmt = scope.apply_to_model_query(select(Role), Role)

        assert "roles.scope IS NULL" in _sql(stmt)

    def test_active_scope_filters_by_value(self):
        """An active scope restricts rows to that exact partition."""
        scope = Scope()
        with scope.scoped(5):
            stmt = scope.apply_to_model_query(select(Role), Role)

        sql = _sql(stmt)
        assert "roles.scope = 5" in sql
        assert "IS NULL" not in sql

    def test_relation_filter_on_core_table(self):
        """Relation filters work on core tables."""
        scope = Scope()
        scope.to(3)
        stmt = scope.apply_to_relation_query(select(permissions), permissions)

        assert "permissions.scope = 3" in _sql(stmt)

    def test_filter_on_aliased_entity(self):
        """Filters target the alias, not the base table."""
        scope = Scope()
        held = aliased(Role, name="held_roles")
        with scope.scoped(2):
            stmt = scope.apply_to_model_query(select(held.id), held)

        assert "held_roles.scope = 2" in _sql(stmt)

    def test_applying_twice_is_harmless(self):
        """Applying a filter twice yields the same rows."""
        scope = Scope()
        with scope.scoped(9):
            once = scope.apply_to_model_query(select(Role), Role)
            twice = scope.apply_to_model_query(once, Role)

        assert _sql(twice).count("roles.scope = 9") == 2

    def test_only_relations_skips_model_tables(self):
        """In only_relations mode model tables are shared across scopes."""
        scope = Scope(only_relations=True)
        with scope.scoped(4):
            model = scope.apply_to_model_query(select(Role), Role)
            relation = scope.apply_to_relation_query(
                select(permissions), permissions
            )

            assert scope.model_scope() is None
            assert scope.current_scope() == 4

        assert "scope" not in _sql(model).split("FROM")[1]
        assert "permissions.scope = 4" in _sql(relation)


class TestActiveScope:
    """Tests for activating and restoring scopes."""

    def test_scoped_restores_previous_value(self):
        scope = Scope()
        scope.to(1)

        with scope.scoped(2):
            assert scope.get() == 2
            assert scope.current_scope() == 2
            assert scope.model_scope() == 2

        assert scope.get() == 1

    def test_remove_clears_scope(self):
        scope = Scope()
        scope.to(7)
        scope.remove()

        assert scope.get() is None

    async def test_concurrent_tasks_do_not_share_scope(self):
        """Each task sees only the scope it activated."""
        scope = Scope()
        seen: dict[int, int | None] = {}

        async def worker(value: int) -> None:
            scope.to(value)
            await asyncio.sleep(0)
            seen[value] = scope.get()

        await asyncio.gather(worker(1), worker(2), worker(3))

        assert seen == {1: 1, 2: 2, 3: 3}
        assert scope.get() is None

    def test_providers_are_independent(self):
        tenant = Scope()
        shared = Scope(only_relations=True)

        with tenant.scoped(1), shared.scoped(2):
            assert tenant.get() == 1
            assert shared.get() == 2

        assert tenant.get() is None
        assert shared.get() is None

    def test_exited_providers_are_released(self):
        scope = Scope()

        with scope.scoped(5):
            assert scope in _active_scopes.get()

        assert scope not in _active_scopes.get()

        scope.to(6)
        scope.remove()

        assert scope not in _active_scopes.get()


class TestProvider:
    """Tests for the process-wide provider."""

    def test_set_scope_swaps_provider(self):
        replacement = Scope(only_relations=True)
        previous = set_scope(replacement)
        try:
            assert get_scope() is replacement
        finally:
            set_scope(previous)

        assert get_scope() is previous
