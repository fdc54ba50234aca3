"""Scope (tenant partition) provider.

This module provides the strategy that narrows every query touching
scoped tables to the active partition, and supplies the value stamped
on newly written rows. The active scope of every provider lives in one
context variable, so concurrent requests never see each other's scope
and short-lived providers leave nothing behind once their block exits.
"""

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Any, TypeVar

from sqlalchemy import Select
from sqlalchemy.sql import ColumnElement


S = TypeVar("S", bound=Select[Any])

# Active scope per provider; replaced, never mutated, on every change
_active_scopes: ContextVar[Mapping["Scope", int | None]] = ContextVar(
    "rolegate_active_scopes", default={}
)


class Scope:
    """Adds scope filters to select statements.

    Model tables (``abilities``, ``roles``) and relation tables
    (``assigned_roles``, ``permissions``) are filtered separately so
    that ``only_relations`` mode can share role and ability definitions
    across partitions while keeping grants partitioned.

    Usage:
        scope = Scope()
        with scope.scoped(tenant_id):
            stmt = scope.apply_to_model_query(select(Role), Role)
    """

    def __init__(self, *, only_relations: bool = False) -> None:
        self._only_relations = only_relations

    def to(self, scope: int | None) -> Token[Mapping["Scope", int | None]]:
        """Activate the given scope in the current context."""
        return _active_scopes.set({**_active_scopes.get(), self: scope})

    def remove(self) -> None:
        """Clear the active scope in the current context."""
        active = dict(_active_scopes.get())
        active.pop(self, None)
        _active_scopes.set(active)

    @contextmanager
    def scoped(self, scope: int | None) -> Iterator["Scope"]:
        """Activate a scope for the duration of a block."""
        token = self.to(scope)
        try:
            yield self
        finally:
            _active_scopes.reset(token)

    def get(self) -> int | None:
        """Return the active scope, or None when no scope is active."""
        return _active_scopes.get().get(self)

    def only_relations(self, enabled: bool = True) -> None:
        """Only partition pivot tables, leaving abilities and roles shared."""
        self._only_relations = enabled

    @property
    def scopes_only_relations(self) -> bool:
        return self._only_relations

    def current_scope(self) -> int | None:
        """Value to stamp on newly written pivot rows."""
        return self.get()

    def model_scope(self) -> int | None:
        """Value to stamp on newly created abilities and roles."""
        if self._only_relations:
            return None
        return self.get()

    def apply_to_model_query(self, statement: S, entity: Any) -> S:
        """Restrict a model table (abilities, roles) to the active scope."""
        if self._only_relations:
            return statement
        return statement.where(self._criterion(entity))

    def apply_to_relation_query(self, statement: S, entity: Any) -> S:
        """Restrict a relation table (assigned_roles, permissions) to the active scope."""
        return statement.where(self._criterion(entity))

    def _criterion(self, entity: Any) -> ColumnElement[bool]:
        column = _scope_column(entity)
        scope = self.get()
        if scope is None:
            return column.is_(None)
        return column == scope


def _scope_column(entity: Any) -> ColumnElement[Any]:
    """Return the ``scope`` column of a mapped class, alias or core table."""
    columns = getattr(entity, "c", None)
    if columns is not None:
        return columns.scope
    return entity.scope


_scope = Scope()


def get_scope() -> Scope:
    """Get the process-wide scope provider."""
    return _scope


def set_scope(scope: Scope) -> Scope:
    """Swap the process-wide scope provider, returning the previous one."""
    global _scope
    previous, _scope = _scope, scope
    return previous
