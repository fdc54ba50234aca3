"""Database layer - session management, base models, mixins and scope."""

from rolegate.core.database.base import Base, ScopeMixin, TimestampMixin, UUIDMixin
from rolegate.core.database.scope import Scope, get_scope, set_scope
from rolegate.core.database.session import (
    create_engine_from_settings,
    get_db,
    get_engine,
    get_session_factory,
)


__all__ = [
    "Base",
    "Scope",
    "ScopeMixin",
    "TimestampMixin",
    "UUIDMixin",
    "create_engine_from_settings",
    "get_db",
    "get_engine",
    "get_scope",
    "get_session_factory",
    "set_scope",
]
