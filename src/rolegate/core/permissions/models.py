"""Permission system database models.

This module defines the RBAC models:
- Ability: A named action, optionally bound to a target type or instance
- Role: A named, optionally leveled set of abilities within a scope
- assigned_roles: Pivot table linking grantees to roles
- permissions: Pivot table granting (or forbidding) abilities to grantees

Pivot rows identify their grantee with a ``GranteeKind`` tag and the
grantee's id. Targets of abilities are identified by a free-form type
tag plus the string form of their primary key.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    UniqueConstraint,
    Uuid,
    delete,
    event,
    select,
)
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Mapped, Mapper, ORMExecuteState, Session, mapped_column
from sqlalchemy.orm.state import InstanceState

from rolegate.core.constants import (
    MAX_ABILITY_NAME_LENGTH,
    MAX_ENTITY_ID_LENGTH,
    MAX_ENTITY_TYPE_LENGTH,
    MAX_GRANTEE_KIND_LENGTH,
    MAX_ROLE_NAME_LENGTH,
    MAX_TITLE_LENGTH,
)
from rolegate.core.database.base import Base, ScopeMixin, TimestampMixin, UUIDMixin


class MalformedReference(Exception):
    """Raised when a check target cannot be resolved to an entity reference."""

    def __init__(self, target: Any, reason: str) -> None:
        self.target = target
        self.reason = reason
        super().__init__(f"Cannot resolve {type(target).__name__} target: {reason}")


class GranteeKind(StrEnum):
    """Kinds of entity a pivot row can point at."""

    AUTHORITY = "authority"
    ROLE = "role"


class Authority(Protocol):
    """Anything with an identity can be checked."""

    id: Any


@dataclass(frozen=True)
class Grantee:
    """The receiving side of an assignment or permission row."""

    kind: GranteeKind
    id: UUID

    @classmethod
    def for_authority(cls, authority: Authority) -> "Grantee":
        return cls(GranteeKind.AUTHORITY, authority.id)

    @classmethod
    def for_role(cls, role: "Role") -> "Grantee":
        return cls(GranteeKind.ROLE, role.id)

    @classmethod
    def of(cls, entity: "Grantee | Role | Authority") -> "Grantee":
        """Build a grantee from a role, an authority or an existing grantee."""
        if isinstance(entity, Grantee):
            return entity
        if isinstance(entity, Role):
            return cls.for_role(entity)
        return cls.for_authority(entity)


@dataclass(frozen=True)
class TargetRef:
    """A resolved check target: a type tag and, for instances, a key."""

    entity_type: str
    entity_id: str | None = None

    @property
    def is_instance(self) -> bool:
        return self.entity_id is not None


def entity_type_for(model: Any) -> str:
    """Type tag for a mapped class or instance.

    Models may declare ``__morph_name__`` to decouple the tag from the
    table name.
    """
    cls = model if isinstance(model, type) else type(model)
    return getattr(cls, "__morph_name__", None) or cls.__tablename__


def resolve_target(target: Any) -> TargetRef | None:
    """Resolve a check target into a ``TargetRef``.

    Args:
        target: None, a type tag, a mapped class or a mapped instance

    Returns:
        None when there is no target, otherwise the reference

    Raises:
        MalformedReference: If the target is not a model, a model class or
            a type tag, or an instance has no usable primary key
    """
    if target is None:
        return None
    if isinstance(target, str):
        if not target:
            raise MalformedReference(target, "empty type tag")
        return TargetRef(target)

    info = sa_inspect(target, raiseerr=False)
    if isinstance(info, Mapper):
        return TargetRef(entity_type_for(info.class_))
    if not isinstance(info, InstanceState):
        raise MalformedReference(target, "not a mapped model")

    identity = info.identity or tuple(info.mapper.primary_key_from_instance(target))
    if len(identity) != 1:
        raise MalformedReference(target, "composite primary keys are not supported")
    if identity[0] is None:
        raise MalformedReference(target, "instance has no primary key")
    return TargetRef(entity_type_for(target), str(identity[0]))


def _grantee_kind_column() -> Enum:
    return Enum(
        GranteeKind,
        native_enum=False,
        length=MAX_GRANTEE_KIND_LENGTH,
        values_callable=lambda kinds: [kind.value for kind in kinds],
        name="grantee_kind",
    )


# Pivot linking grantees (usually authorities) to roles
assigned_roles = Table(
    "assigned_roles",
    Base.metadata,
    Column(
        "role_id",
        Uuid,
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("entity_id", Uuid, nullable=False),
    Column("entity_type", _grantee_kind_column(), nullable=False),
    Column("scope", Integer, nullable=True, index=True),
    Index("assigned_roles_entity_index", "entity_id", "entity_type", "scope"),
)


# Pivot granting or forbidding abilities to grantees (authorities or roles)
permissions = Table(
    "permissions",
    Base.metadata,
    Column(
        "ability_id",
        Uuid,
        ForeignKey("abilities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("entity_id", Uuid, nullable=False),
    Column("entity_type", _grantee_kind_column(), nullable=False),
    Column("forbidden", Boolean, nullable=False, default=False),
    Column("scope", Integer, nullable=True, index=True),
    Index("permissions_entity_index", "entity_id", "entity_type", "scope"),
)


class Ability(Base, UUIDMixin, TimestampMixin, ScopeMixin):
    """Ability model representing something an authority may do.

    Attributes:
        name: Ability name (e.g., "edit", "publish"), or "*" for any
        title: Optional display text
        entity_type: Target type tag, "*" for any type, None for global
        entity_id: Primary key of a specific target instance
        only_owned: Whether the ability applies only to owned targets
    """

    __tablename__ = "abilities"

    name: Mapped[str] = mapped_column(
        String(MAX_ABILITY_NAME_LENGTH),
        nullable=False,
        index=True,
    )
    title: Mapped[str | None] = mapped_column(
        String(MAX_TITLE_LENGTH),
        nullable=True,
    )
    entity_type: Mapped[str | None] = mapped_column(
        String(MAX_ENTITY_TYPE_LENGTH),
        nullable=True,
    )
    entity_id: Mapped[str | None] = mapped_column(
        String(MAX_ENTITY_ID_LENGTH),
        nullable=True,
    )
    only_owned: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    @property
    def is_global(self) -> bool:
        """Whether the ability is not bound to any target type."""
        return self.entity_type is None

    def __repr__(self) -> str:
        target = self.entity_type or "-"
        if self.entity_id is not None:
            target = f"{target}#{self.entity_id}"
        return f"<Ability(name={self.name}, target={target}, scope={self.scope})>"


class Role(Base, UUIDMixin, TimestampMixin, ScopeMixin):
    """Role model representing a named set of abilities.

    Lower levels are more senior: an authority whose highest assigned
    level is L inherits every ability allowed to roles below L. Roles
    without a level sit outside the hierarchy.

    Attributes:
        name: Role name, unique within a scope
        title: Optional display text
        level: Optional position in the seniority hierarchy
    """

    __tablename__ = "roles"
    __table_args__ = (
        UniqueConstraint("name", "scope", name="roles_name_unique"),
        CheckConstraint("level IS NULL OR level >= 0", name="roles_level_unsigned"),
    )

    name: Mapped[str] = mapped_column(
        String(MAX_ROLE_NAME_LENGTH),
        nullable=False,
        index=True,
    )
    title: Mapped[str | None] = mapped_column(
        String(MAX_TITLE_LENGTH),
        nullable=True,
    )
    level: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )

    @staticmethod
    def role_names(roles: "str | Role | Iterable[str | Role]") -> list[str]:
        """Normalize a role, a name, or a collection of either into names."""
        if isinstance(roles, str | Role):
            roles = [roles]
        names: list[str] = []
        for role in roles:
            name = role.name if isinstance(role, Role) else role
            if name not in names:
                names.append(name)
        return names

    def __repr__(self) -> str:
        return f"<Role(name={self.name}, level={self.level}, scope={self.scope})>"


@event.listens_for(Role, "after_delete")
def _delete_role_permissions(_mapper: Any, connection: Any, target: Role) -> None:
    """Remove permission rows granted to a role that no longer exists."""
    connection.execute(
        delete(permissions).where(
            permissions.c.entity_type == GranteeKind.ROLE,
            permissions.c.entity_id == target.id,
        )
    )


@event.listens_for(Session, "do_orm_execute")
def _delete_bulk_role_permissions(state: ORMExecuteState) -> None:
    """Remove permission rows of roles removed by a bulk ``delete(Role)``."""
    if not state.is_delete or state.bind_mapper is not Role.__mapper__:
        return

    role_ids = select(Role.id)
    if state.statement.whereclause is not None:
        role_ids = role_ids.where(state.statement.whereclause)

    state.session.execute(
        delete(permissions).where(
            permissions.c.entity_type == GranteeKind.ROLE,
            permissions.c.entity_id.in_(role_ids),
        )
    )
