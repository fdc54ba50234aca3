"""Write-side permission management.

Creates roles and abilities and maintains the pivot rows that grant,
forbid and assign them. Every row is written into the active scope.
The service only flushes; callers own the transaction.
"""

from typing import Any

import structlog
from sqlalchemy import delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rolegate.core.database.scope import Scope, get_scope
from rolegate.core.errors import NotFoundError, ValidationError
from rolegate.core.permissions.models import (
    Ability,
    Authority,
    Grantee,
    MalformedReference,
    Role,
    assigned_roles,
    permissions,
    resolve_target,
)


logger = structlog.get_logger()


class PermissionService:
    """Service for granting, forbidding and assigning.

    Usage:
        service = PermissionService(session)
        editor = await service.create_role("editor", level=1)
        await service.allow(editor, "edit", Post)
        await service.assign(user, editor)
    """

    def __init__(self, session: AsyncSession, scope: Scope | None = None) -> None:
        self.session = session
        self.scope = scope or get_scope()

    # Roles

    async def find_role(self, name: str) -> Role | None:
        """Get a role by name within the active scope."""
        stmt = select(Role).where(Role.name == name)
        stmt = self.scope.apply_to_model_query(stmt, Role)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_role(
        self,
        name: str,
        title: str | None = None,
        level: int | None = None,
    ) -> Role:
        """Create a role in the active scope.

        Raises:
            ValidationError: If level is negative
        """
        if level is not None and level < 0:
            raise ValidationError(
                "Role level must be non-negative",
                errors=[{"field": "level", "message": "Must be >= 0"}],
            )
        role = Role(name=name, title=title, level=level, scope=self.scope.model_scope())
        self.session.add(role)
        await self.session.flush()
        logger.info("role_created", role=name, level=level, scope=role.scope)
        return role

    async def ensure_role(self, role: str | Role, level: int | None = None) -> Role:
        """Return the given role, finding or creating it by name."""
        if isinstance(role, Role):
            return role
        existing = await self.find_role(role)
        if existing is not None:
            return existing
        return await self.create_role(role, level=level)

    async def delete_role(self, role: str | Role) -> None:
        """Delete a role along with its assignments and permissions.

        Raises:
            NotFoundError: If no role with that name exists in the scope
        """
        if isinstance(role, str):
            found = await self.find_role(role)
            if found is None:
                raise NotFoundError("Role not found", resource="role", resource_id=role)
            role = found
        await self.session.delete(role)
        await self.session.flush()
        logger.info("role_deleted", role=role.name, scope=role.scope)

    # Assignments

    async def assign(
        self, authority: Authority, role: str | Role, level: int | None = None
    ) -> Role:
        """Assign a role to an authority, creating the role if needed."""
        role = await self.ensure_role(role, level=level)
        grantee = Grantee.for_authority(authority)

        stmt = select(assigned_roles.c.role_id).where(
            assigned_roles.c.role_id == role.id,
            assigned_roles.c.entity_type == grantee.kind,
            assigned_roles.c.entity_id == grantee.id,
        )
        stmt = self.scope.apply_to_relation_query(stmt, assigned_roles)
        if (await self.session.execute(stmt)).first() is None:
            await self.session.execute(
                insert(assigned_roles).values(
                    role_id=role.id,
                    entity_type=grantee.kind,
                    entity_id=grantee.id,
                    scope=self.scope.current_scope(),
                )
            )
            logger.info("role_assigned", role=role.name, authority_id=str(grantee.id))
        return role

    async def retract(self, authority: Authority, role: str | Role) -> None:
        """Remove a role from an authority; unknown roles are ignored."""
        if isinstance(role, str):
            found = await self.find_role(role)
            if found is None:
                return
            role = found
        grantee = Grantee.for_authority(authority)

        stmt = delete(assigned_roles).where(
            assigned_roles.c.role_id == role.id,
            assigned_roles.c.entity_type == grantee.kind,
            assigned_roles.c.entity_id == grantee.id,
        )
        stmt = self.scope.apply_to_relation_query(stmt, assigned_roles)
        await self.session.execute(stmt)
        logger.info("role_retracted", role=role.name, authority_id=str(grantee.id))

    # Abilities

    async def find_ability(
        self,
        ability: str,
        target: Any = None,
        only_owned: bool = False,
    ) -> Ability | None:
        """Get the ability with this name, target and ownership flag.

        Raises:
            ValidationError: If the target cannot be resolved
        """
        entity_type, entity_id = _target_columns(target)

        stmt = select(Ability).where(
            Ability.name == ability,
            Ability.only_owned.is_(only_owned),
            (
                Ability.entity_type.is_(None)
                if entity_type is None
                else Ability.entity_type == entity_type
            ),
            (
                Ability.entity_id.is_(None)
                if entity_id is None
                else Ability.entity_id == entity_id
            ),
        )
        stmt = self.scope.apply_to_model_query(stmt, Ability)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def ensure_ability(
        self,
        ability: str | Ability,
        target: Any = None,
        only_owned: bool = False,
        title: str | None = None,
    ) -> Ability:
        """Return the matching ability, creating it in the active scope if needed."""
        if isinstance(ability, Ability):
            return ability

        existing = await self.find_ability(ability, target, only_owned)
        if existing is not None:
            return existing

        entity_type, entity_id = _target_columns(target)
        created = Ability(
            name=ability,
            title=title,
            entity_type=entity_type,
            entity_id=entity_id,
            only_owned=only_owned,
            scope=self.scope.model_scope(),
        )
        self.session.add(created)
        await self.session.flush()
        return created

    # Permissions

    async def allow(
        self,
        grantee: Grantee | Role | Authority,
        ability: str | Ability,
        target: Any = None,
        only_owned: bool = False,
    ) -> Ability:
        """Grant an ability, replacing a forbid on the same ability."""
        return await self._set_permission(grantee, ability, target, only_owned, False)

    async def forbid(
        self,
        grantee: Grantee | Role | Authority,
        ability: str | Ability,
        target: Any = None,
        only_owned: bool = False,
    ) -> Ability:
        """Forbid an ability, replacing a grant on the same ability."""
        return await self._set_permission(grantee, ability, target, only_owned, True)

    async def disallow(
        self,
        grantee: Grantee | Role | Authority,
        ability: str | Ability,
        target: Any = None,
        only_owned: bool = False,
    ) -> None:
        """Remove a grant; forbids are left in place."""
        await self._remove_permission(grantee, ability, target, only_owned, False)

    async def unforbid(
        self,
        grantee: Grantee | Role | Authority,
        ability: str | Ability,
        target: Any = None,
        only_owned: bool = False,
    ) -> None:
        """Remove a forbid; grants are left in place."""
        await self._remove_permission(grantee, ability, target, only_owned, True)

    async def _set_permission(
        self,
        entity: Grantee | Role | Authority,
        name: str | Ability,
        target: Any,
        only_owned: bool,
        forbidden: bool,
    ) -> Ability:
        ability = await self.ensure_ability(name, target, only_owned)
        grantee = Grantee.of(entity)

        stmt = update(permissions).where(
            permissions.c.ability_id == ability.id,
            permissions.c.entity_type == grantee.kind,
            permissions.c.entity_id == grantee.id,
        )
        stmt = self.scope.apply_to_relation_query(stmt, permissions)
        result = await self.session.execute(stmt.values(forbidden=forbidden))

        if not result.rowcount:
            await self.session.execute(
                insert(permissions).values(
                    ability_id=ability.id,
                    entity_type=grantee.kind,
                    entity_id=grantee.id,
                    forbidden=forbidden,
                    scope=self.scope.current_scope(),
                )
            )

        logger.info(
            "ability_forbidden" if forbidden else "ability_allowed",
            ability=ability.name,
            grantee=grantee.kind.value,
            grantee_id=str(grantee.id),
            scope=self.scope.current_scope(),
        )
        return ability

    async def _remove_permission(
        self,
        entity: Grantee | Role | Authority,
        name: str | Ability,
        target: Any,
        only_owned: bool,
        forbidden: bool,
    ) -> None:
        ability = (
            name
            if isinstance(name, Ability)
            else await self.find_ability(name, target, only_owned)
        )
        if ability is None:
            return
        grantee = Grantee.of(entity)

        stmt = delete(permissions).where(
            permissions.c.ability_id == ability.id,
            permissions.c.entity_type == grantee.kind,
            permissions.c.entity_id == grantee.id,
            permissions.c.forbidden.is_(forbidden),
        )
        stmt = self.scope.apply_to_relation_query(stmt, permissions)
        await self.session.execute(stmt)


def _target_columns(target: Any) -> tuple[str | None, str | None]:
    """Resolve a target into ``(entity_type, entity_id)`` column values."""
    try:
        ref = resolve_target(target)
    except MalformedReference as exc:
        raise ValidationError(
            "Ability target cannot be resolved",
            errors=[{"field": "target", "message": exc.reason}],
        ) from exc
    if ref is None:
        return None, None
    return ref.entity_type, ref.entity_id
