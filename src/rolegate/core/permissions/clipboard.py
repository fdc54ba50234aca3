"""Ability and role checks for authorities.

The clipboard is the read side of the permission system: it answers
whether an authority may perform an ability (optionally on a target),
which roles it holds, and which abilities it has been granted or
forbidden.
"""

from collections.abc import Iterable
from typing import Any, Literal
from uuid import UUID

import structlog
from sqlalchemy import false, select, true, union_all
from sqlalchemy.ext.asyncio import AsyncSession

from rolegate.core.constants import ROLE_BOOLEANS
from rolegate.core.database.scope import Scope, get_scope
from rolegate.core.errors import ValidationError
from rolegate.core.permissions.models import (
    Ability,
    Authority,
    GranteeKind,
    MalformedReference,
    Role,
    assigned_roles,
    resolve_target,
)
from rolegate.core.permissions.ownership import Ownership, get_ownership
from rolegate.core.permissions.queries import AbilitiesQuery


logger = structlog.get_logger()

RoleBoolean = Literal["or", "and", "not"]


class Clipboard:
    """Service for checking an authority's abilities and roles.

    Usage:
        clipboard = Clipboard(session)
        if await clipboard.check(user, "edit", post):
            ...
    """

    def __init__(
        self,
        session: AsyncSession,
        scope: Scope | None = None,
        ownership: Ownership | None = None,
    ) -> None:
        self.session = session
        self.scope = scope or get_scope()
        self.ownership = ownership or get_ownership()
        self.abilities = AbilitiesQuery(self.scope)

    async def check(self, authority: Authority, ability: str, target: Any = None) -> bool:
        """Determine if the authority has the given ability.

        Args:
            authority: The authority to check
            ability: The ability name
            target: Optional model instance, model class or type tag

        Returns:
            True if a matching, non-forbidden ability was found
        """
        return bool(await self.check_get_id(authority, ability, target))

    async def check_get_id(
        self, authority: Authority, ability: str, target: Any = None
    ) -> UUID | Literal[False] | None:
        """Determine if the authority has the given ability, returning its id.

        Returns:
            The id of an allowing ability; False if a matching ability is
            forbidden; None if no rule addresses the check
        """
        try:
            ref = resolve_target(target)
        except MalformedReference as exc:
            logger.debug(
                "ability_check_malformed_target",
                ability=ability,
                reason=exc.reason,
            )
            return None

        owned = self.is_owned_by(authority, target)

        forbidden = self.abilities.matching(
            select(Ability.id, false().label("allowed")),
            authority,
            ability,
            ref,
            owned,
            allowed=False,
        )
        allowed = self.abilities.matching(
            select(Ability.id, true().label("allowed")),
            authority,
            ability,
            ref,
            owned,
            allowed=True,
        )
        result = await self.session.execute(union_all(forbidden, allowed))
        rows = result.all()

        if any(not row.allowed for row in rows):
            logger.debug("ability_forbidden", ability=ability, target=ref)
            return False

        return rows[0].id if rows else None

    async def check_role(
        self,
        authority: Authority,
        roles: str | Role | Iterable[str | Role],
        boolean: RoleBoolean = "or",
    ) -> bool:
        """Check if an authority has the given roles.

        Args:
            authority: The authority to check
            roles: A role name, a role, or a collection of either
            boolean: "or" for any of the roles, "and" for all, "not" for none

        Raises:
            ValidationError: If boolean is not one of "or", "and", "not"
        """
        if boolean not in ROLE_BOOLEANS:
            raise ValidationError(
                f"Unsupported role boolean: {boolean}",
                errors=[{"field": "boolean", "message": "Must be one of or, and, not"}],
            )

        names = Role.role_names(roles)
        available = set(await self.get_roles(authority)) & set(names)

        if boolean == "or":
            return len(available) > 0
        if boolean == "not":
            return len(available) == 0
        return len(available) == len(names)

    async def get_roles(self, authority: Authority) -> list[str]:
        """Get the names of the roles assigned to an authority, by name."""
        stmt = (
            select(Role.name)
            .join(assigned_roles, assigned_roles.c.role_id == Role.id)
            .where(
                assigned_roles.c.entity_type == GranteeKind.AUTHORITY,
                assigned_roles.c.entity_id == authority.id,
            )
            .order_by(Role.name)
            .distinct()
        )
        stmt = self.scope.apply_to_model_query(stmt, Role)
        stmt = self.scope.apply_to_relation_query(stmt, assigned_roles)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_abilities(
        self, authority: Authority, allowed: bool = True
    ) -> list[Ability]:
        """Get the abilities granted (or forbidden) to an authority."""
        stmt = self.abilities.for_authority(authority, allowed).order_by(Ability.name)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_forbidden_abilities(self, authority: Authority) -> list[Ability]:
        """Get the abilities explicitly forbidden to an authority."""
        return await self.get_abilities(authority, allowed=False)

    def is_owned_by(self, authority: Authority, target: Any) -> bool:
        """Determine whether the authority owns the given target."""
        return self.ownership.is_owned_by(authority, target)
