"""Ability resolution queries.

Builds the statements answering "which abilities are allowed (or
forbidden) to this authority", either granted to the authority itself
or to a role it holds. Allowed abilities also flow down the role
hierarchy: an authority inherits the allows of every role whose level
is below the highest level among its own roles. Forbids never flow
down; they only apply through roles the authority is assigned.

Everything is expressed as correlated ``EXISTS`` clauses on the
``abilities`` table so a check is a single round trip.
"""

from typing import Any, TypeVar

from sqlalchemy import Select, func, or_, select
from sqlalchemy.orm import aliased
from sqlalchemy.sql import ColumnElement

from rolegate.core.constants import WILDCARD
from rolegate.core.database.scope import Scope, get_scope
from rolegate.core.permissions.models import (
    Ability,
    Authority,
    GranteeKind,
    Role,
    TargetRef,
    assigned_roles,
    permissions,
)


S = TypeVar("S", bound=Select[Any])


class AbilitiesQuery:
    """Builds scoped ability queries for an authority."""

    def __init__(self, scope: Scope | None = None) -> None:
        self.scope = scope or get_scope()

    def for_authority(self, authority: Authority, allowed: bool = True) -> Select[Any]:
        """Select the abilities allowed (or forbidden) to an authority.

        Args:
            authority: The authority whose abilities are requested
            allowed: True for granted abilities, False for forbidden ones

        Returns:
            A select of ``Ability`` rows
        """
        return self.constrain(select(Ability), authority, allowed)

    def constrain(self, statement: S, authority: Authority, allowed: bool) -> S:
        """Restrict a statement over ``abilities`` to the authority's grants."""
        statement = statement.where(
            or_(
                self._role_constraint(authority, allowed),
                self._authority_constraint(authority, allowed),
            )
        )
        return self.scope.apply_to_model_query(statement, Ability)

    def matching(
        self,
        statement: S,
        authority: Authority,
        ability: str,
        target: TargetRef | None,
        owned: bool,
        allowed: bool,
    ) -> S:
        """Restrict a statement to the authority's abilities that apply to a check.

        Args:
            statement: A select over ``abilities``
            authority: The authority being checked
            ability: The ability name
            target: The resolved target, or None for a simple check
            owned: Whether the authority owns the target
            allowed: True for granted abilities, False for forbidden ones
        """
        statement = self.constrain(statement, authority, allowed)
        statement = statement.where(applicable_to(ability, target))
        if not owned:
            statement = statement.where(Ability.only_owned.is_(False))
        return statement

    def _authority_constraint(
        self, authority: Authority, allowed: bool
    ) -> ColumnElement[bool]:
        """Abilities granted to the authority directly."""
        query = select(permissions.c.ability_id).where(
            permissions.c.ability_id == Ability.id,
            permissions.c.entity_type == GranteeKind.AUTHORITY,
            permissions.c.entity_id == authority.id,
            permissions.c.forbidden.is_(not allowed),
        )
        query = self.scope.apply_to_relation_query(query, permissions)
        return query.exists()

    def _role_constraint(self, authority: Authority, allowed: bool) -> ColumnElement[bool]:
        """Abilities granted to a role the authority holds (or inherits)."""
        role = aliased(Role, name="granting_roles")

        held: ColumnElement[bool] = self._authority_role_constraint(authority, role)
        if allowed:
            held = or_(held, self._role_inherit_condition(authority, role))

        query = (
            select(role.id)
            .join(
                permissions,
                permissions.c.entity_id == role.id,
            )
            .where(
                permissions.c.ability_id == Ability.id,
                permissions.c.forbidden.is_(not allowed),
                permissions.c.entity_type == GranteeKind.ROLE,
                held,
            )
        )
        query = self.scope.apply_to_model_query(query, role)
        query = self.scope.apply_to_relation_query(query, permissions)
        return query.exists()

    def _role_inherit_condition(
        self, authority: Authority, role: Any
    ) -> ColumnElement[bool]:
        """Role level is below the highest level the authority holds."""
        held_role = aliased(Role, name="held_roles")
        max_level = select(func.max(held_role.level)).where(
            self._authority_role_constraint(authority, held_role)
        )
        max_level = self.scope.apply_to_model_query(max_level, held_role)
        return role.level < max_level.scalar_subquery()

    def _authority_role_constraint(
        self, authority: Authority, role: Any
    ) -> ColumnElement[bool]:
        """The given role is assigned to the authority."""
        pivot = assigned_roles.alias()
        query = select(pivot.c.role_id).where(
            pivot.c.role_id == role.id,
            pivot.c.entity_type == GranteeKind.AUTHORITY,
            pivot.c.entity_id == authority.id,
        )
        query = self.scope.apply_to_relation_query(query, pivot)
        return query.exists()


def applicable_to(ability: str, target: TargetRef | None) -> ColumnElement[bool]:
    """Criterion for abilities matching a name and target.

    - no target: global abilities with that name, or global/any-type
      wildcard abilities
    - class target: abilities for that type without an id, or any-type ones
    - instance target: as for a class, plus abilities bound to that instance
    """
    if target is None:
        return or_(
            (Ability.name == ability) & Ability.entity_type.is_(None),
            (Ability.name == WILDCARD)
            & or_(Ability.entity_type.is_(None), Ability.entity_type == WILDCARD),
        )

    entity_id: ColumnElement[bool] = Ability.entity_id.is_(None)
    if target.is_instance:
        entity_id = or_(entity_id, Ability.entity_id == target.entity_id)

    return Ability.name.in_([ability, WILDCARD]) & or_(
        Ability.entity_type == WILDCARD,
        (Ability.entity_type == target.entity_type) & entity_id,
    )
