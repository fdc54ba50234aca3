"""Permission system: abilities, roles, scoped grants and gate integration."""

from rolegate.core.permissions.adapter import GateAdapter, parse_gate_arguments
from rolegate.core.permissions.clipboard import Clipboard
from rolegate.core.permissions.decorators import require_ability, require_role
from rolegate.core.permissions.gate import Gate, Response
from rolegate.core.permissions.models import (
    Ability,
    Grantee,
    GranteeKind,
    MalformedReference,
    Role,
    TargetRef,
    assigned_roles,
    permissions,
    resolve_target,
)
from rolegate.core.permissions.ownership import Ownership, get_ownership
from rolegate.core.permissions.queries import AbilitiesQuery
from rolegate.core.permissions.services import PermissionService


__all__ = [
    # Models
    "Ability",
    "Grantee",
    "GranteeKind",
    "MalformedReference",
    "Role",
    "TargetRef",
    "assigned_roles",
    "permissions",
    "resolve_target",
    # Resolution
    "AbilitiesQuery",
    "Clipboard",
    "Ownership",
    "get_ownership",
    # Gate
    "Gate",
    "GateAdapter",
    "Response",
    "parse_gate_arguments",
    # Write side
    "PermissionService",
    # Decorators
    "require_ability",
    "require_role",
]
