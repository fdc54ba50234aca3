"""rolegate - role and ability resolution engine."""

from rolegate.core.database.scope import Scope, get_scope, set_scope
from rolegate.core.permissions import (
    Ability,
    Clipboard,
    Gate,
    GateAdapter,
    Grantee,
    GranteeKind,
    PermissionService,
    Response,
    Role,
)


__all__ = [
    "Ability",
    "Clipboard",
    "Gate",
    "GateAdapter",
    "Grantee",
    "GranteeKind",
    "PermissionService",
    "Response",
    "Role",
    "Scope",
    "get_scope",
    "set_scope",
]
