"""Users module - the default authority model."""

from rolegate.modules.users.models import User


__all__ = [
    "User",
]
