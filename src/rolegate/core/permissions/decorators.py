"""Ability and role decorators for route protection.

This module provides decorators that can be applied to FastAPI
routes to require an ability or a set of roles. The wrapped handler
must receive ``current_user`` and ``db`` keyword arguments.
"""

from collections.abc import Awaitable, Callable
from functools import wraps
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar, cast

import structlog

from rolegate.core.errors import ForbiddenError, UnauthorizedError
from rolegate.core.permissions.clipboard import Clipboard, RoleBoolean


if TYPE_CHECKING:
    from fastapi import Request
    from sqlalchemy.ext.asyncio import AsyncSession


logger = structlog.get_logger()

P = ParamSpec("P")
R = TypeVar("R")


def _get_authority_and_db(
    kwargs: dict[str, Any],
) -> tuple[Any, "AsyncSession"]:
    """Extract the authority and db session from handler kwargs.

    Raises:
        UnauthorizedError: If there is no current user
        ForbiddenError: If there is no database session to check against
    """
    authority = kwargs.get("current_user")
    db = cast("AsyncSession | None", kwargs.get("db"))
    request = cast("Request | None", kwargs.get("request"))

    if authority is None:
        raise UnauthorizedError(
            "Authentication required",
            error_code="auth_required",
        )

    if db is None:
        logger.error(
            "permission_check_without_session",
            endpoint=request.url.path if request else "unknown",
        )
        raise ForbiddenError(
            "Permission check failed",
            error_code="permission_check_failed",
        )

    return authority, db


def require_ability(
    ability: str, model: type | str | None = None
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Decorator that requires an ability to access a route.

    Usage:
        @router.post("/posts")
        @require_ability("create", Post)
        async def create_post(current_user: CurrentAuthority, db: DBSession):
            ...

    Args:
        ability: The ability name (e.g., "create")
        model: Optional model class or type tag the ability applies to

    Returns:
        Decorator function

    Raises:
        ForbiddenError: If the authority lacks the ability
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            authority, db = _get_authority_and_db(kwargs)

            if not await Clipboard(db).check(authority, ability, model):
                raise ForbiddenError(
                    f"Missing required ability: {ability}",
                    error_code="permission_denied",
                    details={"required_ability": ability},
                )

            return await func(*args, **kwargs)

        return wrapper

    return decorator


def require_role(
    *roles: str, boolean: RoleBoolean = "or"
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Decorator that requires role membership to access a route.

    Usage:
        @router.get("/reports")
        @require_role("admin", "auditor")
        async def get_reports(current_user: CurrentAuthority, db: DBSession):
            ...

    Args:
        roles: Role names
        boolean: "or" for any of the roles, "and" for all, "not" for none

    Returns:
        Decorator function
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            authority, db = _get_authority_and_db(kwargs)

            if not await Clipboard(db).check_role(authority, list(roles), boolean):
                raise ForbiddenError(
                    f"Role requirement not met ({boolean}): {', '.join(roles)}",
                    error_code="role_required",
                    details={"required_roles": list(roles), "boolean": boolean},
                )

            return await func(*args, **kwargs)

        return wrapper

    return decorator
