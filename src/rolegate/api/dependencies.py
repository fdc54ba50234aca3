"""Shared API dependencies."""

from typing import Annotated, Any

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rolegate.core.database import get_db
from rolegate.core.errors import UnauthorizedError


# Type alias for database session dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]


async def get_current_authority() -> Any:
    """Resolve the authority for the current request.

    Host applications override this dependency with their own
    authentication:

        app.dependency_overrides[get_current_authority] = get_current_user
    """
    raise UnauthorizedError(
        "No authority resolver configured",
        error_code="auth_required",
    )


CurrentAuthority = Annotated[Any, Depends(get_current_authority)]
