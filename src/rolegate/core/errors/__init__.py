"""Error handling module with RFC 7807 Problem Details."""

from rolegate.core.errors.exceptions import (
    AppException,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from rolegate.core.errors.handlers import (
    ProblemDetail,
    register_exception_handlers,
)


__all__ = [
    # Exceptions
    "AppException",
    "ForbiddenError",
    "NotFoundError",
    # Handlers
    "ProblemDetail",
    "UnauthorizedError",
    "ValidationError",
    "register_exception_handlers",
]
