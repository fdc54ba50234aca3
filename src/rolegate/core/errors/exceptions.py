"""Domain exceptions for the package.

These exceptions represent authorization and input errors and are
converted to RFC 7807 Problem Details responses by the exception
handlers when the package is mounted in a FastAPI application.
"""

from typing import Any


class AppException(Exception):
    """Base exception for all package errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code for clients
        status_code: HTTP status code for the response
        details: Additional error details
    """

    message: str = "An unexpected error occurred"
    error_code: str = "internal_error"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(AppException):
    """Raised when a requested record is not found.

    Example:
        raise NotFoundError("Role not found", resource="role", resource_id="editor")
    """

    message = "Resource not found"
    error_code = "not_found"
    status_code = 404

    def __init__(
        self,
        message: str | None = None,
        resource: str | None = None,
        resource_id: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if resource:
            details["resource"] = resource
        if resource_id:
            details["resource_id"] = resource_id
        super().__init__(message=message, details=details, **kwargs)


class ValidationError(AppException):
    """Raised when arguments fail validation.

    Example:
        raise ValidationError(
            "Unsupported role boolean",
            errors=[{"field": "boolean", "message": "Must be one of or, and, not"}]
        )
    """

    message = "Validation error"
    error_code = "validation_error"
    status_code = 422

    def __init__(
        self,
        message: str | None = None,
        errors: list[dict[str, Any]] | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if errors:
            details["errors"] = errors
        super().__init__(message=message, details=details, **kwargs)


class UnauthorizedError(AppException):
    """Raised when no authority is available for a check.

    Example:
        raise UnauthorizedError("Authentication required")
    """

    message = "Authentication required"
    error_code = "unauthorized"
    status_code = 401


class ForbiddenError(AppException):
    """Raised when an authority lacks an ability or role.

    Example:
        raise ForbiddenError(
            "This action is unauthorized",
            details={"ability": "edit-post"}
        )
    """

    message = "This action is unauthorized"
    error_code = "forbidden"
    status_code = 403
