"""RFC 7807 Problem Details exception handlers.

Renders package exceptions raised from protected routes as
standardized problem detail responses.

See: https://tools.ietf.org/html/rfc7807
"""

from typing import TYPE_CHECKING, Any, cast

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from rolegate.core.errors.exceptions import AppException


if TYPE_CHECKING:
    from starlette.types import ExceptionHandler


logger = structlog.get_logger()


class ProblemDetail(BaseModel):
    """RFC 7807 Problem Details response schema.

    Attributes:
        type: URI reference identifying the problem type
        title: Short human-readable summary
        status: HTTP status code
        detail: Human-readable explanation specific to this occurrence
        instance: URI reference identifying this specific occurrence
    """

    type: str
    title: str
    status: int
    detail: str
    instance: str | None = None

    model_config = {"extra": "allow"}


def _get_error_type_uri(error_code: str) -> str:
    return f"about:blank#{error_code}"


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Convert AppException subclasses to RFC 7807 Problem Details responses."""
    logger.warning(
        "app_exception",
        error_code=exc.error_code,
        message=exc.message,
        status_code=exc.status_code,
        path=str(request.url.path),
        details=exc.details,
    )

    content: dict[str, Any] = ProblemDetail(
        type=_get_error_type_uri(exc.error_code),
        title=exc.error_code.replace("_", " ").title(),
        status=exc.status_code,
        detail=exc.message,
        instance=str(request.url.path),
    ).model_dump(exclude_none=True)

    # Add any additional details from the exception
    for key, value in exc.details.items():
        if key not in content:
            content[key] = value

    return JSONResponse(
        status_code=exc.status_code,
        content=content,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register the package exception handlers with a FastAPI app.

        app = FastAPI()
        register_exception_handlers(app)
    """
    app.add_exception_handler(
        AppException, cast("ExceptionHandler", app_exception_handler)
    )
