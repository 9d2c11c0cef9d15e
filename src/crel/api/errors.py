"""CREL API error handling.

Exception handlers rendering every failure into the error envelope:

- CrelError: domain errors raised by services (status and code on the class)
- CrelHttpError: API-layer errors (authentication, authorization)
- HTTPException: FastAPI/Starlette HTTP exceptions
- RequestValidationError: request schema failures (422)
- Exception: catch-all (fail closed, no stack traces)
"""

import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from crel.api.deps import get_request_id
from crel.api.error_model import code_for_status, error_response_for
from crel.errors import CrelError

logger = logging.getLogger(__name__)


class CrelHttpError(Exception):
    """API-level HTTP error with structured error envelope.

    Attributes:
        status_code: HTTP status code (e.g., 401, 403).
        code: Machine-readable error code (e.g., "UNAUTHORIZED").
        message: Human-readable error message.
        details: Optional dict with additional error context.
    """

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details


async def crel_http_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, CrelHttpError)

    return error_response_for(
        request,
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
    )


async def crel_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map domain errors to their status and code.

    Server-side failures are logged; client errors are logged at info level.
    """
    assert isinstance(exc, CrelError)

    if exc.status_code >= 500:
        logger.error(
            "%s: %s",
            exc.code,
            exc.message,
            extra={"request_id": get_request_id(request)},
        )
    else:
        logger.info(
            "%s: %s",
            exc.code,
            exc.message,
            extra={"request_id": get_request_id(request)},
        )

    return error_response_for(
        request,
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
    )


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, HTTPException)

    code = code_for_status(exc.status_code)
    message = str(exc.detail) if exc.detail else f"HTTP {exc.status_code}"

    return error_response_for(
        request,
        code=code,
        message=message,
        status_code=exc.status_code,
        details=None,
    )


async def request_validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map request schema errors to the envelope without exposing raw internals."""
    assert isinstance(exc, RequestValidationError)

    safe_details: list[dict[str, Any]] = []
    for error in exc.errors():
        loc = error.get("loc", ())
        safe_loc = [str(part) for part in loc if part not in ("body", "query", "path")]
        safe_details.append(
            {
                "field": ".".join(safe_loc) if safe_loc else "request",
                "message": error.get("msg", "Validation error"),
            }
        )

    return error_response_for(
        request,
        code="REQUEST_VALIDATION_FAILED",
        message="Request validation failed",
        status_code=422,
        details={"errors": safe_details} if safe_details else None,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler: 500 with a generic message, exception logged server-side."""
    logger.exception(
        "Unhandled exception: %s",
        type(exc).__name__,
        extra={"request_id": get_request_id(request)},
    )

    return error_response_for(
        request,
        code="INTERNAL_ERROR",
        message="An internal error occurred",
        status_code=500,
        details=None,
    )
