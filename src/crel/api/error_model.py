"""Error envelope shared by exception handlers and middleware.

Every failure response is an ErrorEnvelope serialized as JSON, with the
request id repeated in the X-Request-Id header.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

REQUEST_ID_HEADER = "X-Request-Id"

_CODE_FOR_STATUS: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "UNPROCESSABLE_ENTITY",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


class ErrorEnvelope(BaseModel):
    """Body of every error response."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    details: dict[str, Any] | None = None
    request_id: str


def code_for_status(status_code: int) -> str:
    return _CODE_FOR_STATUS.get(status_code, "ERROR")


def error_response(
    *,
    code: str,
    message: str,
    status_code: int,
    request_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Render an ErrorEnvelope. Also usable as a raw ASGI app from middleware."""
    envelope = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        request_id=request_id or str(uuid.uuid4()),
    )
    return JSONResponse(
        status_code=status_code,
        content=envelope.model_dump(mode="json"),
        headers={REQUEST_ID_HEADER: envelope.request_id},
    )


def error_response_for(
    request: Request,
    *,
    code: str,
    message: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Render an ErrorEnvelope carrying the id RequestIdMiddleware assigned."""
    return error_response(
        code=code,
        message=message,
        status_code=status_code,
        request_id=getattr(request.state, "request_id", None),
        details=details,
    )
