"""Request correlation ids.

An incoming X-Request-Id is reused only when it is a short token of
letters, digits and ``._:-``; anything else is replaced by a uuid4 so ids
written into audit events and log lines stay safe to store.
"""

from __future__ import annotations

import re
import uuid

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from crel.api.error_model import REQUEST_ID_HEADER

_ACCEPTED_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def resolve_request_id(incoming: str | None) -> str:
    """Return the caller's id when acceptable, else a fresh uuid4."""
    candidate = (incoming or "").strip()
    if _ACCEPTED_REQUEST_ID.match(candidate):
        return candidate
    return str(uuid.uuid4())


class RequestIdMiddleware:
    """Store the id on request.state.request_id and echo it on the response."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = resolve_request_id(Headers(scope=scope).get(REQUEST_ID_HEADER))
        scope.setdefault("state", {})["request_id"] = request_id

        async def send_with_header(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message)[REQUEST_ID_HEADER] = request_id
            await send(message)

        await self.app(scope, receive, send_with_header)
