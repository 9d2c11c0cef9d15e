"""One database transaction per /v1 request.

Active only when CREL_DATABASE_URL is set; otherwise services fall back to
their in-memory stores and this middleware passes requests through.

- the connection is exposed to routes as request.state.db_conn
- responses below 400 commit; any 4xx or 5xx rolls back, so a refused or
  failed decision (409 conflict, 500 ledger append failure) leaves neither
  the state change nor the ledger snapshot behind
- the response is held back until the commit has succeeded; a commit
  failure is reported as 503 DATABASE_UNAVAILABLE instead of a success
  the store never kept

Sync SQLAlchemy calls run via asyncio.to_thread().
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from crel.api.error_model import error_response
from crel.persistence.db import get_app_engine, is_database_configured

if TYPE_CHECKING:
    from sqlalchemy import Connection, RootTransaction

logger = logging.getLogger(__name__)

TRANSACTIONAL_PREFIX = "/v1"


class RequestTransaction:
    """Connection plus root transaction owned by a single request."""

    def __init__(self) -> None:
        self.conn: Connection | None = None
        self._trans: RootTransaction | None = None

    def begin(self) -> None:
        self.conn = get_app_engine().connect()
        self._trans = self.conn.begin()

    def commit(self) -> None:
        if self._trans is not None:
            self._trans.commit()

    def rollback(self) -> None:
        if self._trans is not None and self._trans.is_active:
            self._trans.rollback()

    def close(self) -> None:
        if self.conn is None:
            return
        try:
            self.conn.close()
        except Exception as e:
            logger.warning("Failed to close DB connection: %s", e)


def _database_unavailable(message: str, request_id: str | None) -> ASGIApp:
    return error_response(
        code="DATABASE_UNAVAILABLE",
        message=message,
        status_code=503,
        request_id=request_id,
    )


class DBTransactionMiddleware:
    """Request-scoped transaction. Must run inside RequestIdMiddleware."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if (
            scope["type"] != "http"
            or not scope["path"].startswith(TRANSACTIONAL_PREFIX)
            or not is_database_configured()
        ):
            await self.app(scope, receive, send)
            return

        state = scope.setdefault("state", {})
        request_id: str | None = state.get("request_id")
        tx = RequestTransaction()

        try:
            await asyncio.to_thread(tx.begin)
        except Exception as e:
            logger.error("Failed to open DB connection: %s", e, extra={"request_id": request_id})
            await asyncio.to_thread(tx.close)
            await _database_unavailable("Database connection failed", request_id)(
                scope, receive, send
            )
            return

        state["db_conn"] = tx.conn
        held: list[Message] = []
        status = 500

        async def hold(message: Message) -> None:
            nonlocal status
            if message["type"] == "http.response.start":
                status = message["status"]
            held.append(message)

        try:
            try:
                await self.app(scope, receive, hold)
            except Exception:
                await asyncio.to_thread(tx.rollback)
                raise

            if status >= 400:
                await asyncio.to_thread(tx.rollback)
                logger.debug(
                    "Rolled back %s %s (status=%s)",
                    scope["method"],
                    scope["path"],
                    status,
                    extra={"request_id": request_id},
                )
            else:
                try:
                    await asyncio.to_thread(tx.commit)
                except Exception as e:
                    logger.error(
                        "Commit failed for %s %s: %s",
                        scope["method"],
                        scope["path"],
                        e,
                        extra={"request_id": request_id},
                    )
                    await asyncio.to_thread(tx.rollback)
                    await _database_unavailable("Database commit failed", request_id)(
                        scope, receive, send
                    )
                    return

            for message in held:
                await send(message)
        finally:
            state["db_conn"] = None
            await asyncio.to_thread(tx.close)
