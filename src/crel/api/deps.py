"""Request-scoped collaborators shared by the route modules."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import Request

from crel.audit.sink import AuditSink, InMemoryAuditSink

if TYPE_CHECKING:
    from sqlalchemy import Connection


def get_db_conn(request: Request) -> Connection | None:
    """Connection opened by DBTransactionMiddleware, or None for in-memory mode."""
    conn: Any = getattr(request.state, "db_conn", None)
    return conn


def get_request_audit_sink(request: Request) -> AuditSink:
    sink: AuditSink | None = getattr(request.app.state, "audit_sink", None)
    return sink if sink is not None else InMemoryAuditSink()


def get_request_id(request: Request) -> str | None:
    request_id: str | None = getattr(request.state, "request_id", None)
    return request_id
