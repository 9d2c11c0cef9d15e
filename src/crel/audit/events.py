"""Audit event construction and fail-closed emission."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from crel.audit.sink import AuditSink, AuditSinkError

logger = logging.getLogger(__name__)


def build_audit_event(
    *,
    tenant_id: str,
    event_type: str,
    occurred_at: str,
    resource_type: str,
    resource_id: str,
    actor: dict[str, Any] | None = None,
    request_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build an audit event envelope.

    Args:
        tenant_id: Tenant the event belongs to.
        event_type: Dotted event name, e.g. ``evaluation.approved``.
        occurred_at: ISO-8601 UTC timestamp.
        resource_type: Kind of resource acted upon.
        resource_id: Identifier of that resource.
        actor: Actor identity dict (actor_id, name, position).
        request_id: Correlation id of the originating request, if any.
        details: Event-specific payload.

    Returns:
        Event dict ready for AuditSink.emit().
    """
    return {
        "event_id": str(uuid.uuid4()),
        "occurred_at": occurred_at,
        "tenant_id": tenant_id,
        "event_type": event_type,
        "resource": {"resource_type": resource_type, "resource_id": resource_id},
        "actor": actor or {"actor_id": "system", "name": "system"},
        "request_id": request_id,
        "summary": f"{event_type} for {resource_type} {resource_id}",
        "details": details or {},
    }


def emit_audit_event(sink: AuditSink, event: dict[str, Any]) -> None:
    """Emit an event, converting any sink failure into AuditSinkError.

    Raises:
        AuditSinkError: If the sink fails.
    """
    try:
        sink.emit(event)
    except AuditSinkError:
        logger.error("Audit sink rejected event %s", event.get("event_type"))
        raise
    except Exception as exc:
        raise AuditSinkError(
            f"Audit sink failure for event '{event.get('event_type')}': {exc}"
        ) from exc
