"""CREL audit events.

Append-only sinks (JSONL file, in-memory) and the event envelope services emit.
"""

from crel.audit.events import build_audit_event, emit_audit_event
from crel.audit.sink import (
    AuditSink,
    AuditSinkError,
    InMemoryAuditSink,
    JsonlFileAuditSink,
    get_audit_sink,
)

__all__ = [
    "AuditSink",
    "AuditSinkError",
    "InMemoryAuditSink",
    "JsonlFileAuditSink",
    "build_audit_event",
    "emit_audit_event",
    "get_audit_sink",
]
