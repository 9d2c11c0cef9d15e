"""Audit event sinks for CREL.

Sinks are append-only and fail closed: any serialization or IO failure
raises AuditSinkError. Serialization is deterministic (sorted keys, compact
separators) so identical events produce identical lines.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

AUDIT_LOG_PATH_ENV = "CREL_AUDIT_LOG_PATH"
DEFAULT_AUDIT_LOG_PATH = "./var/audit/audit_events.jsonl"


class AuditSinkError(Exception):
    """Raised when an audit event cannot be recorded."""

    pass


@runtime_checkable
class AuditSink(Protocol):
    """Append-only destination for audit events."""

    def emit(self, event: dict[str, Any]) -> None:
        """Record an audit event.

        Raises:
            AuditSinkError: If emission fails for any reason.
        """
        ...


def _serialize(event: dict[str, Any]) -> str:
    try:
        return json.dumps(event, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise AuditSinkError(f"Failed to serialize audit event: {e}") from e


class JsonlFileAuditSink:
    """Append-only JSONL file sink.

    The path comes from the constructor, else CREL_AUDIT_LOG_PATH, else
    ./var/audit/audit_events.jsonl. Parent directories are created on first
    write. Existing content is never truncated.
    """

    def __init__(self, file_path: str | None = None) -> None:
        if file_path is not None:
            self._file_path = Path(file_path)
        else:
            self._file_path = Path(os.environ.get(AUDIT_LOG_PATH_ENV) or DEFAULT_AUDIT_LOG_PATH)
        self._lock = threading.Lock()

    @property
    def file_path(self) -> Path:
        return self._file_path

    def emit(self, event: dict[str, Any]) -> None:
        line = _serialize(event) + "\n"

        parent = self._file_path.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise AuditSinkError(f"Failed to create audit log directory {parent}: {e}") from e

        try:
            with self._lock, open(self._file_path, mode="a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            raise AuditSinkError(f"Failed to write audit event to {self._file_path}: {e}") from e


class InMemoryAuditSink:
    """In-memory audit sink for tests. Events are round-tripped through JSON."""

    def __init__(self) -> None:
        self._events: list[dict[str, Any]] = []

    def emit(self, event: dict[str, Any]) -> None:
        self._events.append(json.loads(_serialize(event)))

    @property
    def events(self) -> list[dict[str, Any]]:
        """Return all emitted events."""
        return list(self._events)

    def event_types(self) -> list[str]:
        return [event["event_type"] for event in self._events]

    def clear(self) -> None:
        self._events.clear()


def get_audit_sink() -> AuditSink:
    """Return the configured default sink (JSONL file)."""
    return JsonlFileAuditSink()
