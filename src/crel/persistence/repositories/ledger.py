"""Historical ledger repository.

Insert-only: the repository exposes append and read operations and nothing
that modifies or removes a stored entry. Entries are stored as JSON documents
with the query columns (tenant, customer, timestamp, kind-specific filter)
broken out and indexed.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from typing import TYPE_CHECKING, Any

from sqlalchemy import text

from crel.models.ledger import LedgerEntryKind
from crel.tenancy import require_tenant_id

if TYPE_CHECKING:
    from sqlalchemy import Connection

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 200

LEDGER_TABLES: dict[LedgerEntryKind, str] = {
    LedgerEntryKind.SCORING: "ledger_scoring_snapshots",
    LedgerEntryKind.FINANCIAL_STATEMENT: "ledger_financial_snapshots",
    LedgerEntryKind.ASSET: "ledger_asset_snapshots",
    LedgerEntryKind.BUREAU_QUERY: "ledger_bureau_queries",
}

# Kind-specific indexed columns copied out of the entry document.
_EXTRA_COLUMNS: dict[LedgerEntryKind, tuple[str, ...]] = {
    LedgerEntryKind.SCORING: ("valid_until",),
    LedgerEntryKind.FINANCIAL_STATEMENT: ("statement_type",),
    LedgerEntryKind.ASSET: (),
    LedgerEntryKind.BUREAU_QUERY: (),
}


def _effective_limit(limit: int) -> int:
    return min(max(1, limit), MAX_LIST_LIMIT)


class LedgerRepository:
    """SQL ledger repository scoped to one tenant."""

    def __init__(self, conn: Connection, tenant_id: str) -> None:
        """Initialize repository with connection and tenant context.

        Args:
            conn: SQLAlchemy connection (must be in a transaction).
            tenant_id: Tenant identifier scoping every statement.
        """
        self._conn = conn
        self._tenant_id = require_tenant_id(tenant_id)

    def append(self, kind: LedgerEntryKind, entry: dict[str, Any]) -> dict[str, Any]:
        """Insert a new ledger entry.

        Args:
            kind: Ledger sub-collection.
            entry: JSON-compatible entry with entry_id, customer_id,
                recorded_at and recorded_by.

        Returns:
            The stored entry.
        """
        table = LEDGER_TABLES[kind]
        stored = {**entry, "tenant_id": self._tenant_id}
        extra = _EXTRA_COLUMNS[kind]

        seq = self._conn.execute(
            text(
                f"""
                SELECT COALESCE(MAX(seq), 0) + 1 FROM {table}
                WHERE tenant_id = :tenant_id AND customer_id = :customer_id
                """
            ),
            {"tenant_id": self._tenant_id, "customer_id": stored["customer_id"]},
        ).scalar_one()

        columns = [
            "tenant_id",
            "entry_id",
            "customer_id",
            "recorded_at",
            "seq",
            "recorded_by_id",
            *extra,
            "document",
        ]
        params: dict[str, Any] = {
            "tenant_id": self._tenant_id,
            "entry_id": stored["entry_id"],
            "customer_id": stored["customer_id"],
            "recorded_at": stored["recorded_at"],
            "seq": seq,
            "recorded_by_id": stored["recorded_by"]["actor_id"],
            "document": json.dumps(stored, sort_keys=True),
        }
        for column in extra:
            params[column] = stored[column]

        self._conn.execute(
            text(
                f"INSERT INTO {table} ({', '.join(columns)}) "
                f"VALUES ({', '.join(':' + column for column in columns)})"
            ),
            params,
        )
        logger.debug("Appended %s ledger entry %s", kind.value, stored["entry_id"])
        return copy.deepcopy(stored)

    def list(
        self,
        kind: LedgerEntryKind,
        customer_id: str,
        limit: int,
        statement_type: str | None = None,
    ) -> list[dict[str, Any]]:
        """List a customer's entries of one kind, most recent first."""
        table = LEDGER_TABLES[kind]
        params: dict[str, Any] = {
            "tenant_id": self._tenant_id,
            "customer_id": customer_id,
            "limit": _effective_limit(limit),
        }
        type_filter = ""
        if statement_type is not None and kind is LedgerEntryKind.FINANCIAL_STATEMENT:
            type_filter = "AND statement_type = :statement_type"
            params["statement_type"] = statement_type

        rows = self._conn.execute(
            text(
                f"""
                SELECT document FROM {table}
                WHERE tenant_id = :tenant_id AND customer_id = :customer_id {type_filter}
                ORDER BY recorded_at DESC, seq DESC
                LIMIT :limit
                """
            ),
            params,
        ).fetchall()
        return [json.loads(row.document) for row in rows]

    def latest(self, kind: LedgerEntryKind, customer_id: str) -> dict[str, Any] | None:
        """Return the most recent entry of one kind for a customer."""
        entries = self.list(kind, customer_id, limit=1)
        return entries[0] if entries else None


_ledger_store: dict[tuple[str, LedgerEntryKind, str], list[dict[str, Any]]] = {}
_ledger_lock = threading.Lock()


class InMemoryLedgerRepository:
    """In-memory fallback keyed by (tenant_id, kind, customer_id).

    Stored entries are deep-copied in and out so callers can never alias them.
    """

    def __init__(self, tenant_id: str) -> None:
        self._tenant_id = require_tenant_id(tenant_id)

    def append(self, kind: LedgerEntryKind, entry: dict[str, Any]) -> dict[str, Any]:
        stored = copy.deepcopy({**entry, "tenant_id": self._tenant_id})
        with _ledger_lock:
            _ledger_store.setdefault((self._tenant_id, kind, stored["customer_id"]), []).append(
                stored
            )
        return copy.deepcopy(stored)

    def list(
        self,
        kind: LedgerEntryKind,
        customer_id: str,
        limit: int,
        statement_type: str | None = None,
    ) -> list[dict[str, Any]]:
        with _ledger_lock:
            entries = list(reversed(_ledger_store.get((self._tenant_id, kind, customer_id), [])))
        if statement_type is not None and kind is LedgerEntryKind.FINANCIAL_STATEMENT:
            entries = [e for e in entries if e["statement_type"] == statement_type]
        entries.sort(key=lambda e: e["recorded_at"], reverse=True)
        return copy.deepcopy(entries[: _effective_limit(limit)])

    def latest(self, kind: LedgerEntryKind, customer_id: str) -> dict[str, Any] | None:
        entries = self.list(kind, customer_id, limit=1)
        return entries[0] if entries else None


def clear_ledger_store() -> None:
    """Clear the in-memory ledger store. For testing only."""
    with _ledger_lock:
        _ledger_store.clear()


def get_ledger_repository(
    conn: Connection | None,
    tenant_id: str,
) -> LedgerRepository | InMemoryLedgerRepository:
    """Return the SQL repository when a connection exists, else the in-memory fallback."""
    if conn is not None:
        return LedgerRepository(conn, tenant_id)
    return InMemoryLedgerRepository(tenant_id)
