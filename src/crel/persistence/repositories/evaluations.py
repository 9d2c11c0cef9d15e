"""Credit evaluations repository.

State changes go through compare_and_set(), a single conditional write:

    UPDATE ... WHERE tenant_id = ? AND evaluation_id = ? AND state = ?
                 AND deleted_at IS NULL

so of two concurrent approvals exactly one observes a changed row. The
in-memory fallback performs the same check-and-set under a lock.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from typing import TYPE_CHECKING, Any

from sqlalchemy import text

from crel.tenancy import TenantKey, require_tenant_id

if TYPE_CHECKING:
    from sqlalchemy import Connection

logger = logging.getLogger(__name__)

_COLUMNS: tuple[str, ...] = (
    "tenant_id",
    "evaluation_id",
    "customer_id",
    "customer_name",
    "customer_tax_id",
    "evaluator",
    "net_worth",
    "annual_sales",
    "items",
    "weights_applied",
    "category_subtotals",
    "composite_score",
    "tier_suggested",
    "guarantee_capital",
    "bureau_score",
    "manual_adjustment",
    "personal_assessment",
    "validity_days",
    "state",
    "tier_assigned",
    "credit_limit_assigned",
    "approved_by",
    "approved_at",
    "rejected_by",
    "rejected_at",
    "rejection_reason",
    "ledger_entry_id",
    "created_at",
    "updated_at",
    "deleted_at",
)

_JSON_COLUMNS = frozenset(
    {"evaluator", "items", "weights_applied", "category_subtotals", "approved_by", "rejected_by"}
)

MUTABLE_COLUMNS = frozenset(
    {
        "customer_name",
        "customer_tax_id",
        "bureau_score",
        "manual_adjustment",
        "personal_assessment",
        "validity_days",
        "state",
        "tier_assigned",
        "credit_limit_assigned",
        "approved_by",
        "approved_at",
        "rejected_by",
        "rejected_at",
        "rejection_reason",
        "ledger_entry_id",
        "updated_at",
        "deleted_at",
    }
)

_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM credit_evaluations"


def _check_changes(changes: dict[str, Any]) -> None:
    unknown = set(changes) - MUTABLE_COLUMNS
    if unknown:
        raise ValueError(f"Columns are not mutable: {sorted(unknown)}")


class EvaluationsRepository:
    """SQL repository for credit evaluations, scoped to one tenant."""

    def __init__(self, conn: Connection, tenant_id: str) -> None:
        """Initialize repository with connection and tenant context.

        Args:
            conn: SQLAlchemy connection (must be in a transaction).
            tenant_id: Tenant identifier scoping every statement.
        """
        self._conn = conn
        self._tenant_id = require_tenant_id(tenant_id)

    def create(self, record: dict[str, Any]) -> dict[str, Any]:
        """Insert a new evaluation.

        Args:
            record: Evaluation as a JSON-compatible dict.

        Returns:
            The stored evaluation.
        """
        stored = {**record, "tenant_id": self._tenant_id}
        params = {column: self._encode(column, stored.get(column)) for column in _COLUMNS}
        placeholders = ", ".join(f":{column}" for column in _COLUMNS)
        self._conn.execute(
            text(f"INSERT INTO credit_evaluations ({', '.join(_COLUMNS)}) VALUES ({placeholders})"),
            params,
        )
        return copy.deepcopy(stored)

    def get(self, evaluation_id: str, include_deleted: bool = False) -> dict[str, Any] | None:
        """Get an evaluation by id.

        Args:
            evaluation_id: Evaluation identifier.
            include_deleted: Also return soft-deleted evaluations.

        Returns:
            Evaluation dict, or None if not found for this tenant.
        """
        row = self._conn.execute(
            text(f"{_SELECT} WHERE tenant_id = :tenant_id AND evaluation_id = :evaluation_id"),
            {"tenant_id": self._tenant_id, "evaluation_id": evaluation_id},
        ).fetchone()
        if row is None:
            return None
        record = self._row_to_dict(row)
        if record["deleted_at"] is not None and not include_deleted:
            return None
        return record

    def list(self, customer_id: str | None = None) -> list[dict[str, Any]]:
        """List non-deleted evaluations, newest first."""
        params: dict[str, Any] = {"tenant_id": self._tenant_id}
        customer_filter = ""
        if customer_id is not None:
            customer_filter = "AND customer_id = :customer_id"
            params["customer_id"] = customer_id
        rows = self._conn.execute(
            text(
                f"""
                {_SELECT}
                WHERE tenant_id = :tenant_id AND deleted_at IS NULL {customer_filter}
                ORDER BY created_at DESC, evaluation_id DESC
                """
            ),
            params,
        ).fetchall()
        return [self._row_to_dict(row) for row in rows]

    def compare_and_set(
        self,
        evaluation_id: str,
        expected_state: str,
        changes: dict[str, Any],
    ) -> bool:
        """Apply changes only if the evaluation is live and in expected_state.

        Returns:
            True if exactly this call applied the changes, False otherwise.
        """
        _check_changes(changes)
        assignments = ", ".join(f"{column} = :{column}" for column in changes)
        params = {column: self._encode(column, value) for column, value in changes.items()}
        params.update(
            tenant_id=self._tenant_id,
            evaluation_id=evaluation_id,
            expected_state=expected_state,
        )
        result = self._conn.execute(
            text(
                f"""
                UPDATE credit_evaluations SET {assignments}
                WHERE tenant_id = :tenant_id
                  AND evaluation_id = :evaluation_id
                  AND state = :expected_state
                  AND deleted_at IS NULL
                """
            ),
            params,
        )
        return result.rowcount == 1

    @staticmethod
    def _encode(column: str, value: Any) -> Any:
        if column in _JSON_COLUMNS and value is not None:
            return json.dumps(value, sort_keys=True)
        return value

    def _row_to_dict(self, row: Any) -> dict[str, Any]:
        record: dict[str, Any] = {}
        mapping = row._mapping
        for column in _COLUMNS:
            value = mapping[column]
            if column in _JSON_COLUMNS and isinstance(value, str):
                value = json.loads(value)
            record[column] = value
        return record


_evaluations_store: dict[TenantKey, dict[str, Any]] = {}
_evaluations_lock = threading.Lock()


class InMemoryEvaluationsRepository:
    """In-memory fallback repository keyed by (tenant_id, evaluation_id)."""

    def __init__(self, tenant_id: str) -> None:
        self._tenant_id = require_tenant_id(tenant_id)

    def create(self, record: dict[str, Any]) -> dict[str, Any]:
        stored = copy.deepcopy({**record, "tenant_id": self._tenant_id})
        with _evaluations_lock:
            _evaluations_store[TenantKey(self._tenant_id, stored["evaluation_id"])] = stored
        return copy.deepcopy(stored)

    def get(self, evaluation_id: str, include_deleted: bool = False) -> dict[str, Any] | None:
        with _evaluations_lock:
            record = copy.deepcopy(
                _evaluations_store.get(TenantKey(self._tenant_id, evaluation_id))
            )
        if record is None:
            return None
        if record.get("deleted_at") is not None and not include_deleted:
            return None
        return record

    def list(self, customer_id: str | None = None) -> list[dict[str, Any]]:
        with _evaluations_lock:
            records = copy.deepcopy(
                [
                    record
                    for key, record in _evaluations_store.items()
                    if key.tenant_id == self._tenant_id
                    and record.get("deleted_at") is None
                    and (customer_id is None or record["customer_id"] == customer_id)
                ]
            )
        # Reverse insertion order first so equal timestamps list newest-inserted first.
        records.reverse()
        records.sort(key=lambda r: r["created_at"], reverse=True)
        return records

    def compare_and_set(
        self,
        evaluation_id: str,
        expected_state: str,
        changes: dict[str, Any],
    ) -> bool:
        _check_changes(changes)
        with _evaluations_lock:
            record = _evaluations_store.get(TenantKey(self._tenant_id, evaluation_id))
            if record is None or record.get("deleted_at") is not None:
                return False
            if record["state"] != expected_state:
                return False
            record.update(copy.deepcopy(changes))
            return True


def clear_evaluations_store() -> None:
    """Clear the in-memory evaluations store. For testing only."""
    with _evaluations_lock:
        _evaluations_store.clear()


def get_evaluations_repository(
    conn: Connection | None,
    tenant_id: str,
) -> EvaluationsRepository | InMemoryEvaluationsRepository:
    """Return the SQL repository when a connection exists, else the in-memory fallback."""
    if conn is not None:
        return EvaluationsRepository(conn, tenant_id)
    return InMemoryEvaluationsRepository(tenant_id)
