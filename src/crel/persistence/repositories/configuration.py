"""Scoring configuration repository.

One configuration row per tenant. Creation is insert-if-absent so concurrent
first reads converge on a single row; updates are last-writer-wins.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING, Any

from sqlalchemy import text

from crel.tenancy import require_tenant_id

if TYPE_CHECKING:
    from sqlalchemy import Connection

logger = logging.getLogger(__name__)

_CONFIG_COLUMNS = """
    tenant_id, config_id, weight_qualitative, weight_conflicts, weight_quantitative,
    tier_thresholds, reevaluation_months, created_at, updated_at
"""


class ScoringConfigRepository:
    """SQL repository for scoring configurations.

    All statements filter on the tenant id the repository was built with.
    """

    def __init__(self, conn: Connection, tenant_id: str) -> None:
        """Initialize repository with connection and tenant context.

        Args:
            conn: SQLAlchemy connection (must be in a transaction).
            tenant_id: Tenant identifier scoping every statement.
        """
        self._conn = conn
        self._tenant_id = require_tenant_id(tenant_id)

    def get_for_tenant(self) -> dict[str, Any] | None:
        """Return the tenant's configuration, or None if not created yet."""
        row = self._conn.execute(
            text(
                f"""
                SELECT {_CONFIG_COLUMNS} FROM scoring_configurations
                WHERE tenant_id = :tenant_id
                """
            ),
            {"tenant_id": self._tenant_id},
        ).fetchone()
        return None if row is None else self._row_to_dict(row)

    def get(self, config_id: str) -> dict[str, Any] | None:
        row = self._conn.execute(
            text(
                f"""
                SELECT {_CONFIG_COLUMNS} FROM scoring_configurations
                WHERE tenant_id = :tenant_id AND config_id = :config_id
                """
            ),
            {"tenant_id": self._tenant_id, "config_id": config_id},
        ).fetchone()
        return None if row is None else self._row_to_dict(row)

    def insert_if_absent(self, config: dict[str, Any]) -> None:
        """Insert a configuration unless the tenant already has one.

        Uses ON CONFLICT DO NOTHING (PostgreSQL and SQLite >= 3.24) so a lost
        race is not an error; callers re-read with get_for_tenant().
        """
        self._conn.execute(
            text(
                """
                INSERT INTO scoring_configurations (
                    tenant_id, config_id, weight_qualitative, weight_conflicts,
                    weight_quantitative, tier_thresholds, reevaluation_months,
                    created_at, updated_at
                ) VALUES (
                    :tenant_id, :config_id, :weight_qualitative, :weight_conflicts,
                    :weight_quantitative, :tier_thresholds, :reevaluation_months,
                    :created_at, :updated_at
                )
                ON CONFLICT (tenant_id) DO NOTHING
                """
            ),
            self._to_params(config),
        )

    def update(self, config: dict[str, Any]) -> bool:
        """Overwrite weights, thresholds and cadence. Returns False if absent."""
        result = self._conn.execute(
            text(
                """
                UPDATE scoring_configurations
                SET weight_qualitative = :weight_qualitative,
                    weight_conflicts = :weight_conflicts,
                    weight_quantitative = :weight_quantitative,
                    tier_thresholds = :tier_thresholds,
                    reevaluation_months = :reevaluation_months,
                    updated_at = :updated_at
                WHERE tenant_id = :tenant_id AND config_id = :config_id
                """
            ),
            self._to_params(config),
        )
        return result.rowcount > 0

    def _to_params(self, config: dict[str, Any]) -> dict[str, Any]:
        weights = config["weights"]
        return {
            "tenant_id": self._tenant_id,
            "config_id": config["config_id"],
            "weight_qualitative": weights["qualitative"],
            "weight_conflicts": weights["conflicts"],
            "weight_quantitative": weights["quantitative"],
            "tier_thresholds": json.dumps(config["tier_thresholds"], sort_keys=True),
            "reevaluation_months": config["reevaluation_months"],
            "created_at": config["created_at"],
            "updated_at": config["updated_at"],
        }

    def _row_to_dict(self, row: Any) -> dict[str, Any]:
        return {
            "config_id": row.config_id,
            "tenant_id": row.tenant_id,
            "weights": {
                "qualitative": row.weight_qualitative,
                "conflicts": row.weight_conflicts,
                "quantitative": row.weight_quantitative,
            },
            "tier_thresholds": json.loads(row.tier_thresholds),
            "reevaluation_months": row.reevaluation_months,
            "created_at": row.created_at,
            "updated_at": row.updated_at,
        }


_config_store: dict[str, dict[str, Any]] = {}
_config_lock = threading.Lock()


class InMemoryScoringConfigRepository:
    """In-memory fallback keyed by tenant id. For development and tests."""

    def __init__(self, tenant_id: str) -> None:
        self._tenant_id = require_tenant_id(tenant_id)

    def get_for_tenant(self) -> dict[str, Any] | None:
        with _config_lock:
            config = _config_store.get(self._tenant_id)
            return None if config is None else json.loads(json.dumps(config))

    def get(self, config_id: str) -> dict[str, Any] | None:
        config = self.get_for_tenant()
        if config is None or config["config_id"] != config_id:
            return None
        return config

    def insert_if_absent(self, config: dict[str, Any]) -> None:
        with _config_lock:
            if self._tenant_id not in _config_store:
                _config_store[self._tenant_id] = {
                    **json.loads(json.dumps(config)),
                    "tenant_id": self._tenant_id,
                }

    def update(self, config: dict[str, Any]) -> bool:
        with _config_lock:
            existing = _config_store.get(self._tenant_id)
            if existing is None or existing["config_id"] != config["config_id"]:
                return False
            existing.update(
                weights=dict(config["weights"]),
                tier_thresholds=json.loads(json.dumps(config["tier_thresholds"])),
                reevaluation_months=config["reevaluation_months"],
                updated_at=config["updated_at"],
            )
            return True


def clear_config_store() -> None:
    """Clear the in-memory configuration store. For testing only."""
    with _config_lock:
        _config_store.clear()


def get_scoring_config_repository(
    conn: Connection | None,
    tenant_id: str,
) -> ScoringConfigRepository | InMemoryScoringConfigRepository:
    """Return the SQL repository when a connection exists, else the in-memory fallback."""
    if conn is not None:
        return ScoringConfigRepository(conn, tenant_id)
    return InMemoryScoringConfigRepository(tenant_id)
