"""HistoricalLedger - append-only per-customer audit trail.

Four independent, time-ordered series per customer:
- scoring snapshots (with validity window)
- financial-statement snapshots (with derived ratios)
- asset snapshots (with totals and variation vs. the previous snapshot)
- bureau-query logs (API key masked)

There is no update or delete operation: entries are created
once and only read afterwards. Every append requires a recorded-by identity.

Uses SQL repositories when db_conn exists, in-memory fallback otherwise.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from crel.audit.events import build_audit_event, emit_audit_event
from crel.audit.sink import AuditSink, InMemoryAuditSink
from crel.clock import Clock, to_iso, utc_now
from crel.errors import ValidationError
from crel.models.actor import ActorIdentity
from crel.models.ledger import (
    AssetSnapshot,
    AssetSnapshotInput,
    BureauQueryInput,
    BureauQueryLog,
    FinancialSnapshotInput,
    FinancialStatementSnapshot,
    FinancialStatementType,
    LedgerEntryKind,
    ScoringRecordInput,
    ScoringSnapshot,
)
from crel.persistence.repositories.ledger import get_ledger_repository
from crel.scoring.tiers import suggested_credit_line
from crel.services.ledger.calculations import (
    compute_asset_totals,
    compute_financial_ratios,
    compute_total_score,
    compute_variation,
    mask_api_key,
)
from crel.tenancy import require_tenant_id

if TYPE_CHECKING:
    from sqlalchemy import Connection

logger = logging.getLogger(__name__)

DEFAULT_SCORING_HISTORY_LIMIT = 10
DEFAULT_FINANCIAL_LIMIT = 12
DEFAULT_ASSET_LIMIT = 12
DEFAULT_BUREAU_LIMIT = 10


class HistoricalLedger:
    """Append-only ledger of scoring, financial, asset and bureau records."""

    def __init__(
        self,
        tenant_id: str,
        db_conn: Connection | None = None,
        audit_sink: AuditSink | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the ledger for one tenant.

        Args:
            tenant_id: Tenant owning every entry read or written.
            db_conn: Optional SQL connection; in-memory store when None.
            audit_sink: Optional audit sink; in-memory sink when None.
            clock: Optional clock returning an aware UTC datetime.
        """
        self._tenant_id = require_tenant_id(tenant_id)
        self._repo = get_ledger_repository(db_conn, self._tenant_id)
        self._audit_sink = audit_sink or InMemoryAuditSink()
        self._clock = clock or utc_now

    @property
    def tenant_id(self) -> str:
        return self._tenant_id

    # --- helpers ---------------------------------------------------------

    @staticmethod
    def _require_customer(customer_id: str) -> str:
        if not customer_id or not customer_id.strip():
            raise ValidationError("customer_id is required")
        return customer_id

    @staticmethod
    def _require_recorded_by(recorded_by: ActorIdentity | None) -> ActorIdentity:
        if recorded_by is None:
            raise ValidationError("recorded_by identity is required for ledger entries")
        return recorded_by

    def _base_fields(
        self,
        customer_id: str,
        recorded_by: ActorIdentity,
        now: datetime,
        entry_id: str | None = None,
    ) -> dict[str, Any]:
        return {
            "entry_id": entry_id or str(uuid.uuid4()),
            "tenant_id": self._tenant_id,
            "customer_id": customer_id,
            "recorded_at": to_iso(now),
            "recorded_by": recorded_by,
        }

    def _append(
        self,
        kind: LedgerEntryKind,
        entry: Any,
        request_id: str | None,
    ) -> None:
        """Emit the audit event, then store the entry.

        The store write is last: a failed emit leaves no entry behind.
        """
        emit_audit_event(
            self._audit_sink,
            build_audit_event(
                tenant_id=self._tenant_id,
                event_type=f"ledger.{kind.value}.appended",
                occurred_at=entry.recorded_at,
                resource_type=f"ledger_{kind.value}",
                resource_id=entry.entry_id,
                actor=entry.recorded_by.model_dump(mode="json"),
                request_id=request_id,
                details={"customer_id": entry.customer_id},
            ),
        )
        self._repo.append(kind, entry.model_dump(mode="json"))
        logger.info(
            "Appended %s entry %s for customer %s (tenant %s)",
            kind.value,
            entry.entry_id,
            entry.customer_id,
            self._tenant_id,
        )

    # --- scoring ---------------------------------------------------------

    def add_scoring_record(
        self,
        customer_id: str,
        record: ScoringRecordInput,
        recorded_by: ActorIdentity | None,
        *,
        entry_id: str | None = None,
        request_id: str | None = None,
    ) -> ScoringSnapshot:
        """Append a scoring snapshot. Never modifies an earlier snapshot.

        Args:
            customer_id: Customer the snapshot belongs to.
            record: Factors, supporting data and validity window.
            recorded_by: Identity of the evaluator (mandatory).
            entry_id: Pre-allocated entry id (used by approvals).
            request_id: Correlation id for the audit event.

        Returns:
            The stored ScoringSnapshot.

        Raises:
            ValidationError: If customer_id or recorded_by is missing.
        """
        customer_id = self._require_customer(customer_id)
        recorded_by = self._require_recorded_by(recorded_by)
        now = self._clock()

        data = record.snapshot_data
        credit_line = None
        if data.tier is not None and data.annual_sales is not None:
            credit_line = suggested_credit_line(data.tier, data.net_worth, data.annual_sales)

        snapshot = ScoringSnapshot(
            **self._base_fields(customer_id, recorded_by, now, entry_id),
            total_score=compute_total_score(record.factors_evaluated),
            tier=data.tier,
            credit_line_calculated=credit_line,
            factors_evaluated=record.factors_evaluated,
            snapshot_data=data,
            validity_days=record.validity_days,
            valid_until=to_iso(now + timedelta(days=record.validity_days)),
        )
        self._append(LedgerEntryKind.SCORING, snapshot, request_id)
        return snapshot

    def get_scoring_history(
        self, customer_id: str, limit: int = DEFAULT_SCORING_HISTORY_LIMIT
    ) -> list[ScoringSnapshot]:
        """Scoring snapshots for a customer, most recent first."""
        rows = self._repo.list(LedgerEntryKind.SCORING, customer_id, limit)
        return [ScoringSnapshot.model_validate(row) for row in rows]

    def get_current_valid_score(
        self, customer_id: str, now: datetime | None = None
    ) -> ScoringSnapshot | None:
        """Return the latest scoring snapshot if still within its validity window.

        Only the most recent snapshot is considered; when it is stale the
        result is None, signalling that a re-evaluation is required.
        """
        latest = self._repo.latest(LedgerEntryKind.SCORING, customer_id)
        if latest is None:
            return None
        snapshot = ScoringSnapshot.model_validate(latest)
        if snapshot.is_valid_at(now or self._clock()):
            return snapshot
        return None

    # --- financial statements --------------------------------------------

    def add_financial_snapshot(
        self,
        customer_id: str,
        snapshot_input: FinancialSnapshotInput,
        recorded_by: ActorIdentity | None,
        *,
        request_id: str | None = None,
    ) -> FinancialStatementSnapshot:
        """Append a financial-statement snapshot with derived ratios."""
        customer_id = self._require_customer(customer_id)
        recorded_by = self._require_recorded_by(recorded_by)

        snapshot = FinancialStatementSnapshot(
            **self._base_fields(customer_id, recorded_by, self._clock()),
            statement_type=snapshot_input.statement_type,
            period=snapshot_input.period,
            previous_period=snapshot_input.previous_period,
            balance_sheet=snapshot_input.balance_sheet,
            income_statement=snapshot_input.income_statement,
            monthly_tax_return=snapshot_input.monthly_tax_return,
            ratios=compute_financial_ratios(
                snapshot_input.balance_sheet, snapshot_input.income_statement
            ),
            document_url=snapshot_input.document_url,
            data_source=snapshot_input.data_source,
        )
        self._append(LedgerEntryKind.FINANCIAL_STATEMENT, snapshot, request_id)
        return snapshot

    def get_financial_snapshots(
        self,
        customer_id: str,
        statement_type: FinancialStatementType | None = None,
        limit: int = DEFAULT_FINANCIAL_LIMIT,
    ) -> list[FinancialStatementSnapshot]:
        """Financial snapshots for a customer, most recent first, optionally by type."""
        rows = self._repo.list(
            LedgerEntryKind.FINANCIAL_STATEMENT,
            customer_id,
            limit,
            statement_type=statement_type.value if statement_type else None,
        )
        return [FinancialStatementSnapshot.model_validate(row) for row in rows]

    # --- assets ----------------------------------------------------------

    def add_asset_snapshot(
        self,
        customer_id: str,
        snapshot_input: AssetSnapshotInput,
        recorded_by: ActorIdentity | None,
        *,
        request_id: str | None = None,
    ) -> AssetSnapshot:
        """Append an asset snapshot; variation is measured against the previous one."""
        customer_id = self._require_customer(customer_id)
        recorded_by = self._require_recorded_by(recorded_by)

        totals = compute_asset_totals(snapshot_input)
        previous = self.get_latest_asset_snapshot(customer_id)
        variation: dict[str, Any] = {}
        if previous is not None:
            absolute, percentage = compute_variation(
                totals["total_assets"], previous.total_assets
            )
            variation = {
                "previous_entry_id": previous.entry_id,
                "absolute_variation": absolute,
                "percentage_variation": percentage,
            }

        snapshot = AssetSnapshot(
            **self._base_fields(customer_id, recorded_by, self._clock()),
            machinery=snapshot_input.machinery,
            real_estate=snapshot_input.real_estate,
            other_assets=snapshot_input.other_assets,
            **totals,
            **variation,
        )
        self._append(LedgerEntryKind.ASSET, snapshot, request_id)
        return snapshot

    def get_asset_snapshots(
        self, customer_id: str, limit: int = DEFAULT_ASSET_LIMIT
    ) -> list[AssetSnapshot]:
        rows = self._repo.list(LedgerEntryKind.ASSET, customer_id, limit)
        return [AssetSnapshot.model_validate(row) for row in rows]

    def get_latest_asset_snapshot(self, customer_id: str) -> AssetSnapshot | None:
        latest = self._repo.latest(LedgerEntryKind.ASSET, customer_id)
        return None if latest is None else AssetSnapshot.model_validate(latest)

    # --- bureau queries --------------------------------------------------

    def log_bureau_query(
        self,
        customer_id: str,
        query: BureauQueryInput,
        recorded_by: ActorIdentity | None,
        *,
        request_id: str | None = None,
    ) -> BureauQueryLog:
        """Append a bureau query log. The raw API key is never stored."""
        customer_id = self._require_customer(customer_id)
        recorded_by = self._require_recorded_by(recorded_by)
        base = self._base_fields(customer_id, recorded_by, self._clock())

        entry = BureauQueryLog(
            **base,
            tax_id=query.tax_id,
            query_type=query.query_type,
            queried_at=query.queried_at or base["recorded_at"],
            request_payload=query.request_payload,
            response_payload=query.response_payload,
            score=query.score,
            bcra_situation=query.bcra_situation,
            bounced_cheques=query.bounced_cheques,
            active_lawsuits=query.active_lawsuits,
            status=query.status,
            error_message=query.error_message,
            response_time_ms=query.response_time_ms,
            api_key_masked=mask_api_key(query.api_key),
        )
        self._append(LedgerEntryKind.BUREAU_QUERY, entry, request_id)
        return entry

    def get_bureau_queries(
        self, customer_id: str, limit: int = DEFAULT_BUREAU_LIMIT
    ) -> list[BureauQueryLog]:
        rows = self._repo.list(LedgerEntryKind.BUREAU_QUERY, customer_id, limit)
        return [BureauQueryLog.model_validate(row) for row in rows]
