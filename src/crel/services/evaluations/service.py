"""EvaluationService - credit evaluation workflow.

States: pendiente (initial) -> aprobada | rechazada (terminal).

- create(): score computed once from the tenant configuration and never
  recomputed; suggested tier derived from score + net worth
- approve()/reject(): single compare-and-set on ``state``; a second approval
  fails with ConflictError and leaves the first decision intact
- approve() appends a scoring snapshot to the historical ledger; a failed
  append raises LedgerAppendError after undoing the approval
- update()/delete(): only while pendiente, through the same guard

Uses SQL repositories when db_conn exists, in-memory fallback otherwise.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from crel.audit.events import build_audit_event, emit_audit_event
from crel.audit.sink import AuditSink, InMemoryAuditSink
from crel.clock import Clock, to_iso, utc_now
from crel.errors import ConflictError, LedgerAppendError, NotFoundError, ValidationError
from crel.models.actor import ActorIdentity
from crel.models.evaluation import DEFAULT_VALIDITY_DAYS, EvaluationRecord, EvaluationState
from crel.models.ledger import EvaluatedFactor, ScoringDataSnapshot, ScoringRecordInput
from crel.persistence.repositories.evaluations import get_evaluations_repository
from crel.scoring.catalog import check_items_against_catalog, item_label
from crel.scoring.engine import compute_composite
from crel.scoring.models import ASSIGNABLE_TIERS, ScoringItem, Tier, tier_rank
from crel.scoring.tiers import classify, guarantee_capital
from crel.services.configuration.service import ScoringConfigService
from crel.services.ledger.service import HistoricalLedger
from crel.tenancy import require_tenant_id

if TYPE_CHECKING:
    from sqlalchemy import Connection

logger = logging.getLogger(__name__)

_DECISION_RESET: dict[str, Any] = {
    "state": EvaluationState.PENDING.value,
    "tier_assigned": None,
    "credit_limit_assigned": None,
    "approved_by": None,
    "approved_at": None,
    "ledger_entry_id": None,
}


class CreateEvaluationInput(BaseModel):
    """Input for creating an evaluation.

    customer_id and items are checked by the service so callers get a
    ValidationError rather than a schema error.
    """

    model_config = ConfigDict(frozen=True)

    customer_id: str = ""
    customer_name: str | None = None
    customer_tax_id: str | None = None
    net_worth: float = Field(..., ge=0.0)
    annual_sales: float | None = Field(default=None, ge=0.0)
    items: list[ScoringItem] = Field(default_factory=list)
    bureau_score: float | None = None
    manual_adjustment: float | None = None
    personal_assessment: str | None = None
    validity_days: int = Field(default=DEFAULT_VALIDITY_DAYS, ge=1)
    request_id: str | None = None


class UpdateEvaluationInput(BaseModel):
    """Fields editable while an evaluation is pending. Items are not editable."""

    model_config = ConfigDict(frozen=True)

    customer_name: str | None = None
    customer_tax_id: str | None = None
    bureau_score: float | None = None
    manual_adjustment: float | None = None
    personal_assessment: str | None = None
    validity_days: int | None = Field(default=None, ge=1)
    request_id: str | None = None


class ApproveEvaluationInput(BaseModel):
    """Reviewer decision. Both fields are checked by the service."""

    model_config = ConfigDict(frozen=True)

    tier_assigned: Tier | None = None
    credit_limit_assigned: float | None = None
    request_id: str | None = None


class RejectEvaluationInput(BaseModel):
    model_config = ConfigDict(frozen=True)

    reason: str = ""
    request_id: str | None = None


def _factors_from_items(
    items: Sequence[ScoringItem], weights: dict[str, float]
) -> list[EvaluatedFactor]:
    """Express items as ledger factors whose score x weight sums to the composite."""
    counts: dict[str, int] = {}
    for item in items:
        counts[item.category.value] = counts.get(item.category.value, 0) + 1

    weight_by_category = {
        "qualitative": weights["qualitative"],
        "conflict": weights["conflicts"],
        "quantitative": weights["quantitative"],
    }
    return [
        EvaluatedFactor(
            name=item_label(item.item_key),
            category=item.category,
            weight=weight_by_category[item.category.value] / counts[item.category.value],
            score=item.value,
            justification=item.observations,
        )
        for item in items
    ]


class EvaluationService:
    """Service for the credit evaluation workflow."""

    def __init__(
        self,
        tenant_id: str,
        db_conn: Connection | None = None,
        audit_sink: AuditSink | None = None,
        clock: Clock | None = None,
        ledger: HistoricalLedger | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            tenant_id: Tenant owning every evaluation read or written.
            db_conn: Optional SQL connection; in-memory store when None.
            audit_sink: Optional audit sink; in-memory sink when None.
            clock: Optional clock returning an aware UTC datetime.
            ledger: Optional ledger override; built on the same connection when None.
        """
        self._tenant_id = require_tenant_id(tenant_id)
        self._audit_sink = audit_sink or InMemoryAuditSink()
        self._clock = clock or utc_now
        self._repo = get_evaluations_repository(db_conn, self._tenant_id)
        self._config_service = ScoringConfigService(
            self._tenant_id, db_conn=db_conn, audit_sink=self._audit_sink, clock=self._clock
        )
        if ledger is not None and ledger.tenant_id != self._tenant_id:
            raise ValidationError("ledger belongs to a different tenant")
        self._ledger = ledger or HistoricalLedger(
            self._tenant_id, db_conn=db_conn, audit_sink=self._audit_sink, clock=self._clock
        )

    def _emit(
        self,
        event_type: str,
        evaluation_id: str,
        occurred_at: str,
        actor: ActorIdentity | None = None,
        request_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        emit_audit_event(
            self._audit_sink,
            build_audit_event(
                tenant_id=self._tenant_id,
                event_type=event_type,
                occurred_at=occurred_at,
                resource_type="evaluation",
                resource_id=evaluation_id,
                actor=actor.model_dump(mode="json") if actor else None,
                request_id=request_id,
                details=details,
            ),
        )

    def _load(self, evaluation_id: str) -> EvaluationRecord:
        data = self._repo.get(evaluation_id)
        if data is None:
            raise NotFoundError("evaluation", evaluation_id, self._tenant_id)
        return EvaluationRecord.model_validate(data)

    def _raise_transition_failure(self, evaluation_id: str, target: EvaluationState) -> None:
        """Explain why a compare-and-set did not apply."""
        current = self._repo.get(evaluation_id)
        if current is None:
            raise NotFoundError("evaluation", evaluation_id, self._tenant_id)
        raise ConflictError(evaluation_id, current["state"], target.value, self._tenant_id)

    def _require_pending(self, record: EvaluationRecord, target: EvaluationState) -> None:
        if not record.is_pending:
            raise ConflictError(
                record.evaluation_id, record.state.value, target.value, self._tenant_id
            )

    def create(
        self, evaluator: ActorIdentity, input_data: CreateEvaluationInput
    ) -> EvaluationRecord:
        """Create a pending evaluation with its composite score and suggested tier.

        Args:
            evaluator: Identity of the evaluator.
            input_data: Customer reference, net worth and rated items.

        Returns:
            The stored EvaluationRecord.

        Raises:
            ValidationError: If items are empty, the customer reference is
                missing, or an item is filed under the wrong category.
        """
        if not input_data.customer_id or not input_data.customer_id.strip():
            raise ValidationError("customer_id is required", tenant_id=self._tenant_id)
        if not input_data.items:
            raise ValidationError("items must not be empty", tenant_id=self._tenant_id)
        check_items_against_catalog(input_data.items)

        config = self._config_service.get_or_create()
        breakdown = compute_composite(input_data.items, config.weights)
        tier_suggested = classify(
            breakdown.composite_score, input_data.net_worth, config.tier_thresholds
        )

        now = to_iso(self._clock())
        record = EvaluationRecord(
            evaluation_id=str(uuid.uuid4()),
            tenant_id=self._tenant_id,
            customer_id=input_data.customer_id,
            customer_name=input_data.customer_name,
            customer_tax_id=input_data.customer_tax_id,
            evaluator=evaluator,
            net_worth=input_data.net_worth,
            annual_sales=input_data.annual_sales,
            items=input_data.items,
            weights_applied=config.weights,
            category_subtotals=breakdown.category_subtotals,
            composite_score=breakdown.composite_score,
            tier_suggested=tier_suggested,
            guarantee_capital=guarantee_capital(input_data.net_worth),
            bureau_score=input_data.bureau_score,
            manual_adjustment=input_data.manual_adjustment,
            personal_assessment=input_data.personal_assessment,
            validity_days=input_data.validity_days,
            state=EvaluationState.PENDING,
            created_at=now,
            updated_at=now,
        )
        self._repo.create(record.model_dump(mode="json"))

        self._emit(
            "evaluation.created",
            record.evaluation_id,
            now,
            actor=evaluator,
            request_id=input_data.request_id,
            details={
                "customer_id": record.customer_id,
                "composite_score": record.composite_score,
                "tier_suggested": record.tier_suggested.value,
            },
        )
        logger.info(
            "Created evaluation %s for customer %s: score=%.2f tier=%s",
            record.evaluation_id,
            record.customer_id,
            record.composite_score,
            record.tier_suggested.value,
        )
        return record

    def get(self, evaluation_id: str) -> EvaluationRecord:
        """Get an evaluation by id.

        Raises:
            NotFoundError: If absent, soft-deleted or owned by another tenant.
        """
        return self._load(evaluation_id)

    def list(
        self,
        customer_id: str | None = None,
        active_only: bool = False,
    ) -> list[EvaluationRecord]:
        """List evaluations newest first.

        Args:
            customer_id: Restrict to one customer.
            active_only: Keep only the most recent evaluation of each customer.
        """
        records = [EvaluationRecord.model_validate(r) for r in self._repo.list(customer_id)]
        if not active_only:
            return records

        seen: set[str] = set()
        active: list[EvaluationRecord] = []
        for record in records:
            if record.customer_id in seen:
                continue
            seen.add(record.customer_id)
            active.append(record)
        return active

    def update(self, evaluation_id: str, input_data: UpdateEvaluationInput) -> EvaluationRecord:
        """Edit descriptive fields of a pending evaluation.

        Raises:
            NotFoundError: If the evaluation does not exist.
            ConflictError: If it is no longer pending.
        """
        record = self._load(evaluation_id)
        self._require_pending(record, EvaluationState.PENDING)

        changes = {
            field: getattr(input_data, field)
            for field in input_data.model_fields_set
            if field != "request_id"
        }
        if changes.get("validity_days", 0) is None:
            del changes["validity_days"]
        now = to_iso(self._clock())
        changes["updated_at"] = now

        if not self._repo.compare_and_set(evaluation_id, EvaluationState.PENDING.value, changes):
            self._raise_transition_failure(evaluation_id, EvaluationState.PENDING)

        self._emit(
            "evaluation.updated",
            evaluation_id,
            now,
            request_id=input_data.request_id,
            details={"fields": sorted(k for k in changes if k != "updated_at")},
        )
        return self._load(evaluation_id)

    def delete(self, evaluation_id: str, request_id: str | None = None) -> None:
        """Soft-delete a pending evaluation.

        Raises:
            NotFoundError: If the evaluation does not exist.
            ConflictError: If it is no longer pending.
        """
        record = self._load(evaluation_id)
        self._require_pending(record, EvaluationState.PENDING)

        now = to_iso(self._clock())
        if not self._repo.compare_and_set(
            evaluation_id,
            EvaluationState.PENDING.value,
            {"deleted_at": now, "updated_at": now},
        ):
            self._raise_transition_failure(evaluation_id, EvaluationState.PENDING)

        self._emit("evaluation.deleted", evaluation_id, now, request_id=request_id)

    def approve(
        self,
        evaluation_id: str,
        approver: ActorIdentity,
        input_data: ApproveEvaluationInput,
    ) -> EvaluationRecord:
        """Approve a pending evaluation and record the decision in the ledger.

        Args:
            evaluation_id: Evaluation to approve.
            approver: Identity of the reviewer.
            input_data: Assigned tier and credit limit.

        Returns:
            The approved EvaluationRecord (with ledger_entry_id set).

        Raises:
            NotFoundError: If the evaluation does not exist.
            ConflictError: If it is already approved or rejected.
            ValidationError: If the tier is missing, unclassified or better
                than the suggested tier, or the limit is missing, negative or
                above the guarantee capital.
            LedgerAppendError: If the scoring snapshot could not be appended.
        """
        record = self._load(evaluation_id)
        self._require_pending(record, EvaluationState.APPROVED)

        tier = input_data.tier_assigned
        if tier is None:
            raise ValidationError("tier_assigned is required", tenant_id=self._tenant_id)
        if tier not in ASSIGNABLE_TIERS:
            raise ValidationError(
                f"tier {tier.value} cannot be assigned", tenant_id=self._tenant_id
            )
        if tier_rank(tier) < tier_rank(record.tier_suggested):
            raise ValidationError(
                f"tier {tier.value} ranks above the suggested tier {record.tier_suggested.value}",
                tenant_id=self._tenant_id,
                details={
                    "tier_assigned": tier.value,
                    "tier_suggested": record.tier_suggested.value,
                },
            )
        limit = input_data.credit_limit_assigned
        if limit is None:
            raise ValidationError("credit_limit_assigned is required", tenant_id=self._tenant_id)
        if limit < 0:
            raise ValidationError(
                f"credit_limit_assigned must be >= 0; got {limit:g}", tenant_id=self._tenant_id
            )
        if limit > record.guarantee_capital:
            raise ValidationError(
                f"credit_limit_assigned {limit:,.2f} exceeds guarantee capital "
                f"{record.guarantee_capital:,.2f}",
                tenant_id=self._tenant_id,
                details={
                    "credit_limit_assigned": limit,
                    "guarantee_capital": record.guarantee_capital,
                },
            )

        now = to_iso(self._clock())
        ledger_entry_id = str(uuid.uuid4())
        applied = self._repo.compare_and_set(
            evaluation_id,
            EvaluationState.PENDING.value,
            {
                "state": EvaluationState.APPROVED.value,
                "tier_assigned": tier.value,
                "credit_limit_assigned": limit,
                "approved_by": approver.model_dump(mode="json"),
                "approved_at": now,
                "ledger_entry_id": ledger_entry_id,
                "updated_at": now,
            },
        )
        if not applied:
            self._raise_transition_failure(evaluation_id, EvaluationState.APPROVED)

        try:
            self._ledger.add_scoring_record(
                record.customer_id,
                ScoringRecordInput(
                    factors_evaluated=_factors_from_items(
                        record.items, record.weights_applied.model_dump()
                    ),
                    snapshot_data=ScoringDataSnapshot(
                        net_worth=record.net_worth,
                        annual_sales=record.annual_sales,
                        bureau_score=record.bureau_score,
                        evaluation_id=evaluation_id,
                        composite_score=record.composite_score,
                        tier=tier,
                        credit_limit=limit,
                    ),
                    validity_days=record.validity_days,
                ),
                approver,
                entry_id=ledger_entry_id,
                request_id=input_data.request_id,
            )
        except Exception as exc:
            logger.error(
                "Ledger append failed for approved evaluation %s: %s", evaluation_id, exc
            )
            self._undo_approval(evaluation_id, now)
            raise LedgerAppendError(
                f"Evaluation {evaluation_id} approval could not be recorded in the ledger",
                tenant_id=self._tenant_id,
                details={"evaluation_id": evaluation_id},
            ) from exc

        self._emit(
            "evaluation.approved",
            evaluation_id,
            now,
            actor=approver,
            request_id=input_data.request_id,
            details={
                "tier_assigned": tier.value,
                "tier_suggested": record.tier_suggested.value,
                "credit_limit_assigned": limit,
                "ledger_entry_id": ledger_entry_id,
            },
        )
        logger.info("Approved evaluation %s with tier %s", evaluation_id, tier.value)
        return self._load(evaluation_id)

    def _undo_approval(self, evaluation_id: str, approved_at: str) -> None:
        """Compensate an approval whose ledger append failed.

        Only reverts the decision written by this call (matched on state and
        approved_at); on SQL connections the surrounding transaction is rolled
        back by the caller as well.
        """
        current = self._repo.get(evaluation_id)
        if current is None or current.get("approved_at") != approved_at:
            return
        if not self._repo.compare_and_set(
            evaluation_id,
            EvaluationState.APPROVED.value,
            {**_DECISION_RESET, "updated_at": to_iso(self._clock())},
        ):
            logger.error("Could not revert approval of evaluation %s", evaluation_id)

    def reject(
        self,
        evaluation_id: str,
        reviewer: ActorIdentity,
        input_data: RejectEvaluationInput,
    ) -> EvaluationRecord:
        """Reject a pending evaluation.

        Raises:
            NotFoundError: If the evaluation does not exist.
            ConflictError: If it is already approved or rejected.
            ValidationError: If no reason is given.
        """
        record = self._load(evaluation_id)
        self._require_pending(record, EvaluationState.REJECTED)
        if not input_data.reason or not input_data.reason.strip():
            raise ValidationError("reason is required to reject", tenant_id=self._tenant_id)

        now = to_iso(self._clock())
        applied = self._repo.compare_and_set(
            evaluation_id,
            EvaluationState.PENDING.value,
            {
                "state": EvaluationState.REJECTED.value,
                "rejected_by": reviewer.model_dump(mode="json"),
                "rejected_at": now,
                "rejection_reason": input_data.reason.strip(),
                "updated_at": now,
            },
        )
        if not applied:
            self._raise_transition_failure(evaluation_id, EvaluationState.REJECTED)

        self._emit(
            "evaluation.rejected",
            evaluation_id,
            now,
            actor=reviewer,
            request_id=input_data.request_id,
            details={"reason": input_data.reason.strip()},
        )
        return self._load(evaluation_id)
