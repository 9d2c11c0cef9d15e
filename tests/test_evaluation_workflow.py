"""Evaluation workflow tests.

- Creation computes score and suggested tier once
- Approval: validation, single transition, ledger snapshot, failure compensation
- Rejection, editing and soft delete only while pending
- Listing and the "active" view
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

import pytest

from crel.audit.sink import InMemoryAuditSink
from crel.errors import ConflictError, LedgerAppendError, NotFoundError, ValidationError
from crel.models.actor import ActorIdentity
from crel.models.evaluation import EvaluationState
from crel.scoring.models import CategoryWeights, ItemCategory, ScoringItem, Tier, TierThreshold
from crel.services.configuration import ScoringConfigService, UpdateScoringConfigInput
from crel.services.evaluations import (
    ApproveEvaluationInput,
    CreateEvaluationInput,
    EvaluationService,
    RejectEvaluationInput,
    UpdateEvaluationInput,
)
from crel.services.ledger import HistoricalLedger
from tests.fixtures.factories import FIXED_NOW, TENANT_A_ID, TENANT_B_ID, fixed_clock, make_items


def _configure_example_thresholds(tenant_id: str = TENANT_A_ID) -> None:
    """A needs 85, B needs 70 with net worth up to 10M, C needs 40."""
    service = ScoringConfigService(tenant_id)
    config = service.get_or_create()
    service.update(
        config.config_id,
        UpdateScoringConfigInput(
            weights=CategoryWeights(qualitative=0.43, conflicts=0.31, quantitative=0.26),
            tier_thresholds=[
                TierThreshold(tier=Tier.A, min_score=85),
                TierThreshold(tier=Tier.B, min_score=70, max_net_worth=10_000_000),
                TierThreshold(tier=Tier.C, min_score=40),
            ],
            reevaluation_months=12,
        ),
    )


def _create_input(
    customer_id: str = "cust-001",
    scores: tuple[float, float, float] = (80, 90, 70),
    **overrides: Any,
) -> CreateEvaluationInput:
    fields: dict[str, Any] = {
        "customer_id": customer_id,
        "customer_name": "Agro Norte SA",
        "customer_tax_id": "30-71234567-8",
        "net_worth": 2_000_000.0,
        "annual_sales": 1_500_000.0,
        "items": make_items(*scores),
        "bureau_score": 720.0,
    }
    fields.update(overrides)
    return CreateEvaluationInput(**fields)


class _SelectiveFailingSink(InMemoryAuditSink):
    """Records events, but raises for the listed event types."""

    def __init__(self, *failing_event_types: str) -> None:
        super().__init__()
        self.failing_event_types = set(failing_event_types)

    def emit(self, event: dict[str, Any]) -> None:
        if event["event_type"] in self.failing_event_types:
            raise RuntimeError(f"sink unavailable for {event['event_type']}")
        super().emit(event)


@pytest.fixture
def service(audit_sink: InMemoryAuditSink) -> EvaluationService:
    return EvaluationService(TENANT_A_ID, audit_sink=audit_sink, clock=fixed_clock())


class TestCreateEvaluation:
    """Tests for EvaluationService.create."""

    def test_documented_example_suggests_tier_b(
        self, service: EvaluationService, evaluator: ActorIdentity
    ) -> None:
        _configure_example_thresholds()

        record = service.create(evaluator, _create_input())

        assert record.composite_score == 80.5
        assert record.tier_suggested == Tier.B
        assert record.state == EvaluationState.PENDING
        assert record.guarantee_capital == 1_000_000.0
        assert record.weights_applied.qualitative == 0.43

    def test_bureau_score_and_adjustment_do_not_change_score(
        self, service: EvaluationService, evaluator: ActorIdentity
    ) -> None:
        plain = service.create(evaluator, _create_input(bureau_score=None))
        adjusted = service.create(
            evaluator, _create_input(bureau_score=999.0, manual_adjustment=25.0)
        )

        assert plain.composite_score == adjusted.composite_score

    def test_uses_default_config_when_none_exists(
        self, service: EvaluationService, evaluator: ActorIdentity
    ) -> None:
        record = service.create(evaluator, _create_input())

        assert record.tier_suggested == Tier.A

    def test_empty_items_rejected(
        self, service: EvaluationService, evaluator: ActorIdentity
    ) -> None:
        with pytest.raises(ValidationError):
            service.create(evaluator, _create_input(items=[]))

    def test_missing_customer_rejected(
        self, service: EvaluationService, evaluator: ActorIdentity
    ) -> None:
        with pytest.raises(ValidationError):
            service.create(evaluator, _create_input(customer_id=" "))

    def test_catalog_item_in_wrong_category_rejected(
        self, service: EvaluationService, evaluator: ActorIdentity
    ) -> None:
        items = [ScoringItem(category=ItemCategory.CONFLICT, item_key="payment_terms", value=50)]

        with pytest.raises(ValidationError) as exc_info:
            service.create(evaluator, _create_input(items=items))

        assert "qualitative" in str(exc_info.value)

    def test_emits_created_event(
        self,
        service: EvaluationService,
        evaluator: ActorIdentity,
        audit_sink: InMemoryAuditSink,
    ) -> None:
        record = service.create(evaluator, _create_input())

        event = audit_sink.events[-1]
        assert event["event_type"] == "evaluation.created"
        assert event["resource"]["resource_id"] == record.evaluation_id
        assert event["tenant_id"] == TENANT_A_ID


class TestApproveEvaluation:
    """Tests for EvaluationService.approve."""

    def test_approve_once_then_conflict(
        self,
        service: EvaluationService,
        evaluator: ActorIdentity,
        reviewer: ActorIdentity,
    ) -> None:
        _configure_example_thresholds()
        record = service.create(evaluator, _create_input())
        decision = ApproveEvaluationInput(tier_assigned=Tier.B, credit_limit_assigned=500_000)

        approved = service.approve(record.evaluation_id, reviewer, decision)

        assert approved.state == EvaluationState.APPROVED
        assert approved.tier_assigned == Tier.B
        assert approved.credit_limit_assigned == 500_000
        assert approved.approved_by == reviewer
        assert approved.ledger_entry_id is not None

        with pytest.raises(ConflictError):
            service.approve(record.evaluation_id, reviewer, decision)

        assert service.get(record.evaluation_id) == approved

    def test_approval_writes_ledger_snapshot(
        self,
        service: EvaluationService,
        evaluator: ActorIdentity,
        reviewer: ActorIdentity,
    ) -> None:
        _configure_example_thresholds()
        record = service.create(evaluator, _create_input())

        approved = service.approve(
            record.evaluation_id,
            reviewer,
            ApproveEvaluationInput(tier_assigned=Tier.B, credit_limit_assigned=500_000),
        )

        history = HistoricalLedger(TENANT_A_ID).get_scoring_history("cust-001")
        assert len(history) == 1
        snapshot = history[0]
        assert snapshot.entry_id == approved.ledger_entry_id
        assert snapshot.recorded_by == reviewer
        assert snapshot.total_score == 80.5
        assert snapshot.snapshot_data.evaluation_id == record.evaluation_id
        assert snapshot.snapshot_data.tier == Tier.B
        assert snapshot.snapshot_data.credit_limit == 500_000
        assert snapshot.validity_days == 90

    def test_lower_tier_than_suggested_allowed(
        self,
        service: EvaluationService,
        evaluator: ActorIdentity,
        reviewer: ActorIdentity,
    ) -> None:
        _configure_example_thresholds()
        record = service.create(evaluator, _create_input())

        approved = service.approve(
            record.evaluation_id,
            reviewer,
            ApproveEvaluationInput(tier_assigned=Tier.C, credit_limit_assigned=100_000),
        )

        assert approved.tier_assigned == Tier.C

    def test_higher_tier_than_suggested_rejected(
        self,
        service: EvaluationService,
        evaluator: ActorIdentity,
        reviewer: ActorIdentity,
    ) -> None:
        _configure_example_thresholds()
        record = service.create(evaluator, _create_input())

        with pytest.raises(ValidationError):
            service.approve(
                record.evaluation_id,
                reviewer,
                ApproveEvaluationInput(tier_assigned=Tier.A, credit_limit_assigned=100_000),
            )

        assert service.get(record.evaluation_id).state == EvaluationState.PENDING

    @pytest.mark.parametrize(
        "decision",
        [
            ApproveEvaluationInput(tier_assigned=None, credit_limit_assigned=100_000),
            ApproveEvaluationInput(tier_assigned=Tier.UNCLASSIFIED, credit_limit_assigned=0),
            ApproveEvaluationInput(tier_assigned=Tier.C, credit_limit_assigned=None),
            ApproveEvaluationInput(tier_assigned=Tier.C, credit_limit_assigned=-1),
        ],
    )
    def test_invalid_decision_rejected(
        self,
        service: EvaluationService,
        evaluator: ActorIdentity,
        reviewer: ActorIdentity,
        decision: ApproveEvaluationInput,
    ) -> None:
        record = service.create(evaluator, _create_input())

        with pytest.raises(ValidationError):
            service.approve(record.evaluation_id, reviewer, decision)

    def test_unknown_evaluation_not_found(
        self, service: EvaluationService, reviewer: ActorIdentity
    ) -> None:
        with pytest.raises(NotFoundError):
            service.approve(
                "missing",
                reviewer,
                ApproveEvaluationInput(tier_assigned=Tier.C, credit_limit_assigned=1),
            )

    def test_ledger_failure_raises_and_keeps_evaluation_pending(
        self,
        audit_sink: InMemoryAuditSink,
        evaluator: ActorIdentity,
        reviewer: ActorIdentity,
    ) -> None:
        class FailingLedger(HistoricalLedger):
            def add_scoring_record(self, *args: Any, **kwargs: Any) -> Any:
                raise RuntimeError("disk full")

        service = EvaluationService(
            TENANT_A_ID,
            audit_sink=audit_sink,
            ledger=FailingLedger(TENANT_A_ID, audit_sink=audit_sink),
        )
        record = service.create(evaluator, _create_input())

        with pytest.raises(LedgerAppendError) as exc_info:
            service.approve(
                record.evaluation_id,
                reviewer,
                ApproveEvaluationInput(tier_assigned=Tier.C, credit_limit_assigned=10_000),
            )

        assert exc_info.value.code == "LEDGER_APPEND_FAILED"
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        current = service.get(record.evaluation_id)
        assert current.state == EvaluationState.PENDING
        assert current.ledger_entry_id is None
        assert "evaluation.approved" not in audit_sink.event_types()

    def test_failed_snapshot_audit_leaves_no_ledger_entry(
        self, evaluator: ActorIdentity, reviewer: ActorIdentity
    ) -> None:
        sink = _SelectiveFailingSink("ledger.scoring.appended")
        service = EvaluationService(TENANT_A_ID, audit_sink=sink, clock=fixed_clock())
        _configure_example_thresholds()
        record = service.create(evaluator, _create_input())
        decision = ApproveEvaluationInput(tier_assigned=Tier.B, credit_limit_assigned=500_000)

        with pytest.raises(LedgerAppendError):
            service.approve(record.evaluation_id, reviewer, decision)

        ledger = HistoricalLedger(TENANT_A_ID)
        assert service.get(record.evaluation_id).state == EvaluationState.PENDING
        assert ledger.get_scoring_history("cust-001") == []
        assert ledger.get_current_valid_score("cust-001", now=FIXED_NOW) is None

        sink.failing_event_types.clear()
        approved = service.approve(record.evaluation_id, reviewer, decision)

        history = ledger.get_scoring_history("cust-001")
        assert [snapshot.entry_id for snapshot in history] == [approved.ledger_entry_id]

    def test_limit_above_guarantee_capital_rejected(
        self,
        service: EvaluationService,
        evaluator: ActorIdentity,
        reviewer: ActorIdentity,
    ) -> None:
        _configure_example_thresholds()
        record = service.create(evaluator, _create_input())
        assert record.guarantee_capital == 1_000_000

        with pytest.raises(ValidationError) as exc_info:
            service.approve(
                record.evaluation_id,
                reviewer,
                ApproveEvaluationInput(tier_assigned=Tier.B, credit_limit_assigned=1_900_000),
            )

        assert "1,900,000.00" in exc_info.value.message
        assert "1,000,000.00" in exc_info.value.message
        assert service.get(record.evaluation_id).state == EvaluationState.PENDING
        assert HistoricalLedger(TENANT_A_ID).get_scoring_history("cust-001") == []

    def test_limit_equal_to_guarantee_capital_allowed(
        self,
        service: EvaluationService,
        evaluator: ActorIdentity,
        reviewer: ActorIdentity,
    ) -> None:
        _configure_example_thresholds()
        record = service.create(evaluator, _create_input())

        approved = service.approve(
            record.evaluation_id,
            reviewer,
            ApproveEvaluationInput(tier_assigned=Tier.B, credit_limit_assigned=1_000_000),
        )

        assert approved.credit_limit_assigned == 1_000_000

    def test_ledger_from_other_tenant_refused(self, audit_sink: InMemoryAuditSink) -> None:
        with pytest.raises(ValidationError):
            EvaluationService(TENANT_A_ID, ledger=HistoricalLedger(TENANT_B_ID))


class TestRejectEvaluation:
    """Tests for EvaluationService.reject."""

    def test_reject_then_approve_conflicts(
        self,
        service: EvaluationService,
        evaluator: ActorIdentity,
        reviewer: ActorIdentity,
        audit_sink: InMemoryAuditSink,
    ) -> None:
        record = service.create(evaluator, _create_input())

        rejected = service.reject(
            record.evaluation_id, reviewer, RejectEvaluationInput(reason="Insufficient collateral")
        )

        assert rejected.state == EvaluationState.REJECTED
        assert rejected.rejection_reason == "Insufficient collateral"
        assert rejected.rejected_by == reviewer
        assert audit_sink.event_types()[-1] == "evaluation.rejected"

        with pytest.raises(ConflictError):
            service.approve(
                record.evaluation_id,
                reviewer,
                ApproveEvaluationInput(tier_assigned=Tier.C, credit_limit_assigned=1),
            )

    def test_reason_required(
        self,
        service: EvaluationService,
        evaluator: ActorIdentity,
        reviewer: ActorIdentity,
    ) -> None:
        record = service.create(evaluator, _create_input())

        with pytest.raises(ValidationError):
            service.reject(record.evaluation_id, reviewer, RejectEvaluationInput(reason="  "))

    def test_reject_writes_no_ledger_entry(
        self,
        service: EvaluationService,
        evaluator: ActorIdentity,
        reviewer: ActorIdentity,
    ) -> None:
        record = service.create(evaluator, _create_input())
        service.reject(record.evaluation_id, reviewer, RejectEvaluationInput(reason="No"))

        assert HistoricalLedger(TENANT_A_ID).get_scoring_history("cust-001") == []


class TestEditAndDelete:
    """Tests for update and soft delete while pending."""

    def test_update_changes_only_given_fields(
        self, service: EvaluationService, evaluator: ActorIdentity
    ) -> None:
        record = service.create(evaluator, _create_input())

        updated = service.update(
            record.evaluation_id,
            UpdateEvaluationInput(personal_assessment="Long-standing customer"),
        )

        assert updated.personal_assessment == "Long-standing customer"
        assert updated.customer_name == "Agro Norte SA"
        assert updated.composite_score == record.composite_score

    def test_update_after_approval_conflicts(
        self,
        service: EvaluationService,
        evaluator: ActorIdentity,
        reviewer: ActorIdentity,
    ) -> None:
        record = service.create(evaluator, _create_input())
        service.approve(
            record.evaluation_id,
            reviewer,
            ApproveEvaluationInput(tier_assigned=Tier.C, credit_limit_assigned=1),
        )

        with pytest.raises(ConflictError):
            service.update(record.evaluation_id, UpdateEvaluationInput(customer_name="X"))

    def test_delete_hides_evaluation(
        self, service: EvaluationService, evaluator: ActorIdentity
    ) -> None:
        record = service.create(evaluator, _create_input())

        service.delete(record.evaluation_id)

        with pytest.raises(NotFoundError):
            service.get(record.evaluation_id)
        assert service.list() == []

    def test_delete_after_rejection_conflicts(
        self,
        service: EvaluationService,
        evaluator: ActorIdentity,
        reviewer: ActorIdentity,
    ) -> None:
        record = service.create(evaluator, _create_input())
        service.reject(record.evaluation_id, reviewer, RejectEvaluationInput(reason="No"))

        with pytest.raises(ConflictError):
            service.delete(record.evaluation_id)


class TestListEvaluations:
    """Tests for list ordering and the active view."""

    def test_newest_first_and_active_only(
        self, audit_sink: InMemoryAuditSink, evaluator: ActorIdentity
    ) -> None:
        times = [FIXED_NOW + timedelta(days=offset) for offset in range(3)]
        created = []
        for index, when in enumerate(times):
            service = EvaluationService(TENANT_A_ID, audit_sink=audit_sink, clock=fixed_clock(when))
            customer = "cust-001" if index < 2 else "cust-002"
            created.append(service.create(evaluator, _create_input(customer_id=customer)))

        service = EvaluationService(TENANT_A_ID, audit_sink=audit_sink)

        all_ids = [r.evaluation_id for r in service.list()]
        assert all_ids == [r.evaluation_id for r in reversed(created)]

        active_ids = [r.evaluation_id for r in service.list(active_only=True)]
        assert active_ids == [created[2].evaluation_id, created[1].evaluation_id]

        by_customer = service.list(customer_id="cust-001")
        assert [r.evaluation_id for r in by_customer] == [
            created[1].evaluation_id,
            created[0].evaluation_id,
        ]
