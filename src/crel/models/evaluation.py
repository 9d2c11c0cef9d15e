"""Credit evaluation record model.

An evaluation is created in ``pendiente`` with its composite score computed
once, then moves exactly once to ``aprobada`` or ``rechazada``.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from crel.models.actor import ActorIdentity
from crel.scoring.models import CategoryWeights, ItemCategory, ScoringItem, Tier

DEFAULT_VALIDITY_DAYS = 90


class EvaluationState(StrEnum):
    """Evaluation lifecycle state."""

    PENDING = "pendiente"
    APPROVED = "aprobada"
    REJECTED = "rechazada"


class EvaluationRecord(BaseModel):
    """Persisted credit evaluation."""

    model_config = ConfigDict(frozen=True)

    evaluation_id: str
    tenant_id: str
    customer_id: str
    customer_name: str | None = None
    customer_tax_id: str | None = None
    evaluator: ActorIdentity
    net_worth: float
    annual_sales: float | None = None
    items: list[ScoringItem]
    weights_applied: CategoryWeights
    category_subtotals: dict[ItemCategory, float]
    composite_score: float
    tier_suggested: Tier
    guarantee_capital: float
    bureau_score: float | None = None
    manual_adjustment: float | None = None
    personal_assessment: str | None = None
    validity_days: int = Field(default=DEFAULT_VALIDITY_DAYS, ge=1)
    state: EvaluationState
    tier_assigned: Tier | None = None
    credit_limit_assigned: float | None = None
    approved_by: ActorIdentity | None = None
    approved_at: str | None = None
    rejected_by: ActorIdentity | None = None
    rejected_at: str | None = None
    rejection_reason: str | None = None
    ledger_entry_id: str | None = None
    created_at: str
    updated_at: str
    deleted_at: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.state is EvaluationState.PENDING
