"""Credit scoring domain models.

Defines:
- ItemCategory: qualitative / conflict / quantitative evaluation items
- Tier: A / B / C risk tiers plus UNCLASSIFIED
- ScoringItem: one rated item on the 0-100 scale
- CategoryWeights: per-category weights of the composite score
- TierThreshold: minimum score and net-worth ceiling for a tier
- ScoringConfiguration: per-tenant weights, thresholds and cadence
- ScoreBreakdown: deterministic output of the composite computation
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

SCORE_MIN = 0.0
SCORE_MAX = 100.0


class ItemCategory(StrEnum):
    """Category an evaluation item contributes to."""

    QUALITATIVE = "qualitative"
    CONFLICT = "conflict"
    QUANTITATIVE = "quantitative"


class Tier(StrEnum):
    """Risk tier. A is the best tier."""

    A = "A"
    B = "B"
    C = "C"
    UNCLASSIFIED = "unclassified"


# Fixed evaluation priority of the classifier, best tier first.
TIER_PRIORITY: tuple[Tier, ...] = (Tier.A, Tier.B, Tier.C)
ASSIGNABLE_TIERS: frozenset[Tier] = frozenset(TIER_PRIORITY)


def tier_rank(tier: Tier) -> int:
    """Return the rank of a tier (0 = best). UNCLASSIFIED ranks last."""
    if tier in TIER_PRIORITY:
        return TIER_PRIORITY.index(tier)
    return len(TIER_PRIORITY)


class ScoringItem(BaseModel):
    """A single rated evaluation item."""

    model_config = ConfigDict(frozen=True)

    category: ItemCategory
    item_key: str = Field(..., min_length=1)
    value: float = Field(..., ge=SCORE_MIN, le=SCORE_MAX)
    observations: str | None = None


class CategoryWeights(BaseModel):
    """Weights applied to the category subtotals.

    Each weight lies in [0, 1]. The sum constraint is checked by
    crel.scoring.weights.check_weight_sum so callers get a single,
    user-facing message instead of a schema error.
    """

    model_config = ConfigDict(frozen=True)

    qualitative: float = Field(..., ge=0.0, le=1.0)
    conflicts: float = Field(..., ge=0.0, le=1.0)
    quantitative: float = Field(..., ge=0.0, le=1.0)

    def for_category(self, category: ItemCategory) -> float:
        if category is ItemCategory.QUALITATIVE:
            return self.qualitative
        if category is ItemCategory.CONFLICT:
            return self.conflicts
        return self.quantitative

    @property
    def total(self) -> float:
        return self.qualitative + self.conflicts + self.quantitative


class TierThreshold(BaseModel):
    """Entry criteria for a tier.

    Attributes:
        tier: Tier this threshold qualifies for (A, B or C).
        min_score: Inclusive minimum composite score.
        max_net_worth: Inclusive net-worth ceiling. None means no ceiling.
    """

    model_config = ConfigDict(frozen=True)

    tier: Tier
    min_score: float = Field(..., ge=SCORE_MIN, le=SCORE_MAX)
    max_net_worth: float | None = Field(default=None, ge=0.0)


class ScoringConfiguration(BaseModel):
    """Per-tenant scoring configuration (exactly one per tenant)."""

    model_config = ConfigDict(frozen=True)

    config_id: str
    tenant_id: str
    weights: CategoryWeights
    tier_thresholds: list[TierThreshold]
    reevaluation_months: int = Field(..., ge=1)
    created_at: str
    updated_at: str


class FactorContribution(BaseModel):
    """Weighted contribution of one item to the composite score.

    ``weighted_value`` is ``value * category_weight / items_in_category``,
    so the contributions sum to the unrounded composite.
    """

    model_config = ConfigDict(frozen=True)

    category: ItemCategory
    item_key: str
    label: str
    value: float
    category_weight: float
    weighted_value: float


class ScoreBreakdown(BaseModel):
    """Result of a composite score computation."""

    model_config = ConfigDict(frozen=True)

    category_subtotals: dict[ItemCategory, float]
    composite_score: float
    contributions: list[FactorContribution]
    weights: CategoryWeights


DEFAULT_WEIGHTS = CategoryWeights(qualitative=0.43, conflicts=0.31, quantitative=0.26)

DEFAULT_TIER_THRESHOLDS: tuple[TierThreshold, ...] = (
    TierThreshold(tier=Tier.A, min_score=80.0),
    TierThreshold(tier=Tier.B, min_score=60.0),
    TierThreshold(tier=Tier.C, min_score=40.0),
)

DEFAULT_REEVALUATION_MONTHS = 12
