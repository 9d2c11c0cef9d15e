"""CREL scoring core.

Converts rated evaluation items into:
- per-category subtotals and a weighted composite score (0-100)
- a suggested risk tier (A / B / C / unclassified) from score + net worth

Pure and deterministic; configuration persistence lives in
crel.services.configuration.
"""

from crel.scoring.catalog import ITEM_CATALOG, CatalogItem, check_items_against_catalog, item_label
from crel.scoring.engine import compute_category_subtotals, compute_composite
from crel.scoring.models import (
    DEFAULT_REEVALUATION_MONTHS,
    DEFAULT_TIER_THRESHOLDS,
    DEFAULT_WEIGHTS,
    CategoryWeights,
    FactorContribution,
    ItemCategory,
    ScoreBreakdown,
    ScoringConfiguration,
    ScoringItem,
    Tier,
    TierThreshold,
    tier_rank,
)
from crel.scoring.tiers import classify, guarantee_capital, suggested_credit_line
from crel.scoring.weights import WEIGHT_SUM_TOLERANCE, check_tier_thresholds, check_weight_sum

__all__ = [
    "CatalogItem",
    "CategoryWeights",
    "DEFAULT_REEVALUATION_MONTHS",
    "DEFAULT_TIER_THRESHOLDS",
    "DEFAULT_WEIGHTS",
    "FactorContribution",
    "ITEM_CATALOG",
    "ItemCategory",
    "ScoreBreakdown",
    "ScoringConfiguration",
    "ScoringItem",
    "Tier",
    "TierThreshold",
    "WEIGHT_SUM_TOLERANCE",
    "check_items_against_catalog",
    "check_tier_thresholds",
    "check_weight_sum",
    "classify",
    "compute_category_subtotals",
    "compute_composite",
    "guarantee_capital",
    "item_label",
    "suggested_credit_line",
    "tier_rank",
]
