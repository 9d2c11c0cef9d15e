"""Composite score computation.

Deterministic, side-effect free:
1. Group items by category
2. Category subtotal = arithmetic mean of its item values (0 when empty)
3. composite_score = sum(subtotal_c * weight_c), rounded to 2 decimals

Bureau scores and manual adjustments are recorded alongside an evaluation
but never enter the composite.
"""

from __future__ import annotations

from collections.abc import Sequence

from crel.scoring.catalog import item_label
from crel.scoring.models import (
    CategoryWeights,
    FactorContribution,
    ItemCategory,
    ScoreBreakdown,
    ScoringItem,
)

SCORE_DECIMALS = 2


def _group_by_category(items: Sequence[ScoringItem]) -> dict[ItemCategory, list[ScoringItem]]:
    grouped: dict[ItemCategory, list[ScoringItem]] = {category: [] for category in ItemCategory}
    for item in items:
        grouped[item.category].append(item)
    return grouped


def compute_category_subtotals(items: Sequence[ScoringItem]) -> dict[ItemCategory, float]:
    """Average item values per category. Empty categories score 0."""
    subtotals: dict[ItemCategory, float] = {}
    for category, members in _group_by_category(items).items():
        if members:
            subtotals[category] = sum(item.value for item in members) / len(members)
        else:
            subtotals[category] = 0.0
    return subtotals


def compute_composite(
    items: Sequence[ScoringItem],
    weights: CategoryWeights,
) -> ScoreBreakdown:
    """Compute the weighted composite score of a set of items.

    The computation is a pure function of its inputs and is monotonic:
    raising any item value never lowers the composite.

    Args:
        items: Rated items (any category mix, may be empty).
        weights: Category weights; assumed already validated.

    Returns:
        ScoreBreakdown with rounded subtotals, composite score and the
        per-item weighted contributions.
    """
    grouped = _group_by_category(items)
    subtotals = compute_category_subtotals(items)

    composite = 0.0
    for category, subtotal in subtotals.items():
        composite += subtotal * weights.for_category(category)

    contributions: list[FactorContribution] = []
    for category, members in grouped.items():
        category_weight = weights.for_category(category)
        for item in members:
            contributions.append(
                FactorContribution(
                    category=category,
                    item_key=item.item_key,
                    label=item_label(item.item_key),
                    value=item.value,
                    category_weight=category_weight,
                    weighted_value=round(item.value * category_weight / len(members), 6),
                )
            )

    return ScoreBreakdown(
        category_subtotals={
            category: round(value, SCORE_DECIMALS) for category, value in subtotals.items()
        },
        composite_score=round(composite, SCORE_DECIMALS),
        contributions=contributions,
        weights=weights,
    )
