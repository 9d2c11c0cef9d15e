"""Tier classification and tier-derived figures.

Tiers are evaluated in the fixed priority A -> B -> C regardless of the
order thresholds are stored in. A tier matches when the score reaches its
minimum and the net worth does not exceed its ceiling; the first match wins.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from crel.scoring.models import TIER_PRIORITY, Tier, TierThreshold

GUARANTEE_CAPITAL_RATIO = 0.5


@dataclass(frozen=True, slots=True)
class CreditLineFactors:
    """Factors of the suggested credit line for one tier.

    The suggested line is min(annual_sales * sales_factor, net_worth * net_worth_factor).
    """

    sales_factor: float
    net_worth_factor: float


CREDIT_LINE_FACTORS: dict[Tier, CreditLineFactors] = {
    Tier.A: CreditLineFactors(sales_factor=0.50, net_worth_factor=0.95),
    Tier.B: CreditLineFactors(sales_factor=0.44, net_worth_factor=0.80),
    Tier.C: CreditLineFactors(sales_factor=0.35, net_worth_factor=0.65),
}


def classify(score: float, net_worth: float, thresholds: Sequence[TierThreshold]) -> Tier:
    """Classify a composite score and net worth into a tier.

    Args:
        score: Composite score (0-100).
        net_worth: Declared computable net worth.
        thresholds: Tier thresholds in any order.

    Returns:
        The best tier whose criteria match, or Tier.UNCLASSIFIED.
    """
    by_tier = {threshold.tier: threshold for threshold in thresholds}
    for tier in TIER_PRIORITY:
        threshold = by_tier.get(tier)
        if threshold is None:
            continue
        if score < threshold.min_score:
            continue
        if threshold.max_net_worth is not None and net_worth > threshold.max_net_worth:
            continue
        return tier
    return Tier.UNCLASSIFIED


def guarantee_capital(net_worth: float) -> float:
    """Guarantee capital shown to reviewers: 50% of net worth. Informational only."""
    return round(net_worth * GUARANTEE_CAPITAL_RATIO, 2)


def suggested_credit_line(tier: Tier, net_worth: float, annual_sales: float) -> float:
    """Suggested credit line for a tier; 0 for UNCLASSIFIED."""
    factors = CREDIT_LINE_FACTORS.get(tier)
    if factors is None:
        return 0.0
    by_sales = annual_sales * factors.sales_factor
    by_net_worth = net_worth * factors.net_worth_factor
    return round(min(by_sales, by_net_worth), 2)
