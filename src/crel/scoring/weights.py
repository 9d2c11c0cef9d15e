"""Validation of scoring configuration values.

Pure functions, no I/O. Raised errors leave any stored configuration
untouched because validation always runs before persistence.
"""

from __future__ import annotations

from collections.abc import Sequence

from crel.errors import ValidationError
from crel.scoring.models import ASSIGNABLE_TIERS, CategoryWeights, TierThreshold

WEIGHT_SUM_TOLERANCE = 0.01
# Absorbs binary float noise at the tolerance boundary (0.33 * 3 == 0.9900000000000001).
_FLOAT_EPSILON = 1e-9


def _format_percent(value: float) -> str:
    return f"{round(value * 100, 2):g}%"


def check_weight_sum(weights: CategoryWeights) -> None:
    """Ensure the category weights sum to 1.0 within tolerance.

    Raises:
        ValidationError: ``weights must sum to 100%; got 110%`` style message.
    """
    total = weights.total
    if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE + _FLOAT_EPSILON:
        raise ValidationError(
            f"weights must sum to 100%; got {_format_percent(total)}",
            details={"weight_sum": round(total, 6), "tolerance": WEIGHT_SUM_TOLERANCE},
        )


def check_tier_thresholds(thresholds: Sequence[TierThreshold]) -> None:
    """Ensure thresholds name distinct assignable tiers.

    Raises:
        ValidationError: If the list is empty, repeats a tier or uses UNCLASSIFIED.
    """
    if not thresholds:
        raise ValidationError("at least one tier threshold is required")

    seen: set[str] = set()
    for threshold in thresholds:
        if threshold.tier not in ASSIGNABLE_TIERS:
            raise ValidationError(
                f"tier {threshold.tier.value} cannot have a threshold",
                details={"tier": threshold.tier.value},
            )
        if threshold.tier.value in seen:
            raise ValidationError(
                f"duplicate threshold for tier {threshold.tier.value}",
                details={"tier": threshold.tier.value},
            )
        seen.add(threshold.tier.value)
