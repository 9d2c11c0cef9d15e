"""Builders for scoring inputs, identities and API key registries."""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import UTC, datetime

from crel.models.ledger import (
    EvaluatedFactor,
    ScoringDataSnapshot,
    ScoringRecordInput,
)
from crel.scoring.models import ItemCategory, ScoringItem, Tier

TENANT_A_ID = "11111111-1111-1111-1111-111111111111"
TENANT_B_ID = "22222222-2222-2222-2222-222222222222"

FIXED_NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=UTC)


def fixed_clock(now: datetime = FIXED_NOW) -> Callable[[], datetime]:
    """Clock that always reports ``now``."""
    return lambda: now


def make_items(qualitative: float, conflict: float, quantitative: float) -> list[ScoringItem]:
    """Items whose category subtotals are exactly the given values."""
    return [
        ScoringItem(
            category=ItemCategory.QUALITATIVE,
            item_key="management_capacity",
            value=qualitative - 10,
        ),
        ScoringItem(
            category=ItemCategory.QUALITATIVE,
            item_key="payment_terms",
            value=qualitative + 10,
        ),
        ScoringItem(category=ItemCategory.CONFLICT, item_key="tax_problems", value=conflict),
        ScoringItem(
            category=ItemCategory.QUANTITATIVE,
            item_key="financial_situation",
            value=quantitative,
        ),
    ]


def make_scoring_record(
    score: float = 75.0,
    validity_days: int = 90,
    tier: Tier | None = Tier.B,
    annual_sales: float | None = 1_000_000.0,
) -> ScoringRecordInput:
    return ScoringRecordInput(
        factors_evaluated=[
            EvaluatedFactor(name="Management capacity", weight=0.5, score=score),
            EvaluatedFactor(name="Financial situation", weight=0.5, score=score),
        ],
        snapshot_data=ScoringDataSnapshot(
            net_worth=2_000_000.0,
            annual_sales=annual_sales,
            tier=tier,
            composite_score=score,
        ),
        validity_days=validity_days,
    )


def make_api_keys_json(*entries: tuple[str, str, str, list[str]]) -> str:
    """Build a CREL_API_KEYS_JSON value from (api_key, tenant_id, actor_id, roles) tuples."""
    registry = {
        api_key: {
            "tenant_id": tenant_id,
            "actor_id": actor_id,
            "name": f"User {actor_id}",
            "position": "Staff",
            "roles": roles,
        }
        for api_key, tenant_id, actor_id, roles in entries
    }
    return json.dumps(registry)


def items_payload(
    qualitative: float, conflict: float, quantitative: float
) -> list[dict[str, object]]:
    """JSON body form of make_items()."""
    return [
        item.model_dump(mode="json", exclude_none=True)
        for item in make_items(qualitative, conflict, quantitative)
    ]
