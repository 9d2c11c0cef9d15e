"""Catalogue of standard evaluation items.

Known item keys carry a display label and belong to exactly one category.
Keys outside the catalogue are accepted as custom items labelled by key.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from crel.errors import ValidationError
from crel.scoring.models import ItemCategory, ScoringItem


@dataclass(frozen=True, slots=True)
class CatalogItem:
    """Standard evaluation item.

    Attributes:
        key: Stable item key used in requests and snapshots.
        label: Human-readable item name.
        category: Category the item belongs to.
        share: Nominal share of the item within its category form.
    """

    key: str
    label: str
    category: ItemCategory
    share: float


ITEM_CATALOG: dict[str, CatalogItem] = {
    item.key: item
    for item in (
        CatalogItem("management_capacity", "Management capacity", ItemCategory.QUALITATIVE, 0.143),
        CatalogItem(
            "industry_conditions",
            "Industry or activity conditions",
            ItemCategory.QUALITATIVE,
            0.143,
        ),
        CatalogItem(
            "organization_controls", "Organization and controls", ItemCategory.QUALITATIVE, 0.143
        ),
        CatalogItem(
            "company_bounced_cheques",
            "Bounced cheques in the company",
            ItemCategory.QUALITATIVE,
            0.143,
        ),
        CatalogItem(
            "payment_terms", "Payment terms and compliance", ItemCategory.QUALITATIVE, 0.143
        ),
        CatalogItem(
            "growth_potential", "Growth potential and capacity", ItemCategory.QUALITATIVE, 0.143
        ),
        CatalogItem("loyalty_level", "Customer loyalty level", ItemCategory.QUALITATIVE, 0.142),
        CatalogItem(
            "bankruptcy_proceedings",
            "Insolvency and bankruptcy proceedings",
            ItemCategory.CONFLICT,
            0.333,
        ),
        CatalogItem("tax_problems", "Tax problems", ItemCategory.CONFLICT, 0.333),
        CatalogItem(
            "bounced_cheques_history", "Bounced cheques (history)", ItemCategory.CONFLICT, 0.334
        ),
        CatalogItem("economic_situation", "Economic situation", ItemCategory.QUANTITATIVE, 0.25),
        CatalogItem("financial_situation", "Financial situation", ItemCategory.QUANTITATIVE, 0.25),
        CatalogItem("operated_volumes", "Operated volumes", ItemCategory.QUANTITATIVE, 0.25),
        CatalogItem("equity_situation", "Equity situation", ItemCategory.QUANTITATIVE, 0.25),
    )
}


def item_label(item_key: str) -> str:
    """Return the display label for an item key (the key itself if unknown)."""
    entry = ITEM_CATALOG.get(item_key)
    return entry.label if entry is not None else item_key


def catalog_for(category: ItemCategory) -> list[CatalogItem]:
    """Return the standard items of a category in form order."""
    return [item for item in ITEM_CATALOG.values() if item.category is category]


def check_items_against_catalog(items: Iterable[ScoringItem]) -> None:
    """Reject known item keys filed under the wrong category.

    Raises:
        ValidationError: If a catalogued key is used with another category.
    """
    for item in items:
        entry = ITEM_CATALOG.get(item.item_key)
        if entry is not None and entry.category is not item.category:
            raise ValidationError(
                f"item {item.item_key} belongs to category {entry.category.value}, "
                f"not {item.category.value}",
                details={"item_key": item.item_key, "expected_category": entry.category.value},
            )
