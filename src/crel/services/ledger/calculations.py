"""Derived figures stored with ledger entries. Pure functions."""

from __future__ import annotations

from collections.abc import Sequence

from crel.models.ledger import (
    AssetSnapshotInput,
    BalanceSheet,
    EvaluatedFactor,
    FinancialRatios,
    IncomeStatement,
    MachineryOwnership,
)

RATIO_DECIMALS = 4


def _ratio(numerator: float, denominator: float) -> float:
    return round(numerator / denominator, RATIO_DECIMALS) if denominator > 0 else 0.0


def compute_financial_ratios(
    balance_sheet: BalanceSheet | None,
    income_statement: IncomeStatement | None = None,
) -> FinancialRatios | None:
    """Compute ratios from a balance sheet and, when present, an income statement.

    Returns None when there is no balance sheet to compute from.
    """
    if balance_sheet is None:
        return None

    total_assets = balance_sheet.total_assets or 0.0
    total_liabilities = balance_sheet.total_liabilities or 0.0
    ratios: dict[str, float | None] = {
        "current_liquidity": _ratio(
            balance_sheet.current_assets, balance_sheet.current_liabilities
        ),
        "indebtedness": _ratio(total_liabilities, total_assets),
        "solvency": _ratio(balance_sheet.equity, total_assets),
    }

    if income_statement is not None:
        net_income = income_statement.net_income or 0.0
        ratios["gross_margin"] = _ratio(
            income_statement.gross_profit or 0.0, income_statement.net_sales
        )
        ratios["net_margin"] = _ratio(net_income, income_statement.net_sales)
        ratios["asset_turnover"] = _ratio(income_statement.net_sales, total_assets)
        ratios["roe"] = _ratio(net_income, balance_sheet.equity)

    return FinancialRatios.model_validate(ratios)


def compute_asset_totals(snapshot: AssetSnapshotInput) -> dict[str, float]:
    """Totals of an asset inventory.

    Only owned machinery and real estate without a lien count toward totals.
    """
    total_machinery = sum(
        m.current_value for m in snapshot.machinery if m.ownership is MachineryOwnership.OWNED
    )
    total_real_estate = sum(r.estimated_value for r in snapshot.real_estate if not r.has_lien)
    total_other = sum(o.value for o in snapshot.other_assets)
    return {
        "total_machinery": round(total_machinery, 2),
        "total_real_estate": round(total_real_estate, 2),
        "total_other_assets": round(total_other, 2),
        "total_assets": round(total_machinery + total_real_estate + total_other, 2),
    }


def compute_variation(current_total: float, previous_total: float) -> tuple[float, float]:
    """Absolute and percentage change against a previous total (0% when it was 0)."""
    absolute = round(current_total - previous_total, 2)
    percentage = round(absolute / previous_total * 100, 2) if previous_total > 0 else 0.0
    return absolute, percentage


def compute_total_score(factors: Sequence[EvaluatedFactor]) -> float:
    """Sum of score x weight over the evaluated factors."""
    return round(sum(f.score * f.weight for f in factors), 2)


def mask_api_key(api_key: str | None) -> str | None:
    """Keep only the last four characters of a bureau API key."""
    if not api_key:
        return None
    return "****" + api_key[-4:]
