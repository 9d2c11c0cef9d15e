"""Historical ledger models.

The ledger holds four entry kinds per customer, each a frozen model with a
fixed field set:
- ScoringSnapshot: a scoring decision with its validity window
- FinancialStatementSnapshot: parsed statement figures plus derived ratios
- AssetSnapshot: machinery / real estate / other assets with totals
- BureauQueryLog: one call to an external credit bureau

Entries are immutable once written. ``*Input`` models describe what callers
supply; derived fields (ids, timestamps, totals, ratios) are filled by
crel.services.ledger.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from crel.clock import as_utc, from_iso
from crel.models.actor import ActorIdentity
from crel.scoring.models import SCORE_MAX, SCORE_MIN, ItemCategory, Tier

MODEL_VERSION = "v1.0"
DEFAULT_SCORING_VALIDITY_DAYS = 90


class LedgerEntryKind(StrEnum):
    """Ledger sub-collection an entry belongs to."""

    SCORING = "scoring"
    FINANCIAL_STATEMENT = "financial_statement"
    ASSET = "asset"
    BUREAU_QUERY = "bureau_query"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class _LedgerEntryBase(_Frozen):
    entry_id: str
    tenant_id: str
    customer_id: str
    recorded_at: str
    recorded_by: ActorIdentity


# --- Scoring -----------------------------------------------------------------


class EvaluatedFactor(_Frozen):
    """One factor of a scoring snapshot. ``weight`` is its share of the total."""

    name: str = Field(..., min_length=1)
    category: ItemCategory | None = None
    weight: float = Field(..., ge=0.0, le=1.0)
    score: float = Field(..., ge=SCORE_MIN, le=SCORE_MAX)
    justification: str | None = None


class ScoringDataSnapshot(_Frozen):
    """Supporting figures captured at scoring time."""

    net_worth: float
    liquidity: float | None = None
    annual_sales: float | None = Field(default=None, ge=0.0)
    hectares: float | None = Field(default=None, ge=0.0)
    average_yield: float | None = Field(default=None, ge=0.0)
    bureau_score: float | None = None
    bcra_situation: int | None = Field(default=None, ge=1, le=6)
    bureau_query_date: str | None = None
    evaluation_id: str | None = None
    composite_score: float | None = None
    tier: Tier | None = None
    credit_limit: float | None = Field(default=None, ge=0.0)


class ScoringRecordInput(_Frozen):
    factors_evaluated: list[EvaluatedFactor] = Field(..., min_length=1)
    snapshot_data: ScoringDataSnapshot
    validity_days: int = Field(default=DEFAULT_SCORING_VALIDITY_DAYS, ge=1)


class ScoringSnapshot(_LedgerEntryBase):
    """Immutable scoring decision for a customer."""

    model_config = ConfigDict(frozen=True, extra="forbid", protected_namespaces=())

    kind: Literal["scoring"] = "scoring"
    model_version: str = MODEL_VERSION
    total_score: float
    tier: Tier | None = None
    credit_line_calculated: float | None = None
    factors_evaluated: list[EvaluatedFactor]
    snapshot_data: ScoringDataSnapshot
    validity_days: int
    valid_until: str

    def is_valid_at(self, now: datetime) -> bool:
        """True while ``now <= recorded_at + validity_days``. A naive ``now`` is UTC."""
        expires = from_iso(self.recorded_at) + timedelta(days=self.validity_days)
        return as_utc(now) <= expires


# --- Financial statements ----------------------------------------------------


class FinancialStatementType(StrEnum):
    BALANCE_SHEET = "balance_sheet"
    INCOME_STATEMENT = "income_statement"
    MONTHLY_VAT = "monthly_vat"
    INCOME_TAX = "income_tax"
    GROSS_RECEIPTS = "gross_receipts"
    PAYROLL_931 = "payroll_931"


MONTHLY_STATEMENT_TYPES: frozenset[FinancialStatementType] = frozenset(
    {
        FinancialStatementType.MONTHLY_VAT,
        FinancialStatementType.GROSS_RECEIPTS,
        FinancialStatementType.PAYROLL_931,
    }
)


class DataSource(StrEnum):
    SWORN_STATEMENT = "sworn_statement"
    AUDITED_BALANCE = "audited_balance"
    ESTIMATE = "estimate"
    IMPORTED = "imported"


class BalanceSheet(_Frozen):
    """Statement of financial position, already parsed into totals.

    Missing totals are derived from their components.
    """

    current_assets: float = Field(..., ge=0.0)
    non_current_assets: float = Field(default=0.0, ge=0.0)
    total_assets: float | None = Field(default=None, ge=0.0)
    current_liabilities: float = Field(..., ge=0.0)
    non_current_liabilities: float = Field(default=0.0, ge=0.0)
    total_liabilities: float | None = Field(default=None, ge=0.0)
    equity: float
    line_items: dict[str, float] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _derive_totals(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if data.get("total_assets") is None:
                data["total_assets"] = data.get("current_assets", 0.0) + data.get(
                    "non_current_assets", 0.0
                )
            if data.get("total_liabilities") is None:
                data["total_liabilities"] = data.get("current_liabilities", 0.0) + data.get(
                    "non_current_liabilities", 0.0
                )
        return data


class IncomeStatement(_Frozen):
    """Income statement. Gross profit, pre-tax and net income derive when omitted."""

    net_sales: float = Field(..., ge=0.0)
    cost_of_goods_sold: float = Field(default=0.0, ge=0.0)
    gross_profit: float | None = None
    operating_expenses: float = Field(default=0.0, ge=0.0)
    financial_results: float = 0.0
    other_income: float = 0.0
    income_before_tax: float | None = None
    income_tax: float = Field(default=0.0, ge=0.0)
    net_income: float | None = None

    @model_validator(mode="before")
    @classmethod
    def _derive_results(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if data.get("gross_profit") is None:
                data["gross_profit"] = data.get("net_sales", 0.0) - data.get(
                    "cost_of_goods_sold", 0.0
                )
            if data.get("income_before_tax") is None:
                data["income_before_tax"] = (
                    data["gross_profit"]
                    - data.get("operating_expenses", 0.0)
                    + data.get("financial_results", 0.0)
                    + data.get("other_income", 0.0)
                )
            if data.get("net_income") is None:
                data["net_income"] = data["income_before_tax"] - data.get("income_tax", 0.0)
        return data


class MonthlyTaxReturn(_Frozen):
    vat_purchases: float = Field(default=0.0, ge=0.0)
    vat_sales: float = Field(default=0.0, ge=0.0)
    gross_receipts_tax: float = Field(default=0.0, ge=0.0)
    payroll_931: float = Field(default=0.0, ge=0.0)
    receipts_url: str | None = None


class FinancialRatios(_Frozen):
    """Derived ratios. Ratios with a zero denominator are reported as 0."""

    current_liquidity: float
    indebtedness: float
    solvency: float
    gross_margin: float | None = None
    net_margin: float | None = None
    asset_turnover: float | None = None
    roe: float | None = None


class FinancialSnapshotInput(_Frozen):
    statement_type: FinancialStatementType
    period: str = Field(..., min_length=4, description='"2024" for annual, "2024-03" for monthly')
    previous_period: str | None = None
    balance_sheet: BalanceSheet | None = None
    income_statement: IncomeStatement | None = None
    monthly_tax_return: MonthlyTaxReturn | None = None
    document_url: str | None = None
    data_source: DataSource

    @model_validator(mode="after")
    def _require_statement_body(self) -> FinancialSnapshotInput:
        """Each statement type must carry the figures it is named after."""
        if (
            self.statement_type is FinancialStatementType.BALANCE_SHEET
            and self.balance_sheet is None
        ):
            raise ValueError("balance_sheet snapshots require balance_sheet figures")
        if (
            self.statement_type is FinancialStatementType.INCOME_STATEMENT
            and self.income_statement is None
        ):
            raise ValueError("income_statement snapshots require income_statement figures")
        if self.statement_type in MONTHLY_STATEMENT_TYPES and self.monthly_tax_return is None:
            raise ValueError(f"{self.statement_type.value} snapshots require monthly_tax_return")
        return self


class FinancialStatementSnapshot(_LedgerEntryBase):
    kind: Literal["financial_statement"] = "financial_statement"
    statement_type: FinancialStatementType
    period: str
    previous_period: str | None = None
    balance_sheet: BalanceSheet | None = None
    income_statement: IncomeStatement | None = None
    monthly_tax_return: MonthlyTaxReturn | None = None
    ratios: FinancialRatios | None = None
    document_url: str | None = None
    data_source: DataSource


# --- Assets ------------------------------------------------------------------


class MachineryOwnership(StrEnum):
    OWNED = "owned"
    LEASING = "leasing"
    LOAN_FOR_USE = "loan_for_use"


class Machinery(_Frozen):
    kind: str = Field(..., min_length=1)
    brand: str | None = None
    model: str | None = None
    year: int | None = Field(default=None, ge=1900)
    current_value: float = Field(..., ge=0.0)
    ownership: MachineryOwnership


class RealEstate(_Frozen):
    kind: str = Field(..., min_length=1)
    location: str | None = None
    surface_area: float | None = Field(default=None, ge=0.0)
    estimated_value: float = Field(..., ge=0.0)
    has_lien: bool = False


class OtherAsset(_Frozen):
    description: str = Field(..., min_length=1)
    value: float = Field(..., ge=0.0)


class AssetSnapshotInput(_Frozen):
    machinery: list[Machinery] = Field(default_factory=list)
    real_estate: list[RealEstate] = Field(default_factory=list)
    other_assets: list[OtherAsset] = Field(default_factory=list)


class AssetSnapshot(_LedgerEntryBase):
    """Asset inventory at a point in time.

    Totals count owned machinery and unencumbered real estate only. Variation
    is measured against the previous asset snapshot of the same customer.
    """

    kind: Literal["asset"] = "asset"
    machinery: list[Machinery]
    real_estate: list[RealEstate]
    other_assets: list[OtherAsset]
    total_machinery: float
    total_real_estate: float
    total_other_assets: float
    total_assets: float
    previous_entry_id: str | None = None
    absolute_variation: float | None = None
    percentage_variation: float | None = None


# --- Bureau queries ----------------------------------------------------------


class BureauQueryType(StrEnum):
    VERAZ = "veraz"
    BUREAU_SCORE = "bureau_score"
    CREDIT_SITUATION = "credit_situation"
    FULL = "full"


class BureauQueryStatus(StrEnum):
    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"


class BureauQueryInput(_Frozen):
    """Bureau call to log. ``api_key`` is masked before it is stored."""

    tax_id: str = Field(..., min_length=1)
    query_type: BureauQueryType
    queried_at: str | None = None
    request_payload: str | None = None
    response_payload: dict[str, Any] | None = None
    score: float | None = None
    bcra_situation: int | None = Field(default=None, ge=1, le=6)
    bounced_cheques: int | None = Field(default=None, ge=0)
    active_lawsuits: int | None = Field(default=None, ge=0)
    status: BureauQueryStatus
    error_message: str | None = None
    response_time_ms: int = Field(..., ge=0)
    api_key: str | None = None


class BureauQueryLog(_LedgerEntryBase):
    kind: Literal["bureau_query"] = "bureau_query"
    tax_id: str
    query_type: BureauQueryType
    queried_at: str
    request_payload: str | None = None
    response_payload: dict[str, Any] | None = None
    score: float | None = None
    bcra_situation: int | None = None
    bounced_cheques: int | None = None
    active_lawsuits: int | None = None
    status: BureauQueryStatus
    error_message: str | None = None
    response_time_ms: int
    api_key_masked: str | None = None
