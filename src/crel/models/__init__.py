"""CREL domain models: actors, evaluations and historical ledger entries."""

from crel.models.actor import ActorIdentity
from crel.models.evaluation import (
    DEFAULT_VALIDITY_DAYS,
    EvaluationRecord,
    EvaluationState,
)
from crel.models.ledger import (
    AssetSnapshot,
    AssetSnapshotInput,
    BalanceSheet,
    BureauQueryInput,
    BureauQueryLog,
    BureauQueryStatus,
    BureauQueryType,
    DataSource,
    EvaluatedFactor,
    FinancialRatios,
    FinancialSnapshotInput,
    FinancialStatementSnapshot,
    FinancialStatementType,
    IncomeStatement,
    LedgerEntryKind,
    Machinery,
    MachineryOwnership,
    MonthlyTaxReturn,
    OtherAsset,
    RealEstate,
    ScoringDataSnapshot,
    ScoringRecordInput,
    ScoringSnapshot,
)

__all__ = [
    "ActorIdentity",
    "AssetSnapshot",
    "AssetSnapshotInput",
    "BalanceSheet",
    "BureauQueryInput",
    "BureauQueryLog",
    "BureauQueryStatus",
    "BureauQueryType",
    "DEFAULT_VALIDITY_DAYS",
    "DataSource",
    "EvaluatedFactor",
    "EvaluationRecord",
    "EvaluationState",
    "FinancialRatios",
    "FinancialSnapshotInput",
    "FinancialStatementSnapshot",
    "FinancialStatementType",
    "IncomeStatement",
    "LedgerEntryKind",
    "Machinery",
    "MachineryOwnership",
    "MonthlyTaxReturn",
    "OtherAsset",
    "RealEstate",
    "ScoringDataSnapshot",
    "ScoringRecordInput",
    "ScoringSnapshot",
]
