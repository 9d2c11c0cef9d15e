"""Relational layout of the CREL store.

Every table is keyed by (tenant_id, <record id>) and every lookup index
leads with tenant_id. Ledger tables are insert-only; timestamps are
ISO-8601 UTC strings and JSON documents are stored as text so the same
schema runs on PostgreSQL and SQLite.
"""

from __future__ import annotations

from sqlalchemy import (
    Column,
    Float,
    Index,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()

scoring_configurations = Table(
    "scoring_configurations",
    metadata,
    Column("tenant_id", String(64), nullable=False),
    Column("config_id", String(64), nullable=False),
    Column("weight_qualitative", Float, nullable=False),
    Column("weight_conflicts", Float, nullable=False),
    Column("weight_quantitative", Float, nullable=False),
    Column("tier_thresholds", Text, nullable=False),
    Column("reevaluation_months", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    PrimaryKeyConstraint("tenant_id", "config_id"),
    UniqueConstraint("tenant_id", name="uq_scoring_configurations_tenant"),
)

credit_evaluations = Table(
    "credit_evaluations",
    metadata,
    Column("tenant_id", String(64), nullable=False),
    Column("evaluation_id", String(64), nullable=False),
    Column("customer_id", String(128), nullable=False),
    Column("customer_name", Text),
    Column("customer_tax_id", String(32)),
    Column("evaluator", Text, nullable=False),
    Column("net_worth", Float, nullable=False),
    Column("annual_sales", Float),
    Column("items", Text, nullable=False),
    Column("weights_applied", Text, nullable=False),
    Column("category_subtotals", Text, nullable=False),
    Column("composite_score", Float, nullable=False),
    Column("tier_suggested", String(16), nullable=False),
    Column("guarantee_capital", Float, nullable=False),
    Column("bureau_score", Float),
    Column("manual_adjustment", Float),
    Column("personal_assessment", Text),
    Column("validity_days", Integer, nullable=False),
    Column("state", String(16), nullable=False),
    Column("tier_assigned", String(16)),
    Column("credit_limit_assigned", Float),
    Column("approved_by", Text),
    Column("approved_at", String(32)),
    Column("rejected_by", Text),
    Column("rejected_at", String(32)),
    Column("rejection_reason", Text),
    Column("ledger_entry_id", String(64)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("deleted_at", String(32)),
    PrimaryKeyConstraint("tenant_id", "evaluation_id"),
    Index("ix_credit_evaluations_customer", "tenant_id", "customer_id", "created_at"),
)


def _ledger_table(name: str, *extra: Column) -> Table:
    return Table(
        name,
        metadata,
        Column("tenant_id", String(64), nullable=False),
        Column("entry_id", String(64), nullable=False),
        Column("customer_id", String(128), nullable=False),
        Column("recorded_at", String(32), nullable=False),
        Column("seq", Integer, nullable=False),
        Column("recorded_by_id", String(128), nullable=False),
        *extra,
        Column("document", Text, nullable=False),
        PrimaryKeyConstraint("tenant_id", "entry_id"),
        Index(f"ix_{name}_customer", "tenant_id", "customer_id", "recorded_at"),
    )


ledger_scoring_snapshots = _ledger_table(
    "ledger_scoring_snapshots", Column("valid_until", String(32), nullable=False)
)
ledger_financial_snapshots = _ledger_table(
    "ledger_financial_snapshots", Column("statement_type", String(32), nullable=False)
)
ledger_asset_snapshots = _ledger_table("ledger_asset_snapshots")
ledger_bureau_queries = _ledger_table("ledger_bureau_queries")
