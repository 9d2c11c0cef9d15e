"""Historical ledger routes for the CREL API.

Append and read endpoints per customer for the four ledger series. There
are no PUT, PATCH or DELETE routes: ledger entries are immutable.
"""

from fastapi import APIRouter, Request
from pydantic import BaseModel

from crel.api.deps import get_db_conn, get_request_audit_sink, get_request_id
from crel.api.rbac import RequireAuthorized
from crel.models.ledger import (
    AssetSnapshot,
    AssetSnapshotInput,
    BureauQueryInput,
    BureauQueryLog,
    FinancialSnapshotInput,
    FinancialStatementSnapshot,
    FinancialStatementType,
    ScoringRecordInput,
    ScoringSnapshot,
)
from crel.services.ledger import HistoricalLedger
from crel.services.ledger.service import (
    DEFAULT_ASSET_LIMIT,
    DEFAULT_BUREAU_LIMIT,
    DEFAULT_FINANCIAL_LIMIT,
    DEFAULT_SCORING_HISTORY_LIMIT,
)

router = APIRouter(prefix="/v1/customers/{customer_id}/ledger", tags=["Historical ledger"])


class ScoringHistory(BaseModel):
    items: list[ScoringSnapshot]


class CurrentScoreResponse(BaseModel):
    """Latest scoring snapshot if still valid; otherwise a re-evaluation is due."""

    snapshot: ScoringSnapshot | None
    requires_reevaluation: bool


class FinancialSnapshotList(BaseModel):
    items: list[FinancialStatementSnapshot]


class AssetSnapshotList(BaseModel):
    items: list[AssetSnapshot]


class BureauQueryList(BaseModel):
    items: list[BureauQueryLog]


def _get_ledger(request: Request, tenant_id: str) -> HistoricalLedger:
    return HistoricalLedger(
        tenant_id,
        db_conn=get_db_conn(request),
        audit_sink=get_request_audit_sink(request),
    )


@router.get("/scoring", response_model=ScoringHistory, operation_id="listScoringHistory")
def list_scoring_history(
    customer_id: str,
    request: Request,
    tenant_ctx: RequireAuthorized,
    limit: int = DEFAULT_SCORING_HISTORY_LIMIT,
) -> ScoringHistory:
    ledger = _get_ledger(request, tenant_ctx.tenant_id)
    return ScoringHistory(items=ledger.get_scoring_history(customer_id, limit=limit))


@router.post(
    "/scoring",
    response_model=ScoringSnapshot,
    status_code=201,
    operation_id="addScoringRecord",
)
def add_scoring_record(
    customer_id: str,
    request_body: ScoringRecordInput,
    request: Request,
    tenant_ctx: RequireAuthorized,
) -> ScoringSnapshot:
    """Append a scoring snapshot recorded by the caller."""
    ledger = _get_ledger(request, tenant_ctx.tenant_id)
    return ledger.add_scoring_record(
        customer_id,
        request_body,
        tenant_ctx.actor(),
        request_id=get_request_id(request),
    )


@router.get(
    "/scoring/current",
    response_model=CurrentScoreResponse,
    operation_id="getCurrentValidScore",
)
def get_current_valid_score(
    customer_id: str, request: Request, tenant_ctx: RequireAuthorized
) -> CurrentScoreResponse:
    snapshot = _get_ledger(request, tenant_ctx.tenant_id).get_current_valid_score(customer_id)
    return CurrentScoreResponse(snapshot=snapshot, requires_reevaluation=snapshot is None)


@router.get(
    "/financial",
    response_model=FinancialSnapshotList,
    operation_id="listFinancialSnapshots",
)
def list_financial_snapshots(
    customer_id: str,
    request: Request,
    tenant_ctx: RequireAuthorized,
    statement_type: FinancialStatementType | None = None,
    limit: int = DEFAULT_FINANCIAL_LIMIT,
) -> FinancialSnapshotList:
    ledger = _get_ledger(request, tenant_ctx.tenant_id)
    return FinancialSnapshotList(
        items=ledger.get_financial_snapshots(
            customer_id, statement_type=statement_type, limit=limit
        )
    )


@router.post(
    "/financial",
    response_model=FinancialStatementSnapshot,
    status_code=201,
    operation_id="addFinancialSnapshot",
)
def add_financial_snapshot(
    customer_id: str,
    request_body: FinancialSnapshotInput,
    request: Request,
    tenant_ctx: RequireAuthorized,
) -> FinancialStatementSnapshot:
    ledger = _get_ledger(request, tenant_ctx.tenant_id)
    return ledger.add_financial_snapshot(
        customer_id,
        request_body,
        tenant_ctx.actor(),
        request_id=get_request_id(request),
    )


@router.get("/assets", response_model=AssetSnapshotList, operation_id="listAssetSnapshots")
def list_asset_snapshots(
    customer_id: str,
    request: Request,
    tenant_ctx: RequireAuthorized,
    limit: int = DEFAULT_ASSET_LIMIT,
) -> AssetSnapshotList:
    ledger = _get_ledger(request, tenant_ctx.tenant_id)
    return AssetSnapshotList(items=ledger.get_asset_snapshots(customer_id, limit=limit))


@router.post(
    "/assets",
    response_model=AssetSnapshot,
    status_code=201,
    operation_id="addAssetSnapshot",
)
def add_asset_snapshot(
    customer_id: str,
    request_body: AssetSnapshotInput,
    request: Request,
    tenant_ctx: RequireAuthorized,
) -> AssetSnapshot:
    """Append an asset inventory; totals and variation are derived server-side."""
    ledger = _get_ledger(request, tenant_ctx.tenant_id)
    return ledger.add_asset_snapshot(
        customer_id,
        request_body,
        tenant_ctx.actor(),
        request_id=get_request_id(request),
    )


@router.get("/bureau-queries", response_model=BureauQueryList, operation_id="listBureauQueries")
def list_bureau_queries(
    customer_id: str,
    request: Request,
    tenant_ctx: RequireAuthorized,
    limit: int = DEFAULT_BUREAU_LIMIT,
) -> BureauQueryList:
    ledger = _get_ledger(request, tenant_ctx.tenant_id)
    return BureauQueryList(items=ledger.get_bureau_queries(customer_id, limit=limit))


@router.post(
    "/bureau-queries",
    response_model=BureauQueryLog,
    status_code=201,
    operation_id="logBureauQuery",
)
def log_bureau_query(
    customer_id: str,
    request_body: BureauQueryInput,
    request: Request,
    tenant_ctx: RequireAuthorized,
) -> BureauQueryLog:
    """Log a bureau call. The response carries only the masked API key."""
    ledger = _get_ledger(request, tenant_ctx.tenant_id)
    return ledger.log_bureau_query(
        customer_id,
        request_body,
        tenant_ctx.actor(),
        request_id=get_request_id(request),
    )
