"""Credit evaluation routes for the CREL API.

Create, read, edit and soft-delete evaluations, and the reviewer decisions
(approve / reject). Decisions are single compare-and-set transitions out of
``pendiente``; a repeated decision returns 409.
"""

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel, Field

from crel.api.deps import get_db_conn, get_request_audit_sink, get_request_id
from crel.api.rbac import RequireAuthorized
from crel.models.evaluation import DEFAULT_VALIDITY_DAYS, EvaluationRecord
from crel.scoring.models import ScoringItem, Tier
from crel.services.evaluations import (
    ApproveEvaluationInput,
    CreateEvaluationInput,
    EvaluationService,
    RejectEvaluationInput,
    UpdateEvaluationInput,
)

router = APIRouter(prefix="/v1", tags=["Evaluations"])


class CreateEvaluationRequest(BaseModel):
    """Request body for POST /v1/evaluations."""

    customer_id: str
    customer_name: str | None = None
    customer_tax_id: str | None = None
    net_worth: float = Field(..., ge=0.0)
    annual_sales: float | None = Field(default=None, ge=0.0)
    items: list[ScoringItem]
    bureau_score: float | None = None
    manual_adjustment: float | None = None
    personal_assessment: str | None = None
    validity_days: int = Field(default=DEFAULT_VALIDITY_DAYS, ge=1)


class UpdateEvaluationRequest(BaseModel):
    """Request body for PATCH /v1/evaluations/{evaluation_id}. Omitted fields are kept."""

    customer_name: str | None = None
    customer_tax_id: str | None = None
    bureau_score: float | None = None
    manual_adjustment: float | None = None
    personal_assessment: str | None = None
    validity_days: int | None = Field(default=None, ge=1)


class ApproveEvaluationRequest(BaseModel):
    tier_assigned: Tier | None = None
    credit_limit_assigned: float | None = None


class RejectEvaluationRequest(BaseModel):
    reason: str


class EvaluationList(BaseModel):
    items: list[EvaluationRecord]


def _get_service(request: Request, tenant_id: str) -> EvaluationService:
    return EvaluationService(
        tenant_id,
        db_conn=get_db_conn(request),
        audit_sink=get_request_audit_sink(request),
    )


@router.post(
    "/evaluations",
    response_model=EvaluationRecord,
    status_code=201,
    operation_id="createEvaluation",
)
def create_evaluation(
    request_body: CreateEvaluationRequest,
    request: Request,
    tenant_ctx: RequireAuthorized,
) -> EvaluationRecord:
    """Score a customer and store the evaluation as pending review."""
    service = _get_service(request, tenant_ctx.tenant_id)
    return service.create(
        tenant_ctx.actor(),
        CreateEvaluationInput(
            **request_body.model_dump(),
            request_id=get_request_id(request),
        ),
    )


@router.get("/evaluations", response_model=EvaluationList, operation_id="listEvaluations")
def list_evaluations(
    request: Request,
    tenant_ctx: RequireAuthorized,
    customer_id: str | None = None,
    active_only: bool = False,
) -> EvaluationList:
    """List the tenant's evaluations, newest first.

    With active_only, only the most recent evaluation of each customer is returned.
    """
    service = _get_service(request, tenant_ctx.tenant_id)
    return EvaluationList(items=service.list(customer_id=customer_id, active_only=active_only))


@router.get(
    "/evaluations/{evaluation_id}",
    response_model=EvaluationRecord,
    operation_id="getEvaluation",
)
def get_evaluation(
    evaluation_id: str, request: Request, tenant_ctx: RequireAuthorized
) -> EvaluationRecord:
    return _get_service(request, tenant_ctx.tenant_id).get(evaluation_id)


@router.patch(
    "/evaluations/{evaluation_id}",
    response_model=EvaluationRecord,
    operation_id="updateEvaluation",
)
def update_evaluation(
    evaluation_id: str,
    request_body: UpdateEvaluationRequest,
    request: Request,
    tenant_ctx: RequireAuthorized,
) -> EvaluationRecord:
    service = _get_service(request, tenant_ctx.tenant_id)
    return service.update(
        evaluation_id,
        UpdateEvaluationInput(
            **request_body.model_dump(exclude_unset=True),
            request_id=get_request_id(request),
        ),
    )


@router.delete(
    "/evaluations/{evaluation_id}",
    status_code=204,
    response_class=Response,
    operation_id="deleteEvaluation",
)
def delete_evaluation(
    evaluation_id: str, request: Request, tenant_ctx: RequireAuthorized
) -> Response:
    """Soft-delete a pending evaluation."""
    _get_service(request, tenant_ctx.tenant_id).delete(
        evaluation_id, request_id=get_request_id(request)
    )
    return Response(status_code=204)


@router.post(
    "/evaluations/{evaluation_id}/approve",
    response_model=EvaluationRecord,
    operation_id="approveEvaluation",
)
def approve_evaluation(
    evaluation_id: str,
    request_body: ApproveEvaluationRequest,
    request: Request,
    tenant_ctx: RequireAuthorized,
) -> EvaluationRecord:
    """Approve with an assigned tier and credit limit; writes a ledger scoring snapshot."""
    service = _get_service(request, tenant_ctx.tenant_id)
    return service.approve(
        evaluation_id,
        tenant_ctx.actor(),
        ApproveEvaluationInput(
            tier_assigned=request_body.tier_assigned,
            credit_limit_assigned=request_body.credit_limit_assigned,
            request_id=get_request_id(request),
        ),
    )


@router.post(
    "/evaluations/{evaluation_id}/reject",
    response_model=EvaluationRecord,
    operation_id="rejectEvaluation",
)
def reject_evaluation(
    evaluation_id: str,
    request_body: RejectEvaluationRequest,
    request: Request,
    tenant_ctx: RequireAuthorized,
) -> EvaluationRecord:
    service = _get_service(request, tenant_ctx.tenant_id)
    return service.reject(
        evaluation_id,
        tenant_ctx.actor(),
        RejectEvaluationInput(reason=request_body.reason, request_id=get_request_id(request)),
    )
