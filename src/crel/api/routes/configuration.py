"""Scoring configuration routes for the CREL API.

GET /v1/scoring-config creates the tenant configuration with defaults on
first read; PUT /v1/scoring-config/{config_id} replaces weights, thresholds
and the re-evaluation cadence (ADMIN only).
"""

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from crel.api.deps import get_db_conn, get_request_audit_sink, get_request_id
from crel.api.rbac import RequireAuthorized
from crel.scoring.models import CategoryWeights, ScoringConfiguration, TierThreshold
from crel.services.configuration import ScoringConfigService, UpdateScoringConfigInput

router = APIRouter(prefix="/v1", tags=["Scoring configuration"])


class UpdateScoringConfigRequest(BaseModel):
    """Request body for PUT /v1/scoring-config/{config_id}."""

    weights: CategoryWeights
    tier_thresholds: list[TierThreshold]
    reevaluation_months: int = Field(..., ge=1)


def _get_service(request: Request, tenant_id: str) -> ScoringConfigService:
    return ScoringConfigService(
        tenant_id,
        db_conn=get_db_conn(request),
        audit_sink=get_request_audit_sink(request),
    )


@router.get(
    "/scoring-config",
    response_model=ScoringConfiguration,
    operation_id="getScoringConfig",
)
def get_scoring_config(request: Request, tenant_ctx: RequireAuthorized) -> ScoringConfiguration:
    """Return the caller's tenant configuration, creating the default one if absent."""
    return _get_service(request, tenant_ctx.tenant_id).get_or_create()


@router.put(
    "/scoring-config/{config_id}",
    response_model=ScoringConfiguration,
    operation_id="updateScoringConfig",
)
def update_scoring_config(
    config_id: str,
    request_body: UpdateScoringConfigRequest,
    request: Request,
    tenant_ctx: RequireAuthorized,
) -> ScoringConfiguration:
    """Replace the tenant configuration.

    Weights that do not sum to 100% are rejected with 400 and the stored
    configuration is left unchanged.
    """
    service = _get_service(request, tenant_ctx.tenant_id)
    return service.update(
        config_id,
        UpdateScoringConfigInput(
            weights=request_body.weights,
            tier_thresholds=request_body.tier_thresholds,
            reevaluation_months=request_body.reevaluation_months,
            request_id=get_request_id(request),
        ),
        actor=tenant_ctx.actor(),
    )
