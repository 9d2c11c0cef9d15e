"""Health check endpoint for the CREL API."""

from fastapi import APIRouter
from pydantic import BaseModel

from crel.clock import to_iso, utc_now

router = APIRouter(tags=["Health"])

CREL_VERSION = "1.0.0"


class HealthResponse(BaseModel):
    status: str
    time: str
    version: str


@router.get("/health", response_model=HealthResponse)
def get_health() -> HealthResponse:
    """Liveness check. No authentication; the request id header is added by middleware."""
    return HealthResponse(status="ok", time=to_iso(utc_now()), version=CREL_VERSION)
