"""ScoringConfigService - per-tenant scoring configuration.

- get_or_create(): lazily creates the tenant configuration with defaults
- update(): validates weights and thresholds before any write; on failure the
  stored configuration is left untouched

Uses SQL repositories when db_conn exists, in-memory fallback otherwise.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from crel.audit.events import build_audit_event, emit_audit_event
from crel.audit.sink import AuditSink, InMemoryAuditSink
from crel.clock import Clock, to_iso, utc_now
from crel.errors import NotFoundError
from crel.models.actor import ActorIdentity
from crel.persistence.repositories.configuration import get_scoring_config_repository
from crel.scoring.models import (
    DEFAULT_REEVALUATION_MONTHS,
    DEFAULT_TIER_THRESHOLDS,
    DEFAULT_WEIGHTS,
    CategoryWeights,
    ScoringConfiguration,
    TierThreshold,
)
from crel.scoring.weights import check_tier_thresholds, check_weight_sum
from crel.tenancy import require_tenant_id

if TYPE_CHECKING:
    from sqlalchemy import Connection

logger = logging.getLogger(__name__)


class UpdateScoringConfigInput(BaseModel):
    """Input for replacing a tenant's weights, thresholds and cadence."""

    model_config = ConfigDict(frozen=True)

    weights: CategoryWeights
    tier_thresholds: list[TierThreshold]
    reevaluation_months: int = Field(..., ge=1)
    request_id: str | None = None


class ScoringConfigService:
    """Service for the per-tenant scoring configuration."""

    def __init__(
        self,
        tenant_id: str,
        db_conn: Connection | None = None,
        audit_sink: AuditSink | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            tenant_id: Tenant whose configuration is managed.
            db_conn: Optional SQL connection; in-memory store when None.
            audit_sink: Optional audit sink; in-memory sink when None.
            clock: Optional clock returning an aware UTC datetime.
        """
        self._tenant_id = require_tenant_id(tenant_id)
        self._repo = get_scoring_config_repository(db_conn, self._tenant_id)
        self._audit_sink = audit_sink or InMemoryAuditSink()
        self._clock = clock or utc_now

    def get_or_create(self) -> ScoringConfiguration:
        """Return the tenant configuration, creating it with defaults if absent."""
        existing = self._repo.get_for_tenant()
        if existing is not None:
            return ScoringConfiguration.model_validate(existing)

        now = to_iso(self._clock())
        default = ScoringConfiguration(
            config_id=str(uuid.uuid4()),
            tenant_id=self._tenant_id,
            weights=DEFAULT_WEIGHTS,
            tier_thresholds=list(DEFAULT_TIER_THRESHOLDS),
            reevaluation_months=DEFAULT_REEVALUATION_MONTHS,
            created_at=now,
            updated_at=now,
        )
        self._repo.insert_if_absent(default.model_dump(mode="json"))

        stored = self._repo.get_for_tenant()
        if stored is None:
            raise RuntimeError(f"Scoring configuration vanished for tenant {self._tenant_id}")
        config = ScoringConfiguration.model_validate(stored)
        if config.config_id == default.config_id:
            logger.info("Created default scoring configuration for tenant %s", self._tenant_id)
            emit_audit_event(
                self._audit_sink,
                build_audit_event(
                    tenant_id=self._tenant_id,
                    event_type="scoring_config.created",
                    occurred_at=now,
                    resource_type="scoring_config",
                    resource_id=config.config_id,
                ),
            )
        return config

    def update(
        self,
        config_id: str,
        input_data: UpdateScoringConfigInput,
        actor: ActorIdentity | None = None,
    ) -> ScoringConfiguration:
        """Validate and persist a new configuration (last writer wins).

        Raises:
            ValidationError: If weights do not sum to 100% or thresholds are invalid.
            NotFoundError: If config_id is not this tenant's configuration.
        """
        check_weight_sum(input_data.weights)
        check_tier_thresholds(input_data.tier_thresholds)

        existing = self._repo.get(config_id)
        if existing is None:
            raise NotFoundError("scoring_config", config_id, self._tenant_id)

        now = to_iso(self._clock())
        updated = ScoringConfiguration(
            config_id=config_id,
            tenant_id=self._tenant_id,
            weights=input_data.weights,
            tier_thresholds=input_data.tier_thresholds,
            reevaluation_months=input_data.reevaluation_months,
            created_at=existing["created_at"],
            updated_at=now,
        )
        if not self._repo.update(updated.model_dump(mode="json")):
            raise NotFoundError("scoring_config", config_id, self._tenant_id)

        emit_audit_event(
            self._audit_sink,
            build_audit_event(
                tenant_id=self._tenant_id,
                event_type="scoring_config.updated",
                occurred_at=now,
                resource_type="scoring_config",
                resource_id=config_id,
                actor=actor.model_dump(mode="json") if actor else None,
                request_id=input_data.request_id,
                details={
                    "previous_weights": existing["weights"],
                    "weights": input_data.weights.model_dump(mode="json"),
                    "reevaluation_months": input_data.reevaluation_months,
                },
            ),
        )
        logger.info("Updated scoring configuration %s for tenant %s", config_id, self._tenant_id)
        return updated
