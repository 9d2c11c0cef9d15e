"""Scoring configuration service."""

from crel.services.configuration.service import ScoringConfigService, UpdateScoringConfigInput

__all__ = ["ScoringConfigService", "UpdateScoringConfigInput"]
