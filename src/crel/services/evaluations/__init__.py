"""Credit evaluation workflow service."""

from crel.services.evaluations.service import (
    ApproveEvaluationInput,
    CreateEvaluationInput,
    EvaluationService,
    RejectEvaluationInput,
    UpdateEvaluationInput,
)

__all__ = [
    "ApproveEvaluationInput",
    "CreateEvaluationInput",
    "EvaluationService",
    "RejectEvaluationInput",
    "UpdateEvaluationInput",
]
