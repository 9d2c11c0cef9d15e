"""Persistence repositories for CREL.

Provides tenant-scoped data access with SQL persistence
and in-memory fallback for development/testing.
"""

from crel.persistence.repositories.configuration import (
    InMemoryScoringConfigRepository,
    ScoringConfigRepository,
    clear_config_store,
    get_scoring_config_repository,
)
from crel.persistence.repositories.evaluations import (
    EvaluationsRepository,
    InMemoryEvaluationsRepository,
    clear_evaluations_store,
    get_evaluations_repository,
)
from crel.persistence.repositories.ledger import (
    InMemoryLedgerRepository,
    LedgerRepository,
    clear_ledger_store,
    get_ledger_repository,
)


def clear_all_stores() -> None:
    """Clear every in-memory store. For testing only."""
    clear_config_store()
    clear_evaluations_store()
    clear_ledger_store()


__all__ = [
    "EvaluationsRepository",
    "InMemoryEvaluationsRepository",
    "InMemoryLedgerRepository",
    "InMemoryScoringConfigRepository",
    "LedgerRepository",
    "ScoringConfigRepository",
    "clear_all_stores",
    "clear_config_store",
    "clear_evaluations_store",
    "clear_ledger_store",
    "get_evaluations_repository",
    "get_ledger_repository",
    "get_scoring_config_repository",
]
