"""Pytest configuration and fixtures for CREL tests.

In-memory stores are process-global, so every test starts from a clean slate.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest

from crel.audit.sink import InMemoryAuditSink
from crel.models.actor import ActorIdentity
from crel.persistence.db import CREL_DATABASE_URL_ENV, reset_engines
from crel.persistence.repositories import clear_all_stores


@pytest.fixture(autouse=True)
def clear_stores(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Clear in-memory stores and keep tests off any configured database."""
    monkeypatch.delenv(CREL_DATABASE_URL_ENV, raising=False)
    clear_all_stores()
    yield
    clear_all_stores()
    reset_engines()


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    """Provide in-memory audit sink."""
    return InMemoryAuditSink()


@pytest.fixture
def evaluator() -> ActorIdentity:
    return ActorIdentity(actor_id="analyst-1", name="Ana Analyst", position="Credit analyst")


@pytest.fixture
def reviewer() -> ActorIdentity:
    return ActorIdentity(actor_id="officer-1", name="Rui Reviewer", position="Credit officer")
