"""Tenant scoping primitives.

Every repository is constructed with a tenant id and every stored record is
keyed by it, so a query can only ever address rows of its own tenant.
"""

from __future__ import annotations

from typing import NamedTuple

from crel.errors import IsolationViolationError


class TenantKey(NamedTuple):
    """Composite key for tenant-owned records."""

    tenant_id: str
    record_id: str


def require_tenant_id(tenant_id: str | None) -> str:
    """Return a normalized tenant id or fail closed.

    Raises:
        IsolationViolationError: If tenant_id is missing or blank.
    """
    if tenant_id is None or not str(tenant_id).strip():
        raise IsolationViolationError("Operation requires a tenant scope")
    return str(tenant_id).strip()
