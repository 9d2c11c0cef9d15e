"""Domain error taxonomy for CREL.

Every service raises one of these. Each class carries the HTTP status and the
machine-readable code the API error handler renders into the error envelope,
so services never import FastAPI.

- ValidationError (400): bad input or a business-rule violation
- NotFoundError (404): record absent for the calling tenant
- ConflictError (409): state-machine guard failed (e.g. already decided)
- IsolationViolationError (403): operation attempted without a tenant scope
- LedgerAppendError (500): approval could not write its ledger snapshot
"""

from __future__ import annotations

from typing import Any


class CrelError(Exception):
    """Base exception for CREL domain errors.

    Attributes:
        message: Human-readable error message.
        tenant_id: Tenant the failing operation was scoped to, if known.
        details: Optional structured context (no sensitive data).
    """

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        tenant_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.tenant_id = tenant_id
        self.details = details

    def __str__(self) -> str:
        return self.message


class ValidationError(CrelError):
    """Raised when input or a business rule is invalid."""

    status_code = 400
    code = "VALIDATION_FAILED"


class NotFoundError(CrelError):
    """Raised when a record does not exist for the calling tenant.

    Records belonging to other tenants are reported exactly like missing ones.
    """

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource_type: str, resource_id: str, tenant_id: str | None = None) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(
            f"{resource_type} {resource_id} not found",
            tenant_id=tenant_id,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class ConflictError(CrelError):
    """Raised when a state transition is not allowed from the current state."""

    status_code = 409
    code = "CONFLICT"

    def __init__(
        self,
        resource_id: str,
        current_state: str,
        target_state: str,
        tenant_id: str | None = None,
    ) -> None:
        self.resource_id = resource_id
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"{resource_id} cannot move from {current_state} to {target_state}",
            tenant_id=tenant_id,
            details={"current_state": current_state, "target_state": target_state},
        )


class IsolationViolationError(CrelError):
    """Raised when data access is attempted without a valid tenant scope."""

    status_code = 403
    code = "TENANT_ISOLATION_VIOLATION"


class LedgerAppendError(CrelError):
    """Raised when a ledger snapshot required by an approval cannot be written."""

    status_code = 500
    code = "LEDGER_APPEND_FAILED"
