"""RBAC enforcement dependency for CREL routes.

Authorization runs after routing, so the matched route's operation_id is
read from the ASGI scope. A route without an operation_id, or with one the
policy does not know, is denied.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, Request

from crel.api.auth import RequireTenantContext, TenantContext
from crel.api.errors import CrelHttpError
from crel.api.policy import policy_check

logger = logging.getLogger(__name__)


def _route_operation_id(request: Request) -> str | None:
    route = request.scope.get("route")
    return getattr(route, "operation_id", None)


async def require_authorized(request: Request, tenant_ctx: RequireTenantContext) -> TenantContext:
    """FastAPI dependency: authenticated and allowed to invoke this operation.

    Raises:
        CrelHttpError: 403 RBAC_DENIED when the policy denies the request.
    """
    operation_id = _route_operation_id(request) or ""
    decision = policy_check(
        tenant_id=tenant_ctx.tenant_id,
        actor_id=tenant_ctx.actor_id,
        roles=tenant_ctx.roles,
        operation_id=operation_id,
    )
    if not decision.allow:
        logger.info(
            "RBAC denied %s for actor %s: %s",
            operation_id,
            tenant_ctx.actor_id,
            decision.message,
            extra={"request_id": getattr(request.state, "request_id", None)},
        )
        raise CrelHttpError(
            status_code=403,
            code=decision.code,
            message=decision.message,
            details=decision.details,
        )
    return tenant_ctx


RequireAuthorized = Annotated[TenantContext, Depends(require_authorized)]
