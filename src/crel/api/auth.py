"""CREL API authentication and tenant context extraction.

API keys (X-CREL-API-Key header) resolve to a tenant context through a
registry loaded from CREL_API_KEYS_JSON:

    {"<api-key>": {"tenant_id": "...", "actor_id": "...", "name": "...",
                   "position": "...", "roles": ["EVALUATOR"]}}

Fails closed on missing or invalid credentials. Unknown roles are rejected.
Errors do not leak tenant existence.
"""

import hmac
import json
import logging
import os
from typing import Annotated

from fastapi import Depends, Request
from pydantic import BaseModel, ValidationError

from crel.api.errors import CrelHttpError
from crel.api.policy import ALL_ROLES
from crel.models.actor import ActorIdentity

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-CREL-API-Key"
CREL_API_KEYS_ENV = "CREL_API_KEYS_JSON"


class TenantContext(BaseModel):
    """Authenticated caller: tenant scope, identity and roles."""

    tenant_id: str
    actor_id: str
    name: str
    position: str | None = None
    roles: frozenset[str] = frozenset()

    def actor(self) -> ActorIdentity:
        """Identity recorded on evaluations and ledger entries."""
        return ActorIdentity(actor_id=self.actor_id, name=self.name, position=self.position)


class ApiKeyRecord(BaseModel):
    """API key registry entry.

    The actor_id is a stable, non-secret identifier for the key holder.
    """

    tenant_id: str
    actor_id: str
    name: str
    position: str | None = None
    roles: list[str] = []


def _load_api_key_registry() -> dict[str, ApiKeyRecord]:
    """Load the API key registry from the environment.

    Returns an empty dict if the variable is missing or not valid JSON.
    """
    raw = os.environ.get(CREL_API_KEYS_ENV)
    if not raw:
        return {}

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Failed to parse %s; treating as empty registry", CREL_API_KEYS_ENV)
        return {}

    if not isinstance(parsed, dict):
        logger.warning("%s is not a dict; treating as empty registry", CREL_API_KEYS_ENV)
        return {}

    registry: dict[str, ApiKeyRecord] = {}
    for key, value in parsed.items():
        if not isinstance(key, str) or not isinstance(value, dict):
            continue
        try:
            registry[key] = ApiKeyRecord.model_validate(value)
        except ValidationError:
            logger.warning("Skipping malformed API key entry for actor %s", value.get("actor_id"))
            continue

    return registry


def _constant_time_lookup(
    provided_key: str, registry: dict[str, ApiKeyRecord]
) -> ApiKeyRecord | None:
    """Look up an API key comparing every entry with hmac.compare_digest."""
    matched_record: ApiKeyRecord | None = None
    provided_bytes = provided_key.encode("utf-8")

    for registered_key, record in registry.items():
        if hmac.compare_digest(provided_bytes, registered_key.encode("utf-8")):
            matched_record = record

    return matched_record


def _normalize_roles(roles: list[str]) -> frozenset[str]:
    """Normalize roles, rejecting unknown ones.

    Raises:
        CrelHttpError: 401 if any role is unknown.
    """
    normalized: set[str] = set()
    for role in roles:
        upper_role = role.upper().strip()
        if upper_role not in ALL_ROLES:
            raise CrelHttpError(
                status_code=401,
                code="UNAUTHORIZED",
                message="Invalid credentials",
            )
        normalized.add(upper_role)
    return frozenset(normalized)


def authenticate_request(request: Request) -> TenantContext:
    """Resolve the tenant context from the X-CREL-API-Key header.

    Raises:
        CrelHttpError: 401 if the key is missing, unknown or carries unknown roles.
    """
    api_key = request.headers.get(API_KEY_HEADER)
    if not api_key:
        raise CrelHttpError(status_code=401, code="UNAUTHORIZED", message="Missing API key")

    registry = _load_api_key_registry()
    record = _constant_time_lookup(api_key, registry) if registry else None
    if record is None:
        raise CrelHttpError(status_code=401, code="UNAUTHORIZED", message="Invalid API key")

    return TenantContext(
        tenant_id=record.tenant_id,
        actor_id=record.actor_id,
        name=record.name,
        position=record.position,
        roles=_normalize_roles(record.roles),
    )


async def require_tenant_context(request: Request) -> TenantContext:
    """FastAPI dependency enforcing authentication.

    Stores the context on request.state for downstream use.

    Raises:
        CrelHttpError: 401 on any auth failure.
    """
    tenant_ctx = authenticate_request(request)
    request.state.tenant_context = tenant_ctx
    return tenant_ctx


RequireTenantContext = Annotated[TenantContext, Depends(require_tenant_context)]
