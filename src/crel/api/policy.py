"""CREL role-based policy definitions and enforcement.

Deny-by-default authorization keyed by route operation_id:
- RBAC roles: EVALUATOR, REVIEWER, ADMIN, AUDITOR, INTEGRATION_SERVICE
- Only REVIEWER and ADMIN can approve or reject evaluations
- Only ADMIN can change the scoring configuration
- AUDITOR cannot perform mutations (read-only role)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Set


class Role(str, Enum):
    """RBAC roles.

    - EVALUATOR: credit analysts who score customers
    - REVIEWER: credit officers who approve or reject evaluations
    - ADMIN: system administrators
    - AUDITOR: read-only audit/compliance role
    - INTEGRATION_SERVICE: service accounts feeding ledger data
    """

    EVALUATOR = "EVALUATOR"
    REVIEWER = "REVIEWER"
    ADMIN = "ADMIN"
    AUDITOR = "AUDITOR"
    INTEGRATION_SERVICE = "INTEGRATION_SERVICE"


ALL_ROLES: frozenset[str] = frozenset(r.value for r in Role)
MUTATOR_ROLES: frozenset[str] = frozenset(
    {
        Role.EVALUATOR.value,
        Role.REVIEWER.value,
        Role.ADMIN.value,
        Role.INTEGRATION_SERVICE.value,
    }
)
DECISION_ROLES: frozenset[str] = frozenset({Role.REVIEWER.value, Role.ADMIN.value})
ADMIN_ONLY: frozenset[str] = frozenset({Role.ADMIN.value})


@dataclass(frozen=True, slots=True)
class PolicyRule:
    """Policy rule for a route operation.

    Attributes:
        allowed_roles: Set of roles that can invoke this operation.
        is_mutation: True if this operation modifies state (AUDITOR blocked).
    """

    allowed_roles: frozenset[str]
    is_mutation: bool = False


@dataclass(frozen=True, slots=True)
class PolicyDecision:
    """Result of policy_check evaluation."""

    allow: bool
    code: str
    message: str
    details: dict[str, str | list[str]] | None = None


POLICY_RULES: dict[str, PolicyRule] = {
    "getScoringConfig": PolicyRule(allowed_roles=ALL_ROLES),
    "updateScoringConfig": PolicyRule(allowed_roles=ADMIN_ONLY, is_mutation=True),
    "createEvaluation": PolicyRule(allowed_roles=MUTATOR_ROLES, is_mutation=True),
    "listEvaluations": PolicyRule(allowed_roles=ALL_ROLES),
    "getEvaluation": PolicyRule(allowed_roles=ALL_ROLES),
    "updateEvaluation": PolicyRule(allowed_roles=MUTATOR_ROLES, is_mutation=True),
    "deleteEvaluation": PolicyRule(allowed_roles=MUTATOR_ROLES, is_mutation=True),
    "approveEvaluation": PolicyRule(allowed_roles=DECISION_ROLES, is_mutation=True),
    "rejectEvaluation": PolicyRule(allowed_roles=DECISION_ROLES, is_mutation=True),
    "listScoringHistory": PolicyRule(allowed_roles=ALL_ROLES),
    "addScoringRecord": PolicyRule(allowed_roles=MUTATOR_ROLES, is_mutation=True),
    "getCurrentValidScore": PolicyRule(allowed_roles=ALL_ROLES),
    "listFinancialSnapshots": PolicyRule(allowed_roles=ALL_ROLES),
    "addFinancialSnapshot": PolicyRule(allowed_roles=MUTATOR_ROLES, is_mutation=True),
    "listAssetSnapshots": PolicyRule(allowed_roles=ALL_ROLES),
    "addAssetSnapshot": PolicyRule(allowed_roles=MUTATOR_ROLES, is_mutation=True),
    "listBureauQueries": PolicyRule(allowed_roles=ALL_ROLES),
    "logBureauQuery": PolicyRule(allowed_roles=MUTATOR_ROLES, is_mutation=True),
}


def policy_check(
    *,
    tenant_id: str,
    actor_id: str,
    roles: Set[str],
    operation_id: str,
) -> PolicyDecision:
    """Evaluate RBAC policy for a request.

    1. Operation must be in POLICY_RULES (deny unknown operations)
    2. Actor must have at least one allowed role
    3. AUDITOR role cannot perform mutations

    Args:
        tenant_id: Tenant ID from auth context (required).
        actor_id: Actor ID from auth context (required).
        roles: Set of roles from auth context.
        operation_id: Route operation_id being invoked.

    Returns:
        PolicyDecision with allow=True or allow=False with denial reason.
    """
    if not tenant_id:
        return PolicyDecision(
            allow=False,
            code="RBAC_DENIED",
            message="Missing tenant context",
            details={"reason": "tenant_id is required"},
        )

    if not actor_id:
        return PolicyDecision(
            allow=False,
            code="RBAC_DENIED",
            message="Missing actor identity",
            details={"reason": "actor_id is required"},
        )

    if not roles:
        return PolicyDecision(
            allow=False,
            code="RBAC_DENIED",
            message="No roles assigned to actor",
            details={"actor_id": actor_id},
        )

    rule = POLICY_RULES.get(operation_id)
    if rule is None:
        return PolicyDecision(
            allow=False,
            code="RBAC_DENIED",
            message="Operation not permitted",
            details={"operation_id": operation_id, "reason": "unknown_operation"},
        )

    actor_roles = set(roles)
    matching_roles = actor_roles & set(rule.allowed_roles)
    if not matching_roles:
        return PolicyDecision(
            allow=False,
            code="RBAC_DENIED",
            message="Insufficient privileges for this operation",
            details={
                "operation_id": operation_id,
                "required_roles": sorted(rule.allowed_roles),
                "actor_roles": sorted(actor_roles),
            },
        )

    if rule.is_mutation and matching_roles == {Role.AUDITOR.value}:
        return PolicyDecision(
            allow=False,
            code="RBAC_DENIED",
            message="AUDITOR role cannot perform mutations",
            details={"operation_id": operation_id, "reason": "auditor_read_only"},
        )

    return PolicyDecision(allow=True, code="ALLOWED", message="Access granted")


def get_all_v1_operation_ids() -> frozenset[str]:
    """Return all operation ids covered by the policy (used by coverage tests)."""
    return frozenset(POLICY_RULES.keys())
