"""Tests for the evaluation and scoring-configuration routes.

- Create scores the items and suggests a tier (201)
- A decision is applied once; the second attempt returns 409
- Weights that do not sum to 100% are rejected with 400
- Request schema errors use the error envelope (422)
- Another tenant's evaluation is reported as not found
"""

from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from crel.api.auth import API_KEY_HEADER, CREL_API_KEYS_ENV
from crel.api.main import create_app
from crel.api.policy import Role
from crel.audit.sink import InMemoryAuditSink
from tests.fixtures.factories import TENANT_A_ID, TENANT_B_ID, items_payload, make_api_keys_json

ADMIN_KEY = "key-admin-a"
REVIEWER_KEY = "key-reviewer-a"
EVALUATOR_KEY = "key-evaluator-a"
TENANT_B_KEY = "key-admin-b"


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, audit_sink: InMemoryAuditSink) -> TestClient:
    monkeypatch.setenv(
        CREL_API_KEYS_ENV,
        make_api_keys_json(
            (ADMIN_KEY, TENANT_A_ID, "admin-a", [Role.ADMIN.value]),
            (REVIEWER_KEY, TENANT_A_ID, "officer-a", [Role.REVIEWER.value]),
            (EVALUATOR_KEY, TENANT_A_ID, "analyst-a", [Role.EVALUATOR.value]),
            (TENANT_B_KEY, TENANT_B_ID, "admin-b", [Role.ADMIN.value]),
        ),
    )
    return TestClient(create_app(audit_sink=audit_sink))


def _headers(api_key: str = EVALUATOR_KEY) -> dict[str, str]:
    return {API_KEY_HEADER: api_key}


def _evaluation_body(**overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "customer_id": "cust-001",
        "customer_name": "Agro Norte SA",
        "net_worth": 2_000_000,
        "annual_sales": 1_500_000,
        "items": items_payload(80, 90, 70),
    }
    body.update(overrides)
    return body


def _configure_example_thresholds(client: TestClient) -> None:
    config = client.get("/v1/scoring-config", headers=_headers(ADMIN_KEY)).json()
    response = client.put(
        f"/v1/scoring-config/{config['config_id']}",
        json={
            "weights": {"qualitative": 0.43, "conflicts": 0.31, "quantitative": 0.26},
            "tier_thresholds": [
                {"tier": "A", "min_score": 85},
                {"tier": "B", "min_score": 70, "max_net_worth": 10_000_000},
                {"tier": "C", "min_score": 40},
            ],
            "reevaluation_months": 12,
        },
        headers=_headers(ADMIN_KEY),
    )
    assert response.status_code == 200


def _create(client: TestClient, **overrides: Any) -> dict[str, Any]:
    response = client.post(
        "/v1/evaluations", json=_evaluation_body(**overrides), headers=_headers()
    )
    assert response.status_code == 201, response.text
    created: dict[str, Any] = response.json()
    return created


class TestScoringConfigRoutes:
    """Tests for GET/PUT /v1/scoring-config."""

    def test_default_configuration(self, client: TestClient) -> None:
        response = client.get("/v1/scoring-config", headers=_headers())

        assert response.status_code == 200
        data = response.json()
        assert data["weights"] == {"qualitative": 0.43, "conflicts": 0.31, "quantitative": 0.26}
        assert data["reevaluation_months"] == 12
        assert data["tenant_id"] == TENANT_A_ID

    def test_weights_over_100_percent_rejected(self, client: TestClient) -> None:
        config = client.get("/v1/scoring-config", headers=_headers(ADMIN_KEY)).json()

        response = client.put(
            f"/v1/scoring-config/{config['config_id']}",
            json={
                "weights": {"qualitative": 0.5, "conflicts": 0.3, "quantitative": 0.3},
                "tier_thresholds": config["tier_thresholds"],
                "reevaluation_months": 12,
            },
            headers=_headers(ADMIN_KEY),
        )

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "VALIDATION_FAILED"
        assert body["message"] == "weights must sum to 100%; got 110%"
        unchanged = client.get("/v1/scoring-config", headers=_headers(ADMIN_KEY)).json()
        assert unchanged["weights"] == config["weights"]

    def test_other_tenant_config_id_not_found(self, client: TestClient) -> None:
        config = client.get("/v1/scoring-config", headers=_headers(ADMIN_KEY)).json()

        response = client.put(
            f"/v1/scoring-config/{config['config_id']}",
            json={
                "weights": config["weights"],
                "tier_thresholds": config["tier_thresholds"],
                "reevaluation_months": 12,
            },
            headers=_headers(TENANT_B_KEY),
        )

        assert response.status_code == 404


class TestEvaluationRoutes:
    """Tests for the evaluation lifecycle over HTTP."""

    def test_create_scores_and_suggests_tier(self, client: TestClient) -> None:
        _configure_example_thresholds(client)

        created = _create(client)

        assert created["composite_score"] == 80.5
        assert created["tier_suggested"] == "B"
        assert created["state"] == "pendiente"
        assert created["evaluator"]["actor_id"] == "analyst-a"

    def test_approve_once_then_conflict(
        self, client: TestClient, audit_sink: InMemoryAuditSink
    ) -> None:
        _configure_example_thresholds(client)
        evaluation_id = _create(client)["evaluation_id"]
        decision = {"tier_assigned": "B", "credit_limit_assigned": 250_000}

        first = client.post(
            f"/v1/evaluations/{evaluation_id}/approve",
            json=decision,
            headers=_headers(REVIEWER_KEY),
        )
        second = client.post(
            f"/v1/evaluations/{evaluation_id}/approve",
            json=decision,
            headers=_headers(REVIEWER_KEY),
        )

        assert first.status_code == 200
        assert first.json()["state"] == "aprobada"
        assert first.json()["ledger_entry_id"]
        assert second.status_code == 409
        assert second.json()["code"] == "CONFLICT"
        assert audit_sink.event_types().count("evaluation.approved") == 1

    def test_approval_is_visible_in_ledger(self, client: TestClient) -> None:
        _configure_example_thresholds(client)
        evaluation_id = _create(client)["evaluation_id"]
        approved = client.post(
            f"/v1/evaluations/{evaluation_id}/approve",
            json={"tier_assigned": "B", "credit_limit_assigned": 250_000},
            headers=_headers(REVIEWER_KEY),
        ).json()

        current = client.get("/v1/customers/cust-001/ledger/scoring/current", headers=_headers())

        assert current.status_code == 200
        data = current.json()
        assert data["requires_reevaluation"] is False
        assert data["snapshot"]["entry_id"] == approved["ledger_entry_id"]
        assert data["snapshot"]["snapshot_data"]["credit_limit"] == 250_000

    def test_approving_better_tier_than_suggested_rejected(self, client: TestClient) -> None:
        _configure_example_thresholds(client)
        evaluation_id = _create(client)["evaluation_id"]

        response = client.post(
            f"/v1/evaluations/{evaluation_id}/approve",
            json={"tier_assigned": "A", "credit_limit_assigned": 250_000},
            headers=_headers(REVIEWER_KEY),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_FAILED"

    def test_missing_limit_rejected(self, client: TestClient) -> None:
        evaluation_id = _create(client)["evaluation_id"]

        response = client.post(
            f"/v1/evaluations/{evaluation_id}/approve",
            json={"tier_assigned": "C"},
            headers=_headers(REVIEWER_KEY),
        )

        assert response.status_code == 400

    def test_reject_requires_reason(self, client: TestClient) -> None:
        evaluation_id = _create(client)["evaluation_id"]

        blank = client.post(
            f"/v1/evaluations/{evaluation_id}/reject",
            json={"reason": "   "},
            headers=_headers(REVIEWER_KEY),
        )
        rejected = client.post(
            f"/v1/evaluations/{evaluation_id}/reject",
            json={"reason": "Outdated financial statements"},
            headers=_headers(REVIEWER_KEY),
        )

        assert blank.status_code == 400
        assert rejected.status_code == 200
        assert rejected.json()["state"] == "rechazada"
        assert rejected.json()["rejection_reason"] == "Outdated financial statements"

    def test_update_and_delete_pending_evaluation(self, client: TestClient) -> None:
        evaluation_id = _create(client)["evaluation_id"]

        patched = client.patch(
            f"/v1/evaluations/{evaluation_id}",
            json={"personal_assessment": "Long-standing customer"},
            headers=_headers(),
        )
        deleted = client.delete(f"/v1/evaluations/{evaluation_id}", headers=_headers())
        missing = client.get(f"/v1/evaluations/{evaluation_id}", headers=_headers())

        assert patched.status_code == 200
        assert patched.json()["personal_assessment"] == "Long-standing customer"
        assert patched.json()["customer_name"] == "Agro Norte SA"
        assert deleted.status_code == 204
        assert missing.status_code == 404

    def test_list_active_only_returns_latest_per_customer(self, client: TestClient) -> None:
        _create(client, customer_id="cust-001")
        latest = _create(client, customer_id="cust-001")
        other = _create(client, customer_id="cust-002")

        everything = client.get("/v1/evaluations", headers=_headers()).json()["items"]
        active = client.get(
            "/v1/evaluations", params={"active_only": "true"}, headers=_headers()
        ).json()["items"]

        assert len(everything) == 3
        assert {item["evaluation_id"] for item in active} == {
            latest["evaluation_id"],
            other["evaluation_id"],
        }

    def test_other_tenant_sees_not_found(self, client: TestClient) -> None:
        evaluation_id = _create(client)["evaluation_id"]

        response = client.get(f"/v1/evaluations/{evaluation_id}", headers=_headers(TENANT_B_KEY))
        listed = client.get("/v1/evaluations", headers=_headers(TENANT_B_KEY))

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"
        assert listed.json()["items"] == []


class TestErrorEnvelope:
    """Tests for the error envelope on request failures."""

    def test_schema_error_returns_422_envelope(self, client: TestClient) -> None:
        response = client.post(
            "/v1/evaluations",
            json={"customer_id": "cust-001", "items": []},
            headers=_headers(),
        )

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "REQUEST_VALIDATION_FAILED"
        assert any(error["field"] == "net_worth" for error in body["details"]["errors"])

    def test_error_echoes_request_id(self, client: TestClient) -> None:
        response = client.get(
            "/v1/evaluations/does-not-exist",
            headers={API_KEY_HEADER: EVALUATOR_KEY, "X-Request-Id": "req-123"},
        )

        assert response.status_code == 404
        assert response.headers["X-Request-Id"] == "req-123"
        assert response.json()["request_id"] == "req-123"

    def test_item_value_out_of_range_rejected(self, client: TestClient) -> None:
        items = items_payload(80, 90, 70)
        items[0]["value"] = 130

        response = client.post(
            "/v1/evaluations", json=_evaluation_body(items=items), headers=_headers()
        )

        assert response.status_code == 422
