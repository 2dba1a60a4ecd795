"""
Unit tests for the administrator API v1 routes.

Runs against a real RegistrationService over the in-memory store, with
bearer sessions minted by the test JWT issuer.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.adapters.security.sessions import JwtSessionIssuer
from src.api.dependencies import get_registration_service, get_session_issuer
from src.api.v1 import router
from src.domain.models import Role
from src.domain.registration import RegistrationService

BASE = "/v1/admin/registration-requests"


@pytest.fixture
def app(service: RegistrationService, session_issuer: JwtSessionIssuer) -> FastAPI:
    test_app = FastAPI()
    test_app.include_router(router, prefix="/v1")
    test_app.dependency_overrides[get_registration_service] = lambda: service
    test_app.dependency_overrides[get_session_issuer] = lambda: session_issuer
    return test_app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.fixture
def admin_headers(session_issuer: JwtSessionIssuer) -> dict:
    return {"Authorization": f"Bearer {session_issuer.encode('admin-1', Role.ADMIN)}"}


@pytest.fixture
def clinician_headers(session_issuer: JwtSessionIssuer) -> dict:
    return {"Authorization": f"Bearer {session_issuer.encode('user-7', Role.CLINICIAN)}"}


@pytest.fixture
def pending_id(service: RegistrationService) -> str:
    return service.request_registration("alice@example.com", "Alice", "Nguyen", Role.CLINICIAN).request_id


class TestAuthentication:
    def test_missing_token_returns_401(self, client: TestClient) -> None:
        response = client.get(BASE)
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_garbage_token_returns_401(self, client: TestClient) -> None:
        response = client.get(BASE, headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401
        assert response.json() == {"detail": "Invalid or expired session"}

    def test_foreign_signature_returns_401(self, client: TestClient) -> None:
        forged = JwtSessionIssuer("attacker-controlled-secret-32-bytes!").encode("admin-1", Role.ADMIN)
        response = client.get(BASE, headers={"Authorization": f"Bearer {forged}"})
        assert response.status_code == 401

    def test_non_admin_list_returns_403(self, client: TestClient, clinician_headers: dict) -> None:
        response = client.get(BASE, headers=clinician_headers)
        assert response.status_code == 403
        assert response.json() == {"detail": "Administrator role required"}

    def test_non_admin_approve_returns_403_for_any_id(self, client: TestClient, clinician_headers: dict) -> None:
        response = client.post(f"{BASE}/does-not-exist/approve", headers=clinician_headers)
        assert response.status_code == 403

    def test_non_admin_reject_returns_403(self, client: TestClient, clinician_headers: dict, pending_id: str) -> None:
        response = client.post(f"{BASE}/{pending_id}/reject", json={"reason": "x"}, headers=clinician_headers)
        assert response.status_code == 403


class TestListEndpoint:
    def test_lists_requests_without_secrets(self, client: TestClient, admin_headers: dict, pending_id: str) -> None:
        response = client.get(BASE, headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["pagination"] == {"page": 1, "limit": 10, "total": 1, "pages": 1}
        item = body["requests"][0]
        assert item["id"] == pending_id
        assert item["role"] == "CLINICIAN"
        assert item["status"] == "PENDING"
        assert item["email_verified"] is False
        assert not any("hash" in key or "token" in key for key in item)

    def test_status_filter(self, client: TestClient, admin_headers: dict, pending_id: str) -> None:
        response = client.get(BASE, params={"status": "APPROVED"}, headers=admin_headers)
        assert response.json()["requests"] == []

        response = client.get(BASE, params={"status": "PENDING"}, headers=admin_headers)
        assert [r["id"] for r in response.json()["requests"]] == [pending_id]

    def test_unknown_status_returns_422(self, client: TestClient, admin_headers: dict) -> None:
        response = client.get(BASE, params={"status": "ARCHIVED"}, headers=admin_headers)
        assert response.status_code == 422

    def test_limit_above_maximum_returns_422(self, client: TestClient, admin_headers: dict) -> None:
        response = client.get(BASE, params={"limit": 101}, headers=admin_headers)
        assert response.status_code == 422


class TestApproveEndpoint:
    def test_approve_without_body(self, client: TestClient, admin_headers: dict, pending_id: str) -> None:
        response = client.post(f"{BASE}/{pending_id}/approve", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {
            "message": "Registration request approved",
            "request_id": pending_id,
            "status": "APPROVED",
        }

    def test_approve_with_notes(
        self, client: TestClient, admin_headers: dict, pending_id: str, service: RegistrationService
    ) -> None:
        client.post(f"{BASE}/{pending_id}/approve", json={"notes": "License verified"}, headers=admin_headers)
        page = service.list_requests(None, 1, 10)
        assert page.items[0].admin_notes == "License verified"
        assert page.items[0].decided_by == "admin-1"

    def test_unknown_request_returns_404(self, client: TestClient, admin_headers: dict) -> None:
        response = client.post(f"{BASE}/00000000-0000-0000-0000-000000000000/approve", headers=admin_headers)
        assert response.status_code == 404
        assert response.json() == {"detail": "Registration request not found"}

    def test_second_decision_returns_409_with_winner(
        self, client: TestClient, admin_headers: dict, pending_id: str
    ) -> None:
        client.post(f"{BASE}/{pending_id}/approve", headers=admin_headers)

        response = client.post(f"{BASE}/{pending_id}/reject", json={"reason": "Too late"}, headers=admin_headers)

        assert response.status_code == 409
        assert response.json()["detail"].startswith("Request already approved by admin-1 at ")


class TestRejectEndpoint:
    def test_reject(self, client: TestClient, admin_headers: dict, pending_id: str) -> None:
        response = client.post(
            f"{BASE}/{pending_id}/reject",
            json={"reason": "Not on staff roster", "notes": "Checked with HR"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "REJECTED"

    def test_missing_reason_returns_422(self, client: TestClient, admin_headers: dict, pending_id: str) -> None:
        response = client.post(f"{BASE}/{pending_id}/reject", json={}, headers=admin_headers)
        assert response.status_code == 422

    def test_blank_reason_returns_422(self, client: TestClient, admin_headers: dict, pending_id: str) -> None:
        response = client.post(f"{BASE}/{pending_id}/reject", json={"reason": "   "}, headers=admin_headers)
        assert response.status_code == 422
        assert response.json() == {"detail": "A rejection reason is required"}
