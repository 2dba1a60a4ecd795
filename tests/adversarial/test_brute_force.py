"""
Adversarial tests for brute force and enumeration attacks.

Verifies that:
- A verification code can be guessed at most five times per issuance
- Completion tokens cannot be guessed and stay valid for the real holder
- Applicant-facing responses do not reveal which emails are known
- Codes, tokens and digests never reach logs or API responses
"""

import logging

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.adapters.security.sessions import JwtSessionIssuer
from src.api.dependencies import get_registration_service, get_session_issuer
from src.api.v1 import router
from src.domain.exceptions import InvalidCode, InvalidOrExpiredToken, TooManyAttempts
from src.domain.models import RegistrationStatus, Role
from src.domain.registration import RegistrationService
from src.domain.secret_generator import SecretGenerator

pytestmark = pytest.mark.adversarial

EMAIL = "target@example.com"


@pytest.fixture
def client(service: RegistrationService, session_issuer: JwtSessionIssuer) -> TestClient:
    app = FastAPI()
    app.include_router(router, prefix="/v1")
    app.dependency_overrides[get_registration_service] = lambda: service
    app.dependency_overrides[get_session_issuer] = lambda: session_issuer
    return TestClient(app)


class TestCodeBruteForce:
    def test_sequential_guessing_locked_after_five(self, service: RegistrationService, notifier) -> None:
        service.request_registration(EMAIL, "Target", "User", Role.BILLER)
        real = notifier.code_for(EMAIL)
        guesses = (f"{n:06d}" for n in range(1_000_000) if f"{n:06d}" != real)

        outcomes = []
        for _ in range(10):
            try:
                service.verify_email(EMAIL, next(guesses))
            except (InvalidCode, TooManyAttempts) as e:
                outcomes.append(type(e))

        assert outcomes == [InvalidCode] * 5 + [TooManyAttempts] * 5
        with pytest.raises(TooManyAttempts):
            service.verify_email(EMAIL, real)

    def test_each_resend_allows_only_five_more(self, service: RegistrationService, notifier) -> None:
        for _ in range(3):
            service.request_registration(EMAIL, "Target", "User", Role.BILLER)
            real = notifier.code_for(EMAIL)
            wrong = "000000" if real != "000000" else "111111"
            for _ in range(5):
                with pytest.raises(InvalidCode):
                    service.verify_email(EMAIL, wrong)
            with pytest.raises(TooManyAttempts):
                service.verify_email(EMAIL, wrong)

    def test_http_lockout_returns_429(self, client: TestClient, notifier) -> None:
        client.post(
            "/v1/registration/request",
            json={"email": EMAIL, "first_name": "T", "last_name": "U", "role": "BILLER"},
        )
        real = notifier.code_for(EMAIL)
        wrong = "000000" if real != "000000" else "111111"
        statuses = [
            client.post("/v1/registration/verify-email", json={"email": EMAIL, "code": wrong}).status_code
            for _ in range(6)
        ]
        assert statuses == [400] * 5 + [429]


class TestTokenBruteForce:
    def test_guessed_tokens_fail_and_real_token_survives(self, service: RegistrationService, store, notifier) -> None:
        request_id = service.request_registration(EMAIL, "Target", "User", Role.BILLER).request_id
        service.verify_email(EMAIL, notifier.code_for(EMAIL))
        service.approve(request_id, "admin-1")
        generator = SecretGenerator()

        for _ in range(20):
            with pytest.raises(InvalidOrExpiredToken):
                service.complete_registration(EMAIL, "attacker-password", generator.generate_token())

        assert store.requests[request_id].status == RegistrationStatus.APPROVED
        result = service.complete_registration(EMAIL, "owner-password", notifier.token_for(EMAIL))
        assert result.user.email == EMAIL

    def test_token_for_one_email_does_not_complete_another(self, service: RegistrationService, notifier) -> None:
        first = service.request_registration("first@example.com", "F", "One", Role.BILLER).request_id
        second = service.request_registration("second@example.com", "S", "Two", Role.BILLER).request_id
        for email in ("first@example.com", "second@example.com"):
            service.verify_email(email, notifier.code_for(email))
        service.approve(first, "admin-1")
        service.approve(second, "admin-1")

        with pytest.raises(InvalidOrExpiredToken):
            service.complete_registration("second@example.com", "password-123", notifier.token_for("first@example.com"))


class TestEnumeration:
    def test_verify_unknown_email_matches_wrong_code(self, client: TestClient, notifier) -> None:
        client.post(
            "/v1/registration/request",
            json={"email": EMAIL, "first_name": "T", "last_name": "U", "role": "BILLER"},
        )
        wrong = "000000" if notifier.code_for(EMAIL) != "000000" else "111111"

        known = client.post("/v1/registration/verify-email", json={"email": EMAIL, "code": wrong})
        unknown = client.post("/v1/registration/verify-email", json={"email": "ghost@example.com", "code": wrong})

        assert known.status_code == unknown.status_code == 400
        assert known.json() == unknown.json()

    def test_known_addresses_answer_like_a_new_one(self, client: TestClient, service: RegistrationService, notifier) -> None:
        body = {"first_name": "T", "last_name": "U", "role": "BILLER"}
        # One email with a finished account, one with a verified pending request
        done = service.request_registration("done@example.com", "D", "One", Role.BILLER).request_id
        service.verify_email("done@example.com", notifier.code_for("done@example.com"))
        service.approve(done, "admin-1")
        service.complete_registration("done@example.com", "password-123", notifier.token_for("done@example.com"))
        service.request_registration("waiting@example.com", "W", "Two", Role.BILLER)
        service.verify_email("waiting@example.com", notifier.code_for("waiting@example.com"))

        account = client.post("/v1/registration/request", json={"email": "done@example.com", **body})
        duplicate = client.post("/v1/registration/request", json={"email": "waiting@example.com", **body})
        fresh = client.post("/v1/registration/request", json={"email": "fresh@example.com", **body})

        assert account.status_code == duplicate.status_code == fresh.status_code == 202
        assert account.json().keys() == duplicate.json().keys() == fresh.json().keys()
        assert account.json()["message"] == duplicate.json()["message"] == fresh.json()["message"]

    def test_status_of_unknown_email_looks_pending(self, client: TestClient) -> None:
        assert client.get("/v1/registration/status/ghost@example.com").json() == {"status": "PENDING"}


class TestSecretLeakage:
    def test_secrets_never_logged(self, service: RegistrationService, notifier, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.DEBUG):
            request_id = service.request_registration(EMAIL, "Target", "User", Role.BILLER).request_id
            code = notifier.code_for(EMAIL)
            service.verify_email(EMAIL, code)
            service.approve(request_id, "admin-1")
            token = notifier.token_for(EMAIL)
            service.complete_registration(EMAIL, "owner-password", token)

        assert code not in caplog.text
        assert token not in caplog.text
        assert "owner-password" not in caplog.text
        assert "sha256$" not in caplog.text

    def test_request_repr_hides_digests(self, service: RegistrationService, store) -> None:
        request_id = service.request_registration(EMAIL, "Target", "User", Role.BILLER).request_id
        request = store.requests[request_id]
        assert request.verification_code_hash is not None
        assert request.verification_code_hash not in repr(request)
        assert "sha256$" not in str(request)

    def test_responses_never_echo_secrets(self, client: TestClient, service: RegistrationService, notifier, session_issuer) -> None:
        response = client.post(
            "/v1/registration/request",
            json={"email": EMAIL, "first_name": "T", "last_name": "U", "role": "BILLER"},
        )
        code = notifier.code_for(EMAIL)
        assert code not in response.text

        admin = {"Authorization": f"Bearer {session_issuer.encode('admin-1', Role.ADMIN)}"}
        request_id = response.json()["request_id"]
        approve = client.post(f"/v1/admin/registration-requests/{request_id}/approve", headers=admin)
        listing = client.get("/v1/admin/registration-requests", headers=admin)
        token = notifier.token_for(EMAIL)

        for text in (approve.text, listing.text):
            assert token not in text
            assert "sha256$" not in text
