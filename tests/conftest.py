"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- An in-memory registration store and unit of work
- A controllable clock
- A notifier that captures codes and tokens instead of sending them
- A fully wired RegistrationService and ApprovalGate
"""

import threading
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from src.adapters.repository.memory import InMemoryStore
from src.adapters.security.passwords import BcryptPasswordHasher
from src.adapters.security.sessions import JwtSessionIssuer
from src.domain.accounts import AccountMaterializer
from src.domain.approval import ApprovalGate
from src.domain.models import Actor, Role
from src.domain.notifications import NotificationDispatcher
from src.domain.registration import RegistrationService

JWT_SECRET = "test-secret-key-with-at-least-32-bytes!"
COMPLETION_URL = "https://onboarding.test/complete"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class CapturingNotifier:
    """Notifier that records every payload, keyed by recipient."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self._lock = threading.Lock()

    def send(self, email: str, payload: dict[str, Any]) -> None:
        with self._lock:
            self.sent.append((email, dict(payload)))

    def last(self, email: str, kind: str) -> dict[str, Any]:
        for recipient, payload in reversed(self.sent):
            if recipient == email and payload["kind"] == kind:
                return payload
        raise AssertionError(f"No {kind} notification sent to {email}")

    def code_for(self, email: str) -> str:
        return self.last(email, "verification_code")["code"]

    def token_for(self, email: str) -> str:
        return self.last(email, "registration_approved")["token"]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def notifier() -> CapturingNotifier:
    return CapturingNotifier()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def session_issuer() -> JwtSessionIssuer:
    return JwtSessionIssuer(secret=JWT_SECRET)


@pytest.fixture
def dispatcher(notifier: CapturingNotifier) -> Generator[NotificationDispatcher, None, None]:
    dispatcher = NotificationDispatcher(notifier, timeout_seconds=2.0)
    yield dispatcher
    dispatcher.close()


@pytest.fixture
def service(
    store: InMemoryStore,
    dispatcher: NotificationDispatcher,
    session_issuer: JwtSessionIssuer,
    clock: FakeClock,
) -> RegistrationService:
    """RegistrationService over the in-memory store (bcrypt at minimum cost)."""
    return RegistrationService(
        uow_factory=store.unit_of_work,
        notifications=dispatcher,
        materializer=AccountMaterializer(
            password_hasher=BcryptPasswordHasher(rounds=4),
            session_issuer=session_issuer,
        ),
        clock=clock,
        completion_url=COMPLETION_URL,
    )


@pytest.fixture
def gate(service: RegistrationService) -> ApprovalGate:
    return ApprovalGate(service=service)


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id="admin-1", role=Role.ADMIN, email="admin@example.com")


@pytest.fixture
def clinician_actor() -> Actor:
    return Actor(user_id="user-7", role=Role.CLINICIAN, email="doc@example.com")
