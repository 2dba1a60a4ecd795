"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure. Adapters implement these protocols.
"""

from datetime import datetime
from typing import Any, Protocol

from .models import NewUser, Page, RegistrationRequest, RegistrationStatus, User


class RegistrationRepository(Protocol):
    """Port interface for registration request persistence."""

    def insert(self, request: RegistrationRequest) -> bool:
        """
        Insert a new PENDING request.

        Returns:
            True if inserted, False if an unresolved request for the
            same email already exists (uniqueness enforced by the store)
        """
        ...

    def get(self, request_id: str) -> RegistrationRequest | None:
        """Fetch a request by id."""
        ...

    def find_unresolved(self, email: str) -> RegistrationRequest | None:
        """Fetch the PENDING or APPROVED request for a normalized email."""
        ...

    def find_latest(self, email: str) -> RegistrationRequest | None:
        """Fetch the most recently requested row for a normalized email."""
        ...

    def update(self, previous: RegistrationRequest, updated: RegistrationRequest) -> bool:
        """
        Conditionally replace a row.

        The write only applies if the stored row still has the status,
        verification_attempts and verification_code_hash of ``previous``.
        Returns False when zero rows matched (another writer got there first).
        """
        ...

    def list_page(self, status: RegistrationStatus | None, page: int, limit: int) -> Page:
        """Return one page of requests, newest first."""
        ...

    def expire_stale(self, now: datetime, pending_requested_before: datetime) -> int:
        """
        Move PENDING rows requested before the cutoff and APPROVED rows whose
        completion token expired to EXPIRED. Returns the number of rows moved.
        """
        ...


class UserRepository(Protocol):
    """Port interface for the identity collaborator's user records."""

    def find_by_email(self, email: str) -> User | None:
        ...

    def create(self, new_user: NewUser) -> User:
        """
        Persist a user account.

        Raises:
            AccountExists: if the email is already taken
        """
        ...


class UnitOfWork(Protocol):
    """
    One atomic unit of work spanning registrations and users.

    Commits on clean exit, rolls back when the block raises.
    """

    registrations: RegistrationRepository
    users: UserRepository

    def __enter__(self) -> "UnitOfWork":
        ...

    def __exit__(self, exc_type, exc, tb) -> None:
        ...


class Notifier(Protocol):
    """Port interface for applicant notifications (email delivery)."""

    def send(self, email: str, payload: dict[str, Any]) -> None:
        """
        Deliver a notification.

        Args:
            email: Recipient email address
            payload: Message kind plus template values (may include a
                one-time code or completion token meant for the recipient)
        """
        ...


class PasswordHasher(Protocol):
    """Port interface for account password hashing."""

    def hash(self, password: str) -> str:
        ...

    def verify(self, password: str, password_hash: str) -> bool:
        ...


class SessionIssuer(Protocol):
    """Port interface for session credential issuance."""

    def issue(self, user: User) -> str:
        """Return an opaque session credential for the user."""
        ...
