"""
Domain models - enums and immutable records for the onboarding workflow.

RegistrationRequest is the only core entity. Transitions never mutate a
record in place; they produce a new one via dataclasses.replace, which
lets repositories compare the previous and next versions when applying
conditional updates.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class RegistrationStatus(str, Enum):
    """
    Registration request lifecycle states.

    Transitions:
    - (none) -> PENDING (request registration)
    - PENDING -> APPROVED | REJECTED (administrator decision)
    - PENDING | APPROVED -> EXPIRED (deadline passed)
    - APPROVED -> COMPLETED (applicant sets password)

    Terminal States: REJECTED, EXPIRED, COMPLETED
    """

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    COMPLETED = "COMPLETED"

    @property
    def is_unresolved(self) -> bool:
        return self in (RegistrationStatus.PENDING, RegistrationStatus.APPROVED)


class Role(str, Enum):
    """Account roles. ADMIN is never self-requestable."""

    ADMIN = "ADMIN"
    INTAKE_STAFF = "INTAKE_STAFF"
    CLINICIAN = "CLINICIAN"
    QA_REVIEWER = "QA_REVIEWER"
    BILLER = "BILLER"


REQUESTABLE_ROLES = frozenset({Role.INTAKE_STAFF, Role.CLINICIAN, Role.QA_REVIEWER, Role.BILLER})


@dataclass(frozen=True)
class RegistrationRequest:
    """One applicant's onboarding attempt. Secrets are held only as digests."""

    id: str
    email: str
    first_name: str
    last_name: str
    requested_role: Role
    status: RegistrationStatus
    requested_at: datetime
    email_verified_at: datetime | None = None
    verification_code_hash: str | None = None
    verification_code_expires_at: datetime | None = None
    verification_attempts: int = 0
    completion_token_hash: str | None = None
    completion_token_expires_at: datetime | None = None
    decided_at: datetime | None = None
    decided_by: str | None = None
    admin_notes: str | None = None
    rejection_reason: str | None = None
    completed_at: datetime | None = None

    def __repr__(self) -> str:
        # Keep digests out of reprs that end up in logs and tracebacks
        return (
            f"RegistrationRequest(id={self.id!r}, email={self.email!r}, "
            f"status={self.status.value}, role={self.requested_role.value})"
        )


@dataclass(frozen=True)
class NewUser:
    """Account to be created by the identity collaborator."""

    email: str
    first_name: str
    last_name: str
    role: Role
    password_hash: str
    is_active: bool = True


@dataclass(frozen=True)
class User:
    id: str
    email: str
    first_name: str
    last_name: str
    role: Role
    password_hash: str = field(repr=False)
    is_active: bool
    created_at: datetime


@dataclass(frozen=True)
class UserProfile:
    """Public view of a user. Carries no secrets."""

    id: str
    email: str
    first_name: str
    last_name: str
    role: Role
    is_active: bool

    @classmethod
    def from_user(cls, user: User) -> "UserProfile":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            is_active=user.is_active,
        )


@dataclass(frozen=True)
class Actor:
    """Authenticated caller resolved from a session credential."""

    user_id: str
    role: Role
    email: str | None = None


@dataclass(frozen=True)
class Page:
    """One page of registration requests plus pagination metadata."""

    items: list[RegistrationRequest]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0


@dataclass(frozen=True)
class RequestReceipt:
    """Acknowledgment for a registration request. Never says whether the row is new."""

    request_id: str
    message: str = "If the address can be registered, a verification code has been sent"


@dataclass(frozen=True)
class CompletionResult:
    session_credential: str
    user: UserProfile
