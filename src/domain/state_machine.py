"""
Registration state machine - pure transition functions.

Registration State Machine
==========================

States:
- PENDING: request submitted, awaiting email proof and administrator decision
- APPROVED: administrator approved; completion token outstanding
- REJECTED: terminal, administrator declined
- EXPIRED: terminal, decision deadline or completion token expiry passed
- COMPLETED: terminal, account created

Events and the states that accept them:

    CodeIssued          PENDING, APPROVED (unverified) -> same status
    EmailVerified       PENDING, APPROVED              -> same status
    VerificationFailed  PENDING, APPROVED              -> same status
    Approved            PENDING                        -> APPROVED
    Rejected            PENDING                        -> REJECTED
    Expired             PENDING, APPROVED              -> EXPIRED
    Completed           APPROVED                       -> COMPLETED

Every event is handled by exactly one function, looked up from a single
table. apply() checks the source state against that table before the
handler runs, so no caller can push an event through a state that does
not accept it. Nothing here touches storage, clocks or randomness: the
caller supplies timestamps and digests inside the event, and persists
the returned record with a conditional update.
"""

from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from .exceptions import EmailNotVerified, InvalidInput, InvalidRole, InvalidState, MissingReason
from .models import REQUESTABLE_ROLES, RegistrationRequest, RegistrationStatus, Role

PENDING = RegistrationStatus.PENDING
APPROVED = RegistrationStatus.APPROVED


@dataclass(frozen=True)
class RegistrationPolicy:
    """Time windows and thresholds for the workflow."""

    code_ttl: timedelta = timedelta(minutes=10)
    max_attempts: int = 5
    token_ttl: timedelta = timedelta(hours=24)
    decision_window: timedelta = timedelta(days=7)


@dataclass(frozen=True)
class CodeIssued:
    code_hash: str
    expires_at: datetime


@dataclass(frozen=True)
class EmailVerified:
    at: datetime


@dataclass(frozen=True)
class VerificationFailed:
    pass


@dataclass(frozen=True)
class Approved:
    by: str
    at: datetime
    token_hash: str
    token_expires_at: datetime
    notes: str | None = None


@dataclass(frozen=True)
class Rejected:
    by: str
    at: datetime
    reason: str
    notes: str | None = None


@dataclass(frozen=True)
class Expired:
    at: datetime


@dataclass(frozen=True)
class Completed:
    at: datetime


Event = CodeIssued | EmailVerified | VerificationFailed | Approved | Rejected | Expired | Completed


def validate_application(email: str, first_name: str, last_name: str, role: Role) -> None:
    """
    Reject malformed registration input before any state is read.

    Raises:
        InvalidRole: role is not self-requestable (e.g. ADMIN)
        InvalidInput: email or a name is blank
    """
    if role not in REQUESTABLE_ROLES:
        raise InvalidRole(f"Role {role.value} cannot be requested")
    if not email:
        raise InvalidInput("Email is required")
    if not first_name.strip() or not last_name.strip():
        raise InvalidInput("First and last name are required")


def open_request(
    request_id: str,
    email: str,
    first_name: str,
    last_name: str,
    role: Role,
    now: datetime,
    code_hash: str,
    code_expires_at: datetime,
) -> RegistrationRequest:
    """Build the initial PENDING record."""
    validate_application(email, first_name, last_name, role)
    return RegistrationRequest(
        id=request_id,
        email=email,
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        requested_role=role,
        status=PENDING,
        requested_at=now,
        verification_code_hash=code_hash,
        verification_code_expires_at=code_expires_at,
    )


def deadline(request: RegistrationRequest, policy: RegistrationPolicy) -> datetime | None:
    """When a non-terminal request lapses, or None for terminal ones."""
    if request.status == PENDING:
        return request.requested_at + policy.decision_window
    if request.status == APPROVED:
        return request.completion_token_expires_at
    return None


def is_overdue(request: RegistrationRequest, now: datetime, policy: RegistrationPolicy) -> bool:
    due = deadline(request, policy)
    return due is not None and now > due


def apply(request: RegistrationRequest, event: Event) -> RegistrationRequest:
    """
    Apply one event to a request and return the next record.

    Raises:
        InvalidState: the current status does not accept this event
        TypeError: the event type is unknown
    """
    try:
        allowed, handler = _TRANSITIONS[type(event)]
    except KeyError:
        raise TypeError(f"Unhandled registration event: {type(event).__name__}") from None

    if request.status not in allowed:
        raise InvalidState(request.id, request.status, request.decided_by, request.decided_at)
    return handler(request, event)


def _code_issued(request: RegistrationRequest, event: CodeIssued) -> RegistrationRequest:
    # A verified applicant has nothing left to prove
    if request.email_verified_at is not None:
        raise InvalidState(request.id, request.status)
    return replace(
        request,
        verification_code_hash=event.code_hash,
        verification_code_expires_at=event.expires_at,
        verification_attempts=0,
    )


def _email_verified(request: RegistrationRequest, event: EmailVerified) -> RegistrationRequest:
    return replace(
        request,
        email_verified_at=request.email_verified_at or event.at,
        verification_code_hash=None,
        verification_code_expires_at=None,
        verification_attempts=0,
    )


def _verification_failed(
    request: RegistrationRequest, event: VerificationFailed
) -> RegistrationRequest:
    return replace(request, verification_attempts=request.verification_attempts + 1)


def _approved(request: RegistrationRequest, event: Approved) -> RegistrationRequest:
    return replace(
        request,
        status=APPROVED,
        decided_by=event.by,
        decided_at=event.at,
        admin_notes=event.notes,
        completion_token_hash=event.token_hash,
        completion_token_expires_at=event.token_expires_at,
    )


def _rejected(request: RegistrationRequest, event: Rejected) -> RegistrationRequest:
    reason = event.reason.strip()
    if not reason:
        raise MissingReason("A rejection reason is required")
    return replace(
        request,
        status=RegistrationStatus.REJECTED,
        decided_by=event.by,
        decided_at=event.at,
        rejection_reason=reason,
        admin_notes=event.notes,
        verification_code_hash=None,
        verification_code_expires_at=None,
    )


def _expired(request: RegistrationRequest, event: Expired) -> RegistrationRequest:
    return replace(
        request,
        status=RegistrationStatus.EXPIRED,
        verification_code_hash=None,
        verification_code_expires_at=None,
        completion_token_hash=None,
        completion_token_expires_at=None,
    )


def _completed(request: RegistrationRequest, event: Completed) -> RegistrationRequest:
    if request.email_verified_at is None:
        raise EmailNotVerified("Email address has not been verified")
    return replace(
        request,
        status=RegistrationStatus.COMPLETED,
        completed_at=event.at,
        completion_token_hash=None,
        completion_token_expires_at=None,
    )


_TRANSITIONS: dict[type, tuple[frozenset[RegistrationStatus], Callable]] = {
    CodeIssued: (frozenset({PENDING, APPROVED}), _code_issued),
    EmailVerified: (frozenset({PENDING, APPROVED}), _email_verified),
    VerificationFailed: (frozenset({PENDING, APPROVED}), _verification_failed),
    Approved: (frozenset({PENDING}), _approved),
    Rejected: (frozenset({PENDING}), _rejected),
    Expired: (frozenset({PENDING, APPROVED}), _expired),
    Completed: (frozenset({APPROVED}), _completed),
}
