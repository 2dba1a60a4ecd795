"""
Registration domain service - onboarding workflow orchestration.

This module contains the core business logic for staff onboarding:
request -> verify email -> administrator decision -> complete.

Each public method runs inside one unit of work: it loads the current
row, asks the state machine for the next record, and persists it with a
conditional update. If the conditional update matches zero rows the row
is re-read: a decision or completion that lost to another one reports a
conflict, while attempt counting, expiry and decisions that only lost to
a verification attempt try again against the fresh row.

Some guards fail only after state was written: an overdue request is
moved to EXPIRED before the caller is told why their action was refused.
Those paths record the error, let the unit of work commit, and raise
afterwards.

Notifications are sent after the unit of work commits and never fail the
transition that triggered them.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .accounts import AccountMaterializer
from .exceptions import (
    AccountExists,
    DuplicateRequest,
    EmailNotVerified,
    InvalidCode,
    InvalidInput,
    InvalidOrExpiredToken,
    InvalidRole,
    InvalidState,
    MissingReason,
    NotApproved,
    NotApprovedReason,
    NotFound,
    RegistrationError,
    TooManyAttempts,
)
from .models import CompletionResult, Page, RegistrationRequest, RegistrationStatus, RequestReceipt, Role
from .notifications import (
    REGISTRATION_APPROVED,
    REGISTRATION_REJECTED,
    VERIFICATION_CODE,
    NotificationDispatcher,
)
from .ports import UnitOfWork
from .secret_generator import SecretGenerator
from .state_machine import (
    Approved,
    CodeIssued,
    Completed,
    EmailVerified,
    Expired,
    Rejected,
    RegistrationPolicy,
    VerificationFailed,
    apply,
    is_overdue,
    open_request,
    validate_application,
)

logger = logging.getLogger(__name__)

# Bound on re-reads when a concurrent attempt changes the row under us
_MAX_CAS_RETRIES = 5


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RegistrationService:
    """
    Domain service for the registration state machine.

    Attributes:
        uow_factory: Opens a unit of work (one transaction) per call
        notifications: Post-commit, non-fatal notification dispatch
        materializer: Creates the account on completion
        secret_generator: Issues and checks codes and tokens
        policy: Time windows and attempt ceiling
        clock: Source of "now" (UTC)
        completion_url: Page where an approved applicant sets a password
    """

    uow_factory: Callable[[], UnitOfWork]
    notifications: NotificationDispatcher
    materializer: AccountMaterializer
    secret_generator: SecretGenerator = field(default_factory=SecretGenerator)
    policy: RegistrationPolicy = field(default_factory=RegistrationPolicy)
    clock: Callable[[], datetime] = utc_now
    completion_url: str = ""

    def request_registration(
        self, email: str, first_name: str, last_name: str, role: Role | str
    ) -> RequestReceipt:
        """
        Open a PENDING request and send a verification code.

        Calling again while the request is unresolved and unverified
        re-issues a fresh code on the same row instead of creating a second
        one. That includes an APPROVED request whose applicant has not yet
        proved the address.

        Raises:
            InvalidRole: role unknown or not self-requestable
            InvalidInput: blank email or names
            AccountExists: a user already exists for the email
            DuplicateRequest: an unresolved request exists and cannot be re-sent
        """
        normalized_email = self._normalize_email(email)
        role = self._coerce_role(role)
        validate_application(normalized_email, first_name, last_name, role)

        code = self.secret_generator.generate_code()
        with self.uow_factory() as uow:
            if uow.users.find_by_email(normalized_email) is not None:
                raise AccountExists(normalized_email)

            now = self.clock()
            existing = uow.registrations.find_unresolved(normalized_email)
            if existing is not None and is_overdue(existing, now, self.policy):
                existing = self._lapse(uow, existing, now)
                if not existing.status.is_unresolved:
                    existing = None

            code_event = CodeIssued(
                code_hash=self.secret_generator.digest(code),
                expires_at=now + self.policy.code_ttl,
            )
            if existing is None:
                request = open_request(
                    str(uuid.uuid4()),
                    normalized_email,
                    first_name,
                    last_name,
                    role,
                    now,
                    code_event.code_hash,
                    code_event.expires_at,
                )
                if not uow.registrations.insert(request):
                    raise DuplicateRequest(normalized_email)
                logger.info("Registration request %s opened for role %s", request.id, role.value)
            else:
                if existing.email_verified_at is not None:
                    raise DuplicateRequest(normalized_email)
                # Never hand out the code that is still live
                code = self.secret_generator.generate_code(existing.verification_code_hash)
                code_event = CodeIssued(
                    code_hash=self.secret_generator.digest(code),
                    expires_at=code_event.expires_at,
                )
                request = apply(existing, code_event)
                if not uow.registrations.update(existing, request):
                    raise DuplicateRequest(normalized_email)
                logger.info("Verification code re-issued for request %s", request.id)

        self.notifications.dispatch(
            normalized_email,
            {
                "kind": VERIFICATION_CODE,
                "first_name": request.first_name,
                "code": code,
                "expires_in_seconds": int(self.policy.code_ttl.total_seconds()),
            },
        )
        return RequestReceipt(request_id=request.id)

    def verify_email(self, email: str, code: str) -> None:
        """
        Prove control of the email address with the outstanding code.

        Succeeds silently if the request is already verified.

        Raises:
            NotFound: no unresolved request for the email
            InvalidCode: wrong or expired code (not distinguished)
            TooManyAttempts: attempt ceiling reached; request a new code
        """
        normalized_email = self._normalize_email(email)

        for _ in range(_MAX_CAS_RETRIES):
            error: RegistrationError | None = None
            with self.uow_factory() as uow:
                request = uow.registrations.find_unresolved(normalized_email)
                if request is None:
                    self.secret_generator.matches(code, None)
                    raise NotFound("No open registration request")

                now = self.clock()
                if is_overdue(request, now, self.policy):
                    if not uow.registrations.update(request, apply(request, Expired(now))):
                        continue
                    error = InvalidCode("Invalid or expired verification code")
                elif request.email_verified_at is not None:
                    return
                elif request.verification_attempts >= self.policy.max_attempts:
                    raise TooManyAttempts("Too many verification attempts")
                else:
                    code_valid = self.secret_generator.matches(code, request.verification_code_hash)
                    code_live = (
                        request.verification_code_expires_at is not None
                        and now <= request.verification_code_expires_at
                    )
                    if code_valid and code_live:
                        if not uow.registrations.update(request, apply(request, EmailVerified(now))):
                            continue
                        logger.info("Email verified for request %s", request.id)
                        return

                    updated = apply(request, VerificationFailed())
                    if not uow.registrations.update(request, updated):
                        continue
                    logger.info(
                        "Verification failed for request %s (attempt %d of %d)",
                        request.id,
                        updated.verification_attempts,
                        self.policy.max_attempts,
                    )
                    error = InvalidCode("Invalid or expired verification code")
            raise error

        logger.warning("Verification for %s abandoned after %d concurrent retries", normalized_email, _MAX_CAS_RETRIES)
        raise InvalidCode("Invalid or expired verification code")

    def get_status(self, email: str) -> RegistrationStatus:
        """
        Report the status of the latest request for an email.

        An unknown email reports PENDING so the endpoint cannot be used to
        discover which addresses have applied.
        """
        normalized_email = self._normalize_email(email)
        with self.uow_factory() as uow:
            request = uow.registrations.find_latest(normalized_email)
            if request is None:
                return RegistrationStatus.PENDING
            now = self.clock()
            if is_overdue(request, now, self.policy):
                request = self._lapse(uow, request, now)
            return request.status

    def list_requests(self, status: RegistrationStatus | None, page: int, limit: int) -> Page:
        """Read-only page of requests. Authorization is the caller's job."""
        with self.uow_factory() as uow:
            return uow.registrations.list_page(status, page, limit)

    def approve(self, request_id: str, admin_id: str, notes: str | None = None) -> RegistrationRequest:
        """
        Approve a PENDING request and issue its completion token.

        Raises:
            NotFound: unknown request id
            InvalidState: request is not PENDING (includes lost races)
        """
        token = self.secret_generator.generate_token()
        error: RegistrationError | None = None
        with self.uow_factory() as uow:
            request = self._load(uow, request_id)
            now = self.clock()
            if request.status == RegistrationStatus.PENDING and is_overdue(request, now, self.policy):
                request = self._lapse(uow, request, now)
            if request.status != RegistrationStatus.PENDING:
                error = InvalidState(request.id, request.status, request.decided_by, request.decided_at)
            else:
                request = self._decide(
                    uow,
                    request,
                    Approved(
                        by=admin_id,
                        at=now,
                        token_hash=self.secret_generator.digest(token),
                        token_expires_at=now + self.policy.token_ttl,
                        notes=self._clean_notes(notes),
                    ),
                )
        if error is not None:
            raise error

        logger.info("Registration request %s approved by %s", request.id, admin_id)
        self.notifications.dispatch(
            request.email,
            {
                "kind": REGISTRATION_APPROVED,
                "first_name": request.first_name,
                "role": request.requested_role.value,
                "token": token,
                "completion_url": self.completion_url,
                "expires_in_seconds": int(self.policy.token_ttl.total_seconds()),
            },
        )
        return request

    def reject(
        self, request_id: str, admin_id: str, reason: str, notes: str | None = None
    ) -> RegistrationRequest:
        """
        Reject a PENDING request.

        Raises:
            MissingReason: reason is blank
            NotFound: unknown request id
            InvalidState: request is not PENDING (includes lost races)
        """
        if not reason or not reason.strip():
            raise MissingReason("A rejection reason is required")

        error: RegistrationError | None = None
        with self.uow_factory() as uow:
            request = self._load(uow, request_id)
            now = self.clock()
            if request.status == RegistrationStatus.PENDING and is_overdue(request, now, self.policy):
                request = self._lapse(uow, request, now)
            if request.status != RegistrationStatus.PENDING:
                error = InvalidState(request.id, request.status, request.decided_by, request.decided_at)
            else:
                request = self._decide(
                    uow,
                    request,
                    Rejected(by=admin_id, at=now, reason=reason, notes=self._clean_notes(notes)),
                )
        if error is not None:
            raise error

        logger.info("Registration request %s rejected by %s", request.id, admin_id)
        self.notifications.dispatch(
            request.email,
            {
                "kind": REGISTRATION_REJECTED,
                "first_name": request.first_name,
                "reason": request.rejection_reason,
            },
        )
        return request

    def complete_registration(self, email: str, password: str, token: str) -> CompletionResult:
        """
        Set the password of an approved applicant and create the account.

        Request completion and account creation share one unit of work; if
        account creation fails the request stays APPROVED.

        Raises:
            InvalidInput: blank password
            NotApproved: request is PENDING, REJECTED, EXPIRED or COMPLETED
            EmailNotVerified: the applicant never proved the email address
            InvalidOrExpiredToken: token mismatch or expiry
            AccountExists: the identity store already has the email
        """
        if not password:
            raise InvalidInput("Password is required")
        normalized_email = self._normalize_email(email)
        password_hash = self.materializer.hash_password(password)

        error: RegistrationError | None = None
        with self.uow_factory() as uow:
            request = uow.registrations.find_latest(normalized_email)
            if request is None:
                self.secret_generator.matches(token, None)
                raise InvalidOrExpiredToken("Invalid or expired completion token")

            now = self.clock()
            if is_overdue(request, now, self.policy):
                lapsed_from = request.status
                request = self._lapse(uow, request, now)
                if RegistrationStatus.APPROVED in (lapsed_from, request.status):
                    error = InvalidOrExpiredToken("Invalid or expired completion token")
                else:
                    error = NotApproved(NotApprovedReason(request.status.value))
            else:
                if request.status != RegistrationStatus.APPROVED:
                    self.secret_generator.matches(token, None)
                    raise NotApproved(NotApprovedReason(request.status.value))
                if request.email_verified_at is None:
                    raise EmailNotVerified("Email address has not been verified")
                if not self.secret_generator.matches(token, request.completion_token_hash):
                    raise InvalidOrExpiredToken("Invalid or expired completion token")

                completed = apply(request, Completed(now))
                if not uow.registrations.update(request, completed):
                    raise InvalidOrExpiredToken("Invalid or expired completion token")
                result = self.materializer.materialize(uow.users, completed, password_hash)
        if error is not None:
            raise error

        logger.info("Registration request %s completed", request.id)
        return result

    def expire_stale(self) -> int:
        """
        Sweep: move overdue PENDING/APPROVED requests to EXPIRED.

        Idempotent; concurrent sweeps only move rows still non-terminal.
        """
        now = self.clock()
        with self.uow_factory() as uow:
            moved = uow.registrations.expire_stale(now, now - self.policy.decision_window)
        if moved:
            logger.info("Expired %d stale registration request(s)", moved)
        return moved

    def _load(self, uow: UnitOfWork, request_id: str) -> RegistrationRequest:
        request = uow.registrations.get(request_id)
        if request is None:
            raise NotFound(f"Registration request {request_id} not found")
        return request

    def _decide(
        self, uow: UnitOfWork, request: RegistrationRequest, event: Approved | Rejected
    ) -> RegistrationRequest:
        """
        Conditionally persist an administrator decision.

        Verification attempts may change the row between read and write
        without deciding it; those re-read and retry. Once another decision
        or expiry has landed, apply() reports the winner as InvalidState.
        """
        for _ in range(_MAX_CAS_RETRIES):
            decided = apply(request, event)
            if uow.registrations.update(request, decided):
                return decided
            request = self._load(uow, request.id)
        logger.warning("Decision on request %s abandoned after %d concurrent retries", request.id, _MAX_CAS_RETRIES)
        raise InvalidState(request.id, request.status, request.decided_by, request.decided_at)

    def _lapse(self, uow: UnitOfWork, request: RegistrationRequest, now: datetime) -> RegistrationRequest:
        """
        Move an overdue request to EXPIRED and return the stored row.

        Losing the update to a sweep or another writer is not an error:
        the fresh row is re-read and returned as it stands.
        """
        for _ in range(_MAX_CAS_RETRIES):
            expired = apply(request, Expired(now))
            if uow.registrations.update(request, expired):
                logger.info("Registration request %s expired", request.id)
                return expired
            current = uow.registrations.get(request.id)
            if current is None or not is_overdue(current, now, self.policy):
                return current or request
            request = current
        return request

    def _normalize_email(self, email: str) -> str:
        """
        Normalize email address for consistent storage and lookup.

        Applies: strip whitespace + lowercase
        """
        return email.strip().lower()

    def _coerce_role(self, role: Role | str) -> Role:
        try:
            return Role(role)
        except ValueError:
            raise InvalidRole(f"Unknown role: {role}") from None

    def _clean_notes(self, notes: str | None) -> str | None:
        if notes is None:
            return None
        return notes.strip() or None
