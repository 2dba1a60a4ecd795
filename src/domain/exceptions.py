"""
Domain exceptions - Semantic error types for the onboarding workflow.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.

Taxonomy:
- ValidationFailed: malformed input, rejected before touching state
- ConflictError: a state-machine guard failed; safe to retry after refetching
- SecurityError: bad code/token, too many attempts, forbidden actor
- NotFound: the referenced request does not exist
- Unavailable: transient store failure; the caller retries with backoff

Messages carry precise detail for audit logs and administrators. The API
layer decides how much of it an applicant gets to see.
"""

from datetime import datetime
from enum import Enum


class RegistrationError(Exception):
    """Base class for registration domain errors."""

    pass


class ValidationFailed(RegistrationError):
    """Input rejected before any state was read or written."""

    pass


class InvalidInput(ValidationFailed):
    """A required field is missing or blank."""

    pass


class InvalidRole(ValidationFailed):
    """Requested role is not self-requestable."""

    pass


class MissingReason(ValidationFailed):
    """Rejection requires a non-empty reason."""

    pass


class ConflictError(RegistrationError):
    """A state-machine guard failed."""

    pass


class DuplicateRequest(ConflictError):
    """An unresolved request already exists for the email."""

    pass


class AccountExists(ConflictError):
    """A user account already exists for the email."""

    pass


class InvalidState(ConflictError):
    """
    The request is not in a state that allows the transition.

    Carries the current status and decision audit fields so that an
    administrator who lost a race can be told who decided and when.
    """

    def __init__(
        self,
        request_id: str,
        status: Enum,
        decided_by: str | None = None,
        decided_at: datetime | None = None,
    ) -> None:
        self.request_id = request_id
        self.status = status
        self.decided_by = decided_by
        self.decided_at = decided_at
        super().__init__(self.describe())

    def describe(self) -> str:
        """Human-readable conflict detail for administrators."""
        label = self.status.value.lower()
        if self.decided_by is not None and self.decided_at is not None:
            return f"Request already {label} by {self.decided_by} at {self.decided_at.isoformat()}"
        return f"Request is {label}"


class NotApprovedReason(str, Enum):
    """Why a completion attempt was refused on status grounds."""

    PENDING = "PENDING"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    COMPLETED = "COMPLETED"


_NOT_APPROVED_MESSAGES = {
    NotApprovedReason.PENDING: "Your registration request is still pending administrator approval",
    NotApprovedReason.REJECTED: "Your registration request was rejected",
    NotApprovedReason.EXPIRED: "Your registration request has expired; please submit a new request",
    NotApprovedReason.COMPLETED: "This registration has already been completed; please log in",
}


class NotApproved(ConflictError):
    """Completion attempted while the request is not APPROVED."""

    def __init__(self, reason: NotApprovedReason) -> None:
        self.reason = reason
        super().__init__(_NOT_APPROVED_MESSAGES[reason])

    @property
    def message(self) -> str:
        return _NOT_APPROVED_MESSAGES[self.reason]


class EmailNotVerified(ConflictError):
    """Completion attempted before the applicant proved email ownership."""

    pass


class SecurityError(RegistrationError):
    """A secret check or authorization check failed."""

    pass


class InvalidCode(SecurityError):
    """Verification code is wrong or expired (not distinguished)."""

    pass


class TooManyAttempts(SecurityError):
    """Verification attempt ceiling reached; a fresh code is required."""

    pass


class InvalidOrExpiredToken(SecurityError):
    """Completion token is wrong, expired or already used."""

    pass


class Forbidden(SecurityError):
    """Actor lacks the ADMIN role."""

    pass


class NotFound(RegistrationError):
    """No matching registration request."""

    pass


class Unavailable(RegistrationError):
    """A collaborator failed transiently."""

    pass


class StoreUnavailable(Unavailable):
    """The registration store could not be reached or timed out."""

    pass
