"""
Domain layer - Pure business logic with zero framework imports.

This package contains the core business logic for the staff onboarding
workflow: registration request, email verification, administrator
approval and account completion. It defines its own port interfaces for
infrastructure abstraction.
"""

from .accounts import AccountMaterializer
from .approval import ApprovalGate
from .exceptions import (
    AccountExists,
    ConflictError,
    DuplicateRequest,
    EmailNotVerified,
    Forbidden,
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
    SecurityError,
    StoreUnavailable,
    TooManyAttempts,
    Unavailable,
    ValidationFailed,
)
from .models import (
    Actor,
    CompletionResult,
    NewUser,
    Page,
    RegistrationRequest,
    RegistrationStatus,
    RequestReceipt,
    Role,
    User,
    UserProfile,
)
from .notifications import NotificationDispatcher
from .ports import (
    Notifier,
    PasswordHasher,
    RegistrationRepository,
    SessionIssuer,
    UnitOfWork,
    UserRepository,
)
from .registration import RegistrationService
from .secret_generator import SecretGenerator
from .state_machine import RegistrationPolicy

__all__ = [
    "AccountExists",
    "AccountMaterializer",
    "Actor",
    "ApprovalGate",
    "CompletionResult",
    "ConflictError",
    "DuplicateRequest",
    "EmailNotVerified",
    "Forbidden",
    "InvalidCode",
    "InvalidInput",
    "InvalidOrExpiredToken",
    "InvalidRole",
    "InvalidState",
    "MissingReason",
    "NewUser",
    "NotApproved",
    "NotApprovedReason",
    "NotFound",
    "NotificationDispatcher",
    "Notifier",
    "Page",
    "PasswordHasher",
    "RegistrationError",
    "RegistrationPolicy",
    "RegistrationRepository",
    "RegistrationRequest",
    "RegistrationService",
    "RegistrationStatus",
    "RequestReceipt",
    "Role",
    "SecretGenerator",
    "SecurityError",
    "SessionIssuer",
    "StoreUnavailable",
    "TooManyAttempts",
    "UnitOfWork",
    "Unavailable",
    "User",
    "UserProfile",
    "UserRepository",
    "ValidationFailed",
]
