"""
Account materializer - turns a completed registration into a user.

The role always comes from the registration row as it stood when the
administrator approved it. Completion input carries only the password;
there is no path by which a client-supplied role reaches the account.
"""

import logging
from dataclasses import dataclass

from .exceptions import InvalidState
from .models import CompletionResult, NewUser, RegistrationRequest, RegistrationStatus, UserProfile
from .ports import PasswordHasher, SessionIssuer, UserRepository

logger = logging.getLogger(__name__)


@dataclass
class AccountMaterializer:
    """Creates the durable account and its first session credential."""

    password_hasher: PasswordHasher
    session_issuer: SessionIssuer

    def hash_password(self, password: str) -> str:
        """Hash ahead of the transaction so bcrypt does not hold a connection."""
        return self.password_hasher.hash(password)

    def materialize(
        self, users: UserRepository, request: RegistrationRequest, password_hash: str
    ) -> CompletionResult:
        """
        Create the user for a COMPLETED request and issue a session.

        Must run inside the same unit of work that completes the request.

        Raises:
            InvalidState: request is not COMPLETED
            AccountExists: the identity store already has this email
        """
        if request.status != RegistrationStatus.COMPLETED:
            raise InvalidState(request.id, request.status)

        user = users.create(
            NewUser(
                email=request.email.strip().lower(),
                first_name=request.first_name,
                last_name=request.last_name,
                role=request.requested_role,
                password_hash=password_hash,
                is_active=True,
            )
        )
        logger.info("Account %s created from request %s with role %s", user.id, request.id, user.role.value)
        return CompletionResult(
            session_credential=self.session_issuer.issue(user),
            user=UserProfile.from_user(user),
        )
