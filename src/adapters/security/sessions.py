"""
JWT session adapter - Implements SessionIssuer protocol.

Session credentials are signed, expiring JWTs verified statelessly.
No server-side revocation list is kept.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from src.domain.models import Actor, Role, User


class InvalidSessionToken(Exception):
    """Bearer token is malformed, expired, badly signed or missing claims."""

    pass


class JwtSessionIssuer:
    """
    Implements SessionIssuer protocol via PyJWT.

    Claims: sub (user id), email, role, iat, exp.
    """

    def __init__(self, secret: str, algorithm: str = "HS256", ttl_seconds: int = 28800) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._ttl = timedelta(seconds=ttl_seconds)

    def issue(self, user: User) -> str:
        return self.encode(user.id, user.role, user.email)

    def encode(self, subject: str, role: Role, email: str | None = None) -> str:
        """Sign a credential for an arbitrary subject (used for admin tooling and tests)."""
        now = datetime.now(timezone.utc)
        payload: dict[str, Any] = {
            "sub": str(subject),
            "role": role.value,
            "iat": now,
            "exp": now + self._ttl,
        }
        if email is not None:
            payload["email"] = email
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def decode(self, token: str) -> Actor:
        """
        Verify a credential and resolve the caller.

        Raises:
            InvalidSessionToken: signature, expiry or claims are invalid
        """
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["sub", "role", "exp"]},
            )
        except jwt.PyJWTError as e:
            raise InvalidSessionToken(str(e)) from None

        try:
            role = Role(claims["role"])
        except ValueError:
            raise InvalidSessionToken("Unknown role claim") from None
        return Actor(user_id=claims["sub"], role=role, email=claims.get("email"))
