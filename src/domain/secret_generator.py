"""
Secret generation and digest comparison.

Verification codes are short numeric strings an applicant types from an
email. Completion tokens are long URL-safe strings. Neither is ever stored:
the store only sees salted HMAC-SHA256 digests in the form
``sha256$<salt>$<digest>``, and checks use hmac.compare_digest.

When no digest is stored (the row is missing or the secret was already
consumed) the check still runs against a dummy digest so that failure
paths take the same time as a real mismatch.
"""

import hashlib
import hmac
import secrets
from dataclasses import dataclass

_SCHEME = "sha256"
_SALT_BYTES = 16


@dataclass(frozen=True)
class SecretGenerator:
    """
    Issues verification codes and completion tokens and checks them.

    Attributes:
        code_length: Number of digits in a verification code
        token_bytes: Random bytes behind a completion token (before base64url)
        pepper: Optional server-side key mixed into every digest
    """

    code_length: int = 6
    token_bytes: int = 32
    pepper: bytes = b""

    def generate_code(self, outstanding_hash: str | None = None) -> str:
        """
        Generate a fixed-width numeric verification code.

        Returns a string to preserve leading zeros. If ``outstanding_hash``
        is given the new code is guaranteed not to match it, so a resend
        never hands out the code that is still active.
        """
        while True:
            code = "".join(secrets.choice("0123456789") for _ in range(self.code_length))
            if outstanding_hash is None or not self.matches(code, outstanding_hash):
                return code

    def generate_token(self) -> str:
        """Generate a high-entropy, URL-safe completion token."""
        return secrets.token_urlsafe(self.token_bytes)

    def digest(self, secret: str) -> str:
        """Return a freshly salted digest suitable for storage."""
        salt = secrets.token_hex(_SALT_BYTES)
        return f"{_SCHEME}${salt}${self._mac(salt, secret)}"

    def matches(self, secret: str, stored: str | None) -> bool:
        """
        Constant-time check of a presented secret against a stored digest.

        Returns False for a missing or malformed digest, after doing the
        same amount of work as a real comparison.
        """
        salt, expected, usable = _split(stored)
        actual = self._mac(salt, secret)
        return hmac.compare_digest(actual, expected) and usable

    def _mac(self, salt: str, secret: str) -> str:
        key = self.pepper + salt.encode()
        return hmac.new(key, secret.encode(), hashlib.sha256).hexdigest()


_DUMMY_SALT = "0" * (_SALT_BYTES * 2)
_DUMMY_DIGEST = "0" * 64


def _split(stored: str | None) -> tuple[str, str, bool]:
    if stored:
        parts = stored.split("$")
        if len(parts) == 3 and parts[0] == _SCHEME:
            return parts[1], parts[2], True
    return _DUMMY_SALT, _DUMMY_DIGEST, False
