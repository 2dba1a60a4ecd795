"""
bcrypt password hasher adapter - Implements PasswordHasher protocol.
"""

import bcrypt


class BcryptPasswordHasher:
    """
    Implements PasswordHasher protocol via bcrypt.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, rounds: int = 10) -> None:
        """
        Args:
            rounds: bcrypt cost factor (production default 10)
        """
        self._rounds = rounds

    def hash(self, password: str) -> str:
        return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=self._rounds)).decode()

    def verify(self, password: str, password_hash: str) -> bool:
        """Constant-time check; a malformed stored hash never matches."""
        try:
            return bcrypt.checkpw(password.encode(), password_hash.encode())
        except ValueError:
            return False
