"""
Password hashing with bcrypt.
"""
import secrets
from typing import Optional

import bcrypt

from school_core.auth.errors import HashingError

MIN_ROUNDS = 4
MAX_ROUNDS = 31
# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:MAX_PASSWORD_BYTES]


class PasswordHasher:
    """
    Salted one-way hashing and verification of passwords.

    Args:
        rounds: Default bcrypt work factor (log2 of the iteration count)
    """
    def __init__(self, rounds: int = 10):
        self._check_rounds(rounds)
        self.rounds = rounds
        # checked against when no account matches, so both paths pay one verify
        self.dummy_hash = self.hash(secrets.token_urlsafe(16))

    @staticmethod
    def _check_rounds(rounds: int) -> None:
        if not isinstance(rounds, int) or not MIN_ROUNDS <= rounds <= MAX_ROUNDS:
            raise HashingError(f"bcrypt cost must be between {MIN_ROUNDS} and {MAX_ROUNDS}")

    def hash(self, password: str, rounds: Optional[int] = None) -> str:
        """
        Hash a plaintext password.

        Args:
            password: Plaintext password, must not be empty
            rounds: Work factor for this hash, defaults to the hasher's

        Returns:
            bcrypt hash as a string

        Raises:
            HashingError: If the password is empty or the cost is out of range
        """
        if not password:
            raise HashingError("Password must not be empty")
        rounds = self.rounds if rounds is None else rounds
        self._check_rounds(rounds)
        return bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds=rounds)).decode("utf-8")

    def verify(self, password: str, hashed_password: str) -> bool:
        """Check a plaintext password against a stored hash. Never raises."""
        if not password or not hashed_password:
            return False
        try:
            return bcrypt.checkpw(_encode(password), hashed_password.encode("utf-8"))
        except ValueError:
            # malformed stored hash
            return False
