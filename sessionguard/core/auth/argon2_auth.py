"""
Argon2id Password Hashing
=========================

Implements salted password hashing using Argon2id.

Security Properties:
- Memory-hard (resistant to GPU/ASIC attacks)
- Self-describing digests: algorithm, cost, salt and hash in one string
- Constant-time verification
- Malformed digests verify as False instead of raising

Parameters (OWASP 2023 recommendations):
- memory_cost: 102400 KiB (100 MB)
- time_cost: 2 iterations
- parallelism: 4 threads

References:
- RFC 9106: Argon2 Memory-Hard Function
- OWASP Password Storage Cheat Sheet
"""

from __future__ import annotations

import secrets
from typing import Final, Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from sessionguard.core.config import SecurityConfig


# Argon2id parameters (OWASP 2023 recommended minimums)
ARGON2_MEMORY_COST: Final[int] = 102400  # 100 MB in KiB
ARGON2_TIME_COST: Final[int] = 2  # iterations
ARGON2_PARALLELISM: Final[int] = 4  # threads
ARGON2_HASH_LENGTH: Final[int] = 32  # 256 bits
ARGON2_SALT_LENGTH: Final[int] = 16  # 128 bits


class Argon2Hasher:
    """
    Argon2id password hasher with secure defaults.

    Usage:
        hasher = Argon2Hasher()

        # Hash a password
        digest = hasher.hash("user_password")
        store(digest)

        # Verify a password
        is_valid = hasher.verify("user_password", digest)

    Stored digests carry their own parameters, so raising the cost later
    keeps old digests verifiable; ``needs_rehash`` reports which ones
    should be upgraded.
    """

    __slots__ = ("_hasher", "_dummy_digest")

    def __init__(
        self,
        memory_cost: int = ARGON2_MEMORY_COST,
        time_cost: int = ARGON2_TIME_COST,
        parallelism: int = ARGON2_PARALLELISM,
        hash_length: int = ARGON2_HASH_LENGTH,
        salt_length: int = ARGON2_SALT_LENGTH,
    ) -> None:
        """
        Initialize the Argon2id hasher.

        Args:
            memory_cost: Memory usage in KiB (default: 102400 = 100MB)
            time_cost: Number of iterations (default: 2)
            parallelism: Degree of parallelism (default: 4)
            hash_length: Output hash length in bytes (default: 32)
            salt_length: Salt length in bytes (default: 16)
        """
        if parallelism < 1:
            raise ValueError("parallelism must be at least 1")
        if memory_cost < 8 * parallelism:
            raise ValueError("memory_cost must be at least 8 KiB per lane")
        if time_cost < 1:
            raise ValueError("time_cost must be at least 1")
        if hash_length < 16:
            raise ValueError("hash_length must be at least 16 bytes")
        if salt_length < 8:
            raise ValueError("salt_length must be at least 8 bytes")

        self._hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=hash_length,
            salt_len=salt_length,
        )
        self._dummy_digest: Optional[str] = None

    @classmethod
    def from_config(cls, security: SecurityConfig) -> Argon2Hasher:
        """Build a hasher from the security section of the configuration."""
        return cls(
            memory_cost=security.argon2_memory_cost,
            time_cost=security.argon2_time_cost,
            parallelism=security.argon2_parallelism,
        )

    @property
    def parameters(self) -> dict[str, int]:
        """Get current hashing parameters."""
        return {
            "memory_cost": self._hasher.memory_cost,
            "time_cost": self._hasher.time_cost,
            "parallelism": self._hasher.parallelism,
            "hash_length": self._hasher.hash_len,
            "salt_length": self._hasher.salt_len,
        }

    def hash(self, password: str) -> str:
        """
        Hash a password using Argon2id with a fresh random salt.

        Returns:
            Encoded digest: $argon2id$v=19$m=MEMORY,t=TIME,p=PARALLEL$SALT$HASH
        """
        if not password:
            raise ValueError("Password cannot be empty")
        return self._hasher.hash(password)

    def verify(self, password: str, encoded: Optional[str]) -> bool:
        """
        Verify a password against an encoded digest.

        Returns:
            True if password matches, False otherwise (including for
            empty input and malformed digests)
        """
        if not password or not encoded:
            return False

        try:
            return self._hasher.verify(encoded, password)
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            return False

    def verify_dummy(self, password: str) -> bool:
        """
        Spend the same work as a real verification and report failure.

        Used when no stored digest exists so a missing account cannot be
        told apart from a wrong password by response time.
        """
        if self._dummy_digest is None:
            self._dummy_digest = self._hasher.hash(secrets.token_urlsafe(32))
        self.verify(password or " ", self._dummy_digest)
        return False

    def needs_rehash(self, encoded: str) -> bool:
        """Check if a digest was produced with different parameters."""
        try:
            return self._hasher.check_needs_rehash(encoded)
        except (InvalidHashError, ValueError):
            return True
