"""
security helpers:
- Argon2 password hashing via argon2-cffi, wrapped in CredentialHasher
- Random opaque tokens for refresh-token ids, recovery tokens and CSRF
- Constant-time comparison for CSRF double-submit values
"""
from __future__ import annotations

import hmac
import secrets

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError

# 32 bytes = 256 bits of entropy -> 64 hex chars
RECOVERY_TOKEN_BYTES = 32
TOKEN_ID_BYTES = 16

DUMMY_PASSWORD = "dummy-password-for-timing"


class CredentialHasher:
    """Adaptive password hashing. Stateless apart from its cost parameters.

    equalize() burns one hash on a fixed dummy secret. Callers use it on
    every path that would otherwise answer faster than a real password
    check (unknown email, locked account, duplicate registration) so the
    response time does not reveal whether an account exists.
    """

    def __init__(self, time_cost: int | None = None, memory_cost: int | None = None,
                 parallelism: int | None = None):
        kwargs = {}
        if time_cost is not None:
            kwargs["time_cost"] = int(time_cost)
        if memory_cost is not None:
            kwargs["memory_cost"] = int(memory_cost)
        if parallelism is not None:
            kwargs["parallelism"] = int(parallelism)
        self._ph = PasswordHasher(**kwargs)

    @classmethod
    def from_config(cls, config) -> "CredentialHasher":
        return cls(
            time_cost=config.get("ARGON2_TIME_COST"),
            memory_cost=config.get("ARGON2_MEMORY_COST"),
            parallelism=config.get("ARGON2_PARALLELISM"),
        )

    def hash(self, password: str) -> str:
        """Hash a plaintext password using Argon2
        """
        return self._ph.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        """ Verify a plaintext password against a stored digest
        """
        try:
            return self._ph.verify(password_hash, password)
        except (VerificationError, InvalidHash):
            return False

    def equalize(self) -> None:
        self._ph.hash(DUMMY_PASSWORD)


def generate_secure_token(nbytes: int = RECOVERY_TOKEN_BYTES) -> str:
    """Hex token with nbytes of entropy."""
    return secrets.token_hex(nbytes)


def generate_token_id() -> str:
    """Identifier for a refresh-token row (128 bits, 32 hex chars)."""
    return secrets.token_hex(TOKEN_ID_BYTES)


def generate_csrf_token() -> str:
    return secrets.token_hex(32)


def tokens_match(presented: str | None, expected: str | None) -> bool:
    if not presented or not expected:
        return False
    return hmac.compare_digest(presented.encode(), expected.encode())
