"""
Application error hierarchy.

Every AppError is a locally recoverable failure with a stable machine code
and an HTTP-equivalent status; the API layer turns it into the standard
error envelope. Anything that is not an AppError is a 500.
"""
from __future__ import annotations

from enum import Enum


class AppError(Exception):
    status_code: int = 400
    code: str = "BAD_REQUEST"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.code, "message": self.message, "status": self.status_code}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: str | None = None):
        if identifier:
            message = f'{resource} with id "{identifier}" not found'
        else:
            message = f"{resource} not found"
        super().__init__(message)


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


class AuthenticationError(AppError):
    """Bad credentials or an active lockout. Messages stay generic."""

    status_code = 401
    code = "AUTHENTICATION_FAILED"

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message)


class TokenErrorCode(str, Enum):
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    # A well-formed token whose session was revoked server-side. Refresh reports
    # a missing session row as INVALID_TOKEN, so reuse looks the same as forgery.
    TOKEN_REVOKED = "TOKEN_REVOKED"


GENERIC_TOKEN_MESSAGE = "Invalid or expired token"


class TokenError(AppError):
    """Refresh, access or recovery token rejected.

    The message is the same for every reason; only the code varies.
    """

    status_code = 401

    def __init__(
        self,
        code: TokenErrorCode = TokenErrorCode.INVALID_TOKEN,
        message: str = GENERIC_TOKEN_MESSAGE,
    ):
        super().__init__(message)
        self.token_code = TokenErrorCode(code)
        self.code = self.token_code.value


class EmailDeliveryError(RuntimeError):
    """Mail transport genuinely failed where the caller needs the mail sent."""


__all__ = [
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "AuthenticationError",
    "TokenError",
    "TokenErrorCode",
    "GENERIC_TOKEN_MESSAGE",
    "EmailDeliveryError",
]
