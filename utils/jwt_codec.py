"""
Access / refresh JWT issuance and verification via PyJWT.

Two disjoint token kinds, each signed with its own secret and carrying a
"type" claim:

    access:  {"sub": user_id, "type": "access", "iat", "exp"}
    refresh: {"sub": user_id, "jti": token_id, "type": "refresh", "iat", "exp"}

Verification never raises for a bad token; it returns a VerificationResult
whose error is "invalid" or "expired". A token of the wrong kind always
fails as "invalid": its signature does not match the other secret, and the
type claim is checked as well.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar

import jwt

from models.base_model import utcnow

ACCESS = "access"
REFRESH = "refresh"


class TokenErrorKind(str, Enum):
    INVALID = "invalid"
    EXPIRED = "expired"


@dataclass(frozen=True)
class AccessClaims:
    user_id: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class RefreshClaims:
    user_id: str
    token_id: str
    issued_at: datetime
    expires_at: datetime


T = TypeVar("T")


@dataclass(frozen=True)
class VerificationResult(Generic[T]):
    """Either ok with a payload, or failed with an error kind."""

    payload: Optional[T] = None
    error: Optional[TokenErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, payload: T) -> "VerificationResult[T]":
        return cls(payload=payload)

    @classmethod
    def failure(cls, error: TokenErrorKind) -> "VerificationResult[T]":
        return cls(error=error)


@dataclass(frozen=True)
class SignedRefreshToken:
    token: str
    token_id: str
    expires_at: datetime


class TokenCodec:
    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        algorithm: str = "HS256",
        clock: Callable[[], datetime] = utcnow,
    ):
        if not access_secret or not refresh_secret:
            raise ValueError("both access and refresh secrets are required")
        if access_secret == refresh_secret:
            raise ValueError("access and refresh secrets must differ")
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.algorithm = algorithm
        self._clock = clock

    @classmethod
    def from_config(cls, config, clock: Callable[[], datetime] = utcnow) -> "TokenCodec":
        return cls(
            access_secret=config["JWT_ACCESS_SECRET"],
            refresh_secret=config["JWT_REFRESH_SECRET"],
            access_ttl=config["ACCESS_TOKEN_TTL"],
            refresh_ttl=config["REFRESH_TOKEN_TTL"],
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
            clock=clock,
        )

    def issue_access(self, user_id: str) -> str:
        now = self._clock()
        payload = {
            "sub": str(user_id),
            "type": ACCESS,
            "iat": int(now.timestamp()),
            "exp": int((now + self.access_ttl).timestamp()),
        }
        return jwt.encode(payload, self._access_secret, algorithm=self.algorithm)

    def issue_refresh(self, user_id: str, token_id: str) -> SignedRefreshToken:
        now = self._clock()
        expires_at = now + self.refresh_ttl
        payload = {
            "sub": str(user_id),
            "jti": token_id,
            "type": REFRESH,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(payload, self._refresh_secret, algorithm=self.algorithm)
        return SignedRefreshToken(token=token, token_id=token_id, expires_at=expires_at)

    def verify_access(self, token: str) -> VerificationResult[AccessClaims]:
        decoded = self._decode(token, self._access_secret, ACCESS)
        if not decoded.ok:
            return decoded
        claims = decoded.payload
        return VerificationResult.success(
            AccessClaims(
                user_id=claims["sub"],
                issued_at=_from_ts(claims["iat"]),
                expires_at=_from_ts(claims["exp"]),
            )
        )

    def verify_refresh(self, token: str) -> VerificationResult[RefreshClaims]:
        decoded = self._decode(token, self._refresh_secret, REFRESH)
        if not decoded.ok:
            return decoded
        claims = decoded.payload
        token_id = claims.get("jti")
        if not isinstance(token_id, str) or not token_id:
            return VerificationResult.failure(TokenErrorKind.INVALID)
        return VerificationResult.success(
            RefreshClaims(
                user_id=claims["sub"],
                token_id=token_id,
                issued_at=_from_ts(claims["iat"]),
                expires_at=_from_ts(claims["exp"]),
            )
        )

    def _decode(self, token: str, secret: str, expected_type: str) -> VerificationResult[dict]:
        if not isinstance(token, str) or not token:
            return VerificationResult.failure(TokenErrorKind.INVALID)
        try:
            # Signature is checked before exp, so a foreign token is never "expired"
            claims = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            return VerificationResult.failure(TokenErrorKind.EXPIRED)
        except jwt.InvalidTokenError:
            return VerificationResult.failure(TokenErrorKind.INVALID)

        if claims.get("type") != expected_type:
            return VerificationResult.failure(TokenErrorKind.INVALID)
        if not isinstance(claims.get("sub"), str) or not claims["sub"]:
            return VerificationResult.failure(TokenErrorKind.INVALID)
        return VerificationResult.success(claims)


def _from_ts(value) -> datetime:
    return datetime.fromtimestamp(int(value), tz=timezone.utc)
