"""
Refresh-token persistence: one RefreshToken row per live session.

rotate() is the only operation that has to be race-free. Two requests
presenting the same refresh JWT must never both get a successor, so the
lookup takes a row lock (SELECT ... FOR UPDATE where the backend supports
it) and the old row is removed with a compare-and-delete whose rowcount
decides the winner. Whoever deletes the row inserts the successor inside
the same transaction; the loser sees zero rows and reports "invalid".
On SQLite, where FOR UPDATE is a no-op, writers are serialized by the
database lock and the rowcount check alone settles the race.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import delete

from models.base_model import utcnow
from models.db_storage import DBStorage
from models.refresh_token import RefreshToken
from utils.jwt_codec import TokenCodec, TokenErrorKind
from utils.security import generate_token_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedSession:
    token_id: str
    refresh_token: str
    expires_at: datetime


@dataclass(frozen=True)
class RotationResult:
    session: Optional[IssuedSession] = None
    user_id: Optional[str] = None
    error: Optional[TokenErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SessionStore:
    def __init__(self, storage: DBStorage, codec: TokenCodec,
                 clock: Callable[[], datetime] = utcnow):
        self.storage = storage
        self.codec = codec
        self._clock = clock

    def create(self, user_id: str, *, session=None) -> IssuedSession:
        """Persist a new session row and return the signed refresh JWT for it.

        Pass `session` to join a caller's transaction (registration, login);
        otherwise the row is committed on its own.
        """
        if session is not None:
            return self._create(session, user_id)
        with self.storage.transaction() as session:
            return self._create(session, user_id)

    def _create(self, session, user_id: str) -> IssuedSession:
        token_id = generate_token_id()
        expires_at = self._clock() + self.codec.refresh_ttl
        signed = self.codec.issue_refresh(user_id, token_id)
        session.add(RefreshToken(token_id=token_id, user_id=user_id, expires_at=expires_at))
        session.flush()
        return IssuedSession(token_id=token_id, refresh_token=signed.token, expires_at=expires_at)

    def rotate(self, refresh_jwt: str) -> RotationResult:
        verified = self.codec.verify_refresh(refresh_jwt)
        if not verified.ok:
            return RotationResult(error=verified.error)
        claims = verified.payload

        with self.storage.transaction() as session:
            record = (
                session.query(RefreshToken)
                .filter(RefreshToken.token_id == claims.token_id)
                .with_for_update()
                .one_or_none()
            )
            if record is None or record.user_id != claims.user_id:
                logger.info("refresh rotation rejected: unknown token (user %s)", claims.user_id)
                return RotationResult(error=TokenErrorKind.INVALID)

            if record.expires_at <= self._clock():
                session.delete(record)
                logger.info("refresh rotation rejected: expired session (user %s)", claims.user_id)
                return RotationResult(error=TokenErrorKind.EXPIRED)

            deleted = session.execute(
                delete(RefreshToken)
                .where(RefreshToken.id == record.id)
                .execution_options(synchronize_session=False)
            ).rowcount
            if deleted != 1:
                # Another request consumed this token between our read and our delete
                logger.warning("refresh rotation lost race (user %s)", claims.user_id)
                return RotationResult(error=TokenErrorKind.INVALID)
            session.expunge(record)

            issued = self._create(session, claims.user_id)

        return RotationResult(session=issued, user_id=claims.user_id)

    def revoke(self, token_id: str) -> bool:
        with self.storage.transaction() as session:
            deleted = session.execute(
                delete(RefreshToken)
                .where(RefreshToken.token_id == token_id)
                .execution_options(synchronize_session=False)
            ).rowcount
        return deleted > 0

    def revoke_all(self, user_id: str, *, session=None) -> int:
        if session is not None:
            return self._revoke_all(session, user_id)
        with self.storage.transaction() as session:
            return self._revoke_all(session, user_id)

    def _revoke_all(self, session, user_id: str) -> int:
        return session.execute(
            delete(RefreshToken)
            .where(RefreshToken.user_id == user_id)
            .execution_options(synchronize_session="fetch")
        ).rowcount

    def count_active(self, user_id: str) -> int:
        session = self.storage.get_session()
        return (
            session.query(RefreshToken)
            .filter(RefreshToken.user_id == user_id, RefreshToken.expires_at > self._clock())
            .count()
        )

    def purge_expired(self) -> int:
        with self.storage.transaction() as session:
            return session.execute(
                delete(RefreshToken)
                .where(RefreshToken.expires_at <= self._clock())
                .execution_options(synchronize_session=False)
            ).rowcount
