"""
Single-use, time-bounded recovery tokens (password reset, email verification).

One RecoveryTokenStore instance per use, each bound to its own model and
TTL. consume() flips used_at with a conditional UPDATE (used_at IS NULL),
so of two concurrent consumers exactly one succeeds; a used token never
grants its capability again, whatever its expiry.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional, Type

from sqlalchemy import delete, func, or_, update

from models.base_model import utcnow
from models.db_storage import DBStorage
from models.recovery_token import RecoveryTokenMixin
from utils.security import generate_secure_token

logger = logging.getLogger(__name__)


class RecoveryErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    ALREADY_USED = "already_used"
    EXPIRED = "expired"


@dataclass(frozen=True)
class IssuedRecoveryToken:
    token: str
    user_id: str
    expires_at: datetime


@dataclass(frozen=True)
class ConsumeResult:
    user_id: Optional[str] = None
    error: Optional[RecoveryErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RecoveryTokenStore:
    def __init__(self, storage: DBStorage, model: Type[RecoveryTokenMixin], ttl: timedelta,
                 clock: Callable[[], datetime] = utcnow):
        self.storage = storage
        self.model = model
        self.ttl = ttl
        self._clock = clock

    @property
    def purpose(self) -> str:
        return self.model.__tablename__

    def issue(self, user_id: str, *, session=None) -> IssuedRecoveryToken:
        if session is not None:
            return self._issue(session, user_id)
        with self.storage.transaction() as session:
            return self._issue(session, user_id)

    def _issue(self, session, user_id: str) -> IssuedRecoveryToken:
        now = self._clock()
        row = self.model(
            token=generate_secure_token(),
            user_id=user_id,
            expires_at=now + self.ttl,
            created_at=now,
            updated_at=now,
        )
        session.add(row)
        session.flush()
        return IssuedRecoveryToken(token=row.token, user_id=user_id, expires_at=row.expires_at)

    def consume(self, token: str, *, session=None) -> ConsumeResult:
        """Mark a live token used and return its owner.

        With `session`, the state change commits or rolls back together with
        whatever else the caller does in that transaction.
        """
        if session is not None:
            return self._consume(session, token)
        with self.storage.transaction() as session:
            return self._consume(session, token)

    def _consume(self, session, token: str) -> ConsumeResult:
        if not token:
            return self._reject(RecoveryErrorKind.NOT_FOUND)
        row = (
            session.query(self.model)
            .filter(self.model.token == token)
            .with_for_update()
            .one_or_none()
        )
        if row is None:
            return self._reject(RecoveryErrorKind.NOT_FOUND)
        if row.is_used:
            return self._reject(RecoveryErrorKind.ALREADY_USED, row.user_id)

        user_id = row.user_id
        now = self._clock()
        if row.is_expired(now):
            return self._reject(RecoveryErrorKind.EXPIRED, user_id)

        updated = session.execute(
            update(self.model)
            .where(self.model.id == row.id, self.model.used_at.is_(None))
            .values(used_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        ).rowcount
        if updated != 1:
            return self._reject(RecoveryErrorKind.ALREADY_USED, user_id)
        session.expire(row)
        return ConsumeResult(user_id=user_id)

    def _reject(self, kind: RecoveryErrorKind, user_id: str | None = None) -> ConsumeResult:
        logger.info("%s token rejected: %s (user %s)", self.purpose, kind.value, user_id or "-")
        return ConsumeResult(error=kind)

    def delete(self, token: str) -> bool:
        """Remove a token outright, e.g. one whose email never went out."""
        with self.storage.transaction() as session:
            deleted = session.execute(
                delete(self.model)
                .where(self.model.token == token)
                .execution_options(synchronize_session=False)
            ).rowcount
        return deleted > 0

    def count_issued_since(self, user_id: str, since: datetime) -> int:
        session = self.storage.get_session()
        return (
            session.query(func.count(self.model.id))
            .filter(self.model.user_id == user_id, self.model.created_at >= since)
            .scalar()
        )

    def purge_expired(self) -> int:
        """Delete expired tokens and spent ones; neither can grant anything again."""
        with self.storage.transaction() as session:
            return session.execute(
                delete(self.model)
                .where(or_(self.model.expires_at <= self._clock(), self.model.used_at.isnot(None)))
                .execution_options(synchronize_session=False)
            ).rowcount
