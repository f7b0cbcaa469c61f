"""
AuthService: registration, login, session refresh, password reset and email
verification, plus the account operations around them.

This is the only component that reads or writes User rows. Everything it
needs is injected: storage, hasher, token codec, lockout policy, the two
token stores, the mailer and a clock. build_auth_service() wires the
defaults from a Flask config mapping.

Anti-enumeration: the unknown-email, locked-account and duplicate-email
paths each burn one dummy hash (CredentialHasher.equalize) so they cost the
same as a real password check, and login failures never say which half of
the credentials was wrong.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError

from models.base_model import utcnow
from models.db_storage import DBStorage
from models.recovery_token import EmailVerifyToken, PasswordResetToken
from models.user import GENDERS, User
from services.errors import (
    AuthenticationError,
    ConflictError,
    EmailDeliveryError,
    NotFoundError,
    TokenError,
    TokenErrorCode,
    ValidationError,
)
from services.lockout import LockoutPolicy
from services.mailer import EmailService
from services.recovery_tokens import RecoveryTokenStore
from services.session_store import SessionStore
from utils.jwt_codec import TokenCodec, TokenErrorKind
from utils.security import CredentialHasher

logger = logging.getLogger(__name__)

LOCKED_MESSAGE = "Account temporarily locked due to too many failed attempts. Please try again later."
RESEND_LIMIT_MESSAGE = "Too many verification emails requested. Please try again later."


@dataclass(frozen=True)
class AuthResult:
    user: User
    access_token: str
    refresh_token: str
    refresh_expires_at: datetime
    email_verification_sent: Optional[bool] = None


@dataclass(frozen=True)
class RefreshResult:
    access_token: str
    refresh_token: str
    refresh_expires_at: datetime


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _token_error(kind: TokenErrorKind | None) -> TokenError:
    if kind == TokenErrorKind.EXPIRED:
        return TokenError(TokenErrorCode.TOKEN_EXPIRED)
    return TokenError(TokenErrorCode.INVALID_TOKEN)


class AuthService:
    def __init__(
        self,
        storage: DBStorage,
        hasher: CredentialHasher,
        codec: TokenCodec,
        lockout: LockoutPolicy,
        sessions: SessionStore,
        reset_tokens: RecoveryTokenStore,
        verify_tokens: RecoveryTokenStore,
        mailer: EmailService,
        clock: Callable[[], datetime] = utcnow,
        resend_limit: int = 5,
        resend_window: timedelta = timedelta(hours=1),
    ):
        self.storage = storage
        self.hasher = hasher
        self.codec = codec
        self.lockout = lockout
        self.sessions = sessions
        self.reset_tokens = reset_tokens
        self.verify_tokens = verify_tokens
        self.mailer = mailer
        self._clock = clock
        self.resend_limit = resend_limit
        self.resend_window = resend_window

    # ------------------------------------------------------------------
    # registration / login / refresh
    # ------------------------------------------------------------------
    def register(self, email: str, password: str, name: str, birth_year: int,
                 gender: str | None = None) -> AuthResult:
        email = normalize_email(email)
        if self.get_by_email(email) is not None:
            self.hasher.equalize()
            raise ConflictError("An account with this email already exists")

        password_hash = self.hasher.hash(password)
        try:
            with self.storage.transaction() as session:
                user = User(
                    email=email,
                    password_hash=password_hash,
                    name=name,
                    gender=gender,
                    birth_year=birth_year,
                    email_verified=False,
                    failed_login_attempts=0,
                )
                session.add(user)
                session.flush()
                issued = self.sessions.create(user.id, session=session)
                verify = self.verify_tokens.issue(user.id, session=session)
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email
            raise ConflictError("An account with this email already exists")

        logger.info("Registered user %s", user.id)
        result = self.mailer.send_email_verification_email(user.email, verify.token, user.name)
        if result.skipped:
            logger.warning("Verification email skipped for user %s: %s", user.id, result.error)
        elif not result.success:
            logger.warning("Verification email failed for user %s: %s", user.id, result.error)

        return AuthResult(
            user=user,
            access_token=self.codec.issue_access(user.id),
            refresh_token=issued.refresh_token,
            refresh_expires_at=issued.expires_at,
            email_verification_sent=result.success,
        )

    def login(self, email: str, password: str) -> AuthResult:
        user = self.get_by_email(email)
        now = self._clock()

        if user is None:
            self.hasher.equalize()
            raise AuthenticationError()

        # Lockout is absolute: even the right password is refused until it ends
        if user.is_locked(now):
            self.hasher.equalize()
            raise AuthenticationError(LOCKED_MESSAGE)

        if not self.hasher.verify(password, user.password_hash):
            self._record_failed_login(user.id, now)
            raise AuthenticationError()

        with self.storage.transaction() as session:
            user = self._lock_user(session, user.id)
            user.failed_login_attempts = 0
            user.lockout_until = None
            issued = self.sessions.create(user.id, session=session)

        return AuthResult(
            user=user,
            access_token=self.codec.issue_access(user.id),
            refresh_token=issued.refresh_token,
            refresh_expires_at=issued.expires_at,
        )

    def _record_failed_login(self, user_id: str, now: datetime) -> None:
        with self.storage.transaction() as session:
            user = self._lock_user(session, user_id)
            attempts = (user.failed_login_attempts or 0) + 1
            user.failed_login_attempts = attempts
            user.last_failed_login_at = now
            until = self.lockout.lockout_until(attempts, now)
            if until is not None:
                user.lockout_until = until
                logger.warning(
                    "Account %s locked for %d minutes after %d failed attempts",
                    user_id, self.lockout.duration_minutes(attempts), attempts,
                )

    @staticmethod
    def _lock_user(session, user_id: str) -> User:
        return (
            session.query(User)
            .filter(User.id == user_id)
            .with_for_update()
            .populate_existing()
            .one()
        )

    def refresh_tokens(self, refresh_jwt: str) -> RefreshResult:
        rotated = self.sessions.rotate(refresh_jwt)
        if not rotated.ok:
            raise _token_error(rotated.error)
        return RefreshResult(
            access_token=self.codec.issue_access(rotated.user_id),
            refresh_token=rotated.session.refresh_token,
            refresh_expires_at=rotated.session.expires_at,
        )

    def verify_access_token(self, access_jwt: str) -> str:
        """Return the user id carried by a valid access token."""
        verified = self.codec.verify_access(access_jwt)
        if not verified.ok:
            raise _token_error(verified.error)
        return verified.payload.user_id

    # ------------------------------------------------------------------
    # logout
    # ------------------------------------------------------------------
    def logout(self, refresh_jwt: str | None) -> bool:
        """Revoke the session behind a refresh token.

        A missing, malformed, expired or already-revoked token is not an
        error: the caller is logged out either way. Returns whether a live
        session row was actually removed.
        """
        if not refresh_jwt:
            return False
        verified = self.codec.verify_refresh(refresh_jwt)
        if not verified.ok:
            return False
        return self.sessions.revoke(verified.payload.token_id)

    def logout_all(self, user_id: str) -> int:
        count = self.sessions.revoke_all(user_id)
        logger.info("Revoked %d sessions for user %s", count, user_id)
        return count

    # ------------------------------------------------------------------
    # password reset
    # ------------------------------------------------------------------
    def request_password_reset(self, email: str) -> bool:
        """Always True, whether or not the address belongs to an account."""
        user = self.get_by_email(email)
        if user is None:
            return True

        issued = self.reset_tokens.issue(user.id)
        result = self.mailer.send_password_reset_email(user.email, issued.token, user.name)
        if result.skipped:
            logger.warning("Password reset email skipped for user %s: %s", user.id, result.error)
        elif not result.success:
            # Never leave a live token behind that nobody received
            self.reset_tokens.delete(issued.token)
            logger.error("Password reset email failed for user %s: %s", user.id, result.error)
        return True

    def confirm_password_reset(self, token: str, new_password: str) -> bool:
        password_hash = self.hasher.hash(new_password)
        with self.storage.transaction() as session:
            consumed = self.reset_tokens.consume(token, session=session)
            if not consumed.ok:
                raise TokenError()
            user = session.get(User, consumed.user_id)
            if user is None:
                raise TokenError()
            user.password_hash = password_hash
            revoked = self.sessions.revoke_all(user.id, session=session)
        logger.info("Password reset for user %s; %d sessions revoked", consumed.user_id, revoked)
        return True

    # ------------------------------------------------------------------
    # email verification
    # ------------------------------------------------------------------
    def verify_email(self, token: str) -> User:
        with self.storage.transaction() as session:
            consumed = self.verify_tokens.consume(token, session=session)
            if not consumed.ok:
                raise TokenError()
            user = session.get(User, consumed.user_id)
            if user is None:
                raise TokenError()
            user.email_verified = True
            user.email_verified_at = self._clock()
        logger.info("Email verified for user %s", user.id)
        return user

    def resend_email_verification(self, user_id: str) -> bool:
        """Issue and mail a fresh verification token.

        Returns False when the address is already verified. Raises
        ValidationError once resend_limit tokens went out within
        resend_window, and EmailDeliveryError when the mail could not be sent.
        """
        user = self.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        if user.email_verified:
            return False

        since = self._clock() - self.resend_window
        if self.verify_tokens.count_issued_since(user.id, since) >= self.resend_limit:
            raise ValidationError(RESEND_LIMIT_MESSAGE)

        issued = self.verify_tokens.issue(user.id)
        result = self.mailer.send_email_verification_email(user.email, issued.token, user.name)
        if result.skipped:
            logger.warning("Verification email skipped for user %s: %s", user.id, result.error)
            return True
        if not result.success:
            self.verify_tokens.delete(issued.token)
            logger.error("Verification email failed for user %s: %s", user.id, result.error)
            raise EmailDeliveryError("Failed to send verification email")
        return True

    # ------------------------------------------------------------------
    # account
    # ------------------------------------------------------------------
    def get_by_id(self, user_id: str) -> User | None:
        if not user_id:
            return None
        return self.storage.get(User, user_id)

    def get_by_email(self, email: str) -> User | None:
        email = normalize_email(email)
        if not email:
            return None
        session = self.storage.get_session()
        return session.query(User).filter(User.email == email).one_or_none()

    def update_profile(self, user_id: str, name: str | None = None, gender: str | None = None,
                       birth_year: int | None = None) -> User:
        if gender is not None and gender not in GENDERS:
            raise ValidationError("Invalid gender", details={"gender": list(GENDERS)})
        with self.storage.transaction() as session:
            user = session.get(User, user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            if name is not None:
                user.name = name
            if gender is not None:
                user.gender = gender
            if birth_year is not None:
                user.birth_year = birth_year
        return user

    def change_password(self, user_id: str, current_password: str, new_password: str) -> int:
        """Replace the password and sign out every session. Returns sessions revoked."""
        user = self.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        if not self.hasher.verify(current_password, user.password_hash):
            raise AuthenticationError("Current password is incorrect")

        password_hash = self.hasher.hash(new_password)
        with self.storage.transaction() as session:
            user = self._lock_user(session, user_id)
            user.password_hash = password_hash
            revoked = self.sessions.revoke_all(user_id, session=session)
        logger.info("Password changed for user %s; %d sessions revoked", user_id, revoked)
        return revoked

    def delete_account(self, user_id: str) -> None:
        with self.storage.transaction() as session:
            user = session.get(User, user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            session.delete(user)
        logger.info("Deleted account %s", user_id)

    def cleanup_expired(self) -> dict:
        counts = {
            "refresh_tokens": self.sessions.purge_expired(),
            "password_reset_tokens": self.reset_tokens.purge_expired(),
            "email_verify_tokens": self.verify_tokens.purge_expired(),
        }
        logger.info("Expired token cleanup: %s", counts)
        return counts


def build_auth_service(config, storage: DBStorage, mailer: EmailService | None = None,
                       clock: Callable[[], datetime] = utcnow) -> AuthService:
    """Compose an AuthService and its collaborators from a config mapping."""
    codec = TokenCodec.from_config(config, clock=clock)
    return AuthService(
        storage=storage,
        hasher=CredentialHasher.from_config(config),
        codec=codec,
        lockout=LockoutPolicy.from_config(config),
        sessions=SessionStore(storage, codec, clock=clock),
        reset_tokens=RecoveryTokenStore(storage, PasswordResetToken, config["PASSWORD_RESET_TTL"], clock=clock),
        verify_tokens=RecoveryTokenStore(storage, EmailVerifyToken, config["EMAIL_VERIFY_TTL"], clock=clock),
        mailer=mailer or EmailService.from_config(config),
        clock=clock,
        resend_limit=int(config.get("VERIFICATION_RESEND_LIMIT", 5)),
        resend_window=config.get("VERIFICATION_RESEND_WINDOW", timedelta(hours=1)),
    )
