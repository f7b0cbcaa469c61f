import os
from datetime import timedelta

# Configuration is read at import time; pin the test environment first
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("JWT_ACCESS_SECRET", "test-access-secret-for-automation-only")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret-for-automation-only")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402

from models import DBStorage, EmailVerifyToken, PasswordResetToken, utcnow  # noqa: E402
from services.auth_service import AuthService  # noqa: E402
from services.lockout import LockoutPolicy  # noqa: E402
from services.mailer import EmailResult  # noqa: E402
from services.recovery_tokens import RecoveryTokenStore  # noqa: E402
from services.session_store import SessionStore  # noqa: E402
from utils.jwt_codec import TokenCodec  # noqa: E402
from utils.security import CredentialHasher  # noqa: E402

ACCESS_SECRET = os.environ["JWT_ACCESS_SECRET"]
REFRESH_SECRET = os.environ["JWT_REFRESH_SECRET"]
PASSWORD = "Correct-Horse-9"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start=None):
        self.now = start or utcnow()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class SpyHasher(CredentialHasher):
    """Cheap argon2 that counts every hash-cost operation."""

    def __init__(self):
        super().__init__(time_cost=1, memory_cost=8, parallelism=1)
        self.calls = []

    def hash(self, password):
        self.calls.append("hash")
        return super().hash(password)

    def verify(self, password, password_hash):
        self.calls.append("verify")
        return super().verify(password, password_hash)

    def equalize(self):
        self.calls.append("equalize")
        super().equalize()

    def reset(self):
        self.calls.clear()


class FakeMailer:
    """Records outgoing mail instead of talking SMTP."""

    def __init__(self):
        self.sent = []
        self.result = EmailResult(success=True, message_id="<test@votive>")

    def send_password_reset_email(self, to, token, name=None):
        self.sent.append(("password_reset", to, token))
        return self.result

    def send_email_verification_email(self, to, token, name=None):
        self.sent.append(("email_verification", to, token))
        return self.result

    def last_token(self, kind):
        for sent_kind, _, token in reversed(self.sent):
            if sent_kind == kind:
                return token
        return None


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage(tmp_path):
    # File-backed so several threads can share it
    store = DBStorage(f"sqlite:///{tmp_path / 'auth.db'}")
    store.reload()
    yield store
    store.dispose()


@pytest.fixture
def codec():
    # Real clock: PyJWT validates iat/exp against wall time
    return TokenCodec(ACCESS_SECRET, REFRESH_SECRET)


@pytest.fixture
def hasher():
    return SpyHasher()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def sessions(storage, codec, clock):
    return SessionStore(storage, codec, clock=clock)


@pytest.fixture
def reset_tokens(storage, clock):
    return RecoveryTokenStore(storage, PasswordResetToken, timedelta(hours=1), clock=clock)


@pytest.fixture
def verify_tokens(storage, clock):
    return RecoveryTokenStore(storage, EmailVerifyToken, timedelta(hours=24), clock=clock)


@pytest.fixture
def auth_service(storage, hasher, codec, sessions, reset_tokens, verify_tokens, mailer, clock):
    return AuthService(
        storage=storage,
        hasher=hasher,
        codec=codec,
        lockout=LockoutPolicy(max_attempts=5, initial_duration_minutes=15, max_duration_minutes=1440),
        sessions=sessions,
        reset_tokens=reset_tokens,
        verify_tokens=verify_tokens,
        mailer=mailer,
        clock=clock,
    )


@pytest.fixture
def registered(auth_service):
    """A freshly registered account (AuthResult)."""
    return auth_service.register("Ada@Example.com", PASSWORD, "Ada", 1990, gender="female")


@pytest.fixture
def app(storage, mailer):
    from api import create_app

    app = create_app("test", storage=storage, mailer=mailer)
    yield app


@pytest.fixture
def client(app):
    return app.test_client()
