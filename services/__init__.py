from services.auth_service import AuthResult, AuthService, RefreshResult, build_auth_service
from services.lockout import LockoutPolicy
from services.mailer import EmailResult, EmailService
from services.recovery_tokens import RecoveryTokenStore
from services.session_store import SessionStore

__all__ = [
    "AuthResult",
    "AuthService",
    "RefreshResult",
    "build_auth_service",
    "LockoutPolicy",
    "EmailResult",
    "EmailService",
    "RecoveryTokenStore",
    "SessionStore",
]
