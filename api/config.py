"""
Environment-aware configuration.
Values come from the process environment (and a .env file when present);
durations are exposed as timedeltas so services never deal in raw seconds.
"""
import os
from dotenv import load_dotenv
from datetime import timedelta

load_dotenv()  # Read .env if present

DEV_ACCESS_SECRET = "dev-access-secret-change-me"
DEV_REFRESH_SECRET = "dev-refresh-secret-change-me"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _seconds(name: str, default: int) -> timedelta:
    return timedelta(seconds=_env_int(name, default))


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")  # Set a strong key in production
    DEBUG = False
    TESTING = False
    # CORS: in dev we usually allow '*', in prod supply a comma-separated list in env
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    APP_ENV = os.getenv("APP_ENV", "dev")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///votive-auth.db")
    SQL_ECHO = _env_bool("SQL_ECHO", False)

    # JWT: access and refresh tokens are signed with different secrets
    JWT_ACCESS_SECRET = os.getenv("JWT_ACCESS_SECRET", DEV_ACCESS_SECRET)
    JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET", DEV_REFRESH_SECRET)
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    ACCESS_TOKEN_TTL = _seconds("ACCESS_TOKEN_TTL_SECONDS", 900)
    REFRESH_TOKEN_TTL = _seconds("REFRESH_TOKEN_TTL_SECONDS", 604800)

    # Recovery tokens
    PASSWORD_RESET_TTL = _seconds("PASSWORD_RESET_TTL_SECONDS", 3600)
    EMAIL_VERIFY_TTL = _seconds("EMAIL_VERIFY_TTL_SECONDS", 86400)
    VERIFICATION_RESEND_LIMIT = _env_int("VERIFICATION_RESEND_LIMIT", 5)
    VERIFICATION_RESEND_WINDOW = _seconds("VERIFICATION_RESEND_WINDOW_SECONDS", 3600)

    # Lockout
    LOCKOUT_MAX_ATTEMPTS = _env_int("LOCKOUT_MAX_ATTEMPTS", 5)
    LOCKOUT_INITIAL_DURATION_MINUTES = _env_int("LOCKOUT_INITIAL_DURATION_MINUTES", 15)
    LOCKOUT_MAX_DURATION_MINUTES = _env_int("LOCKOUT_MAX_DURATION_MINUTES", 1440)

    # Argon2 cost; None keeps argon2-cffi's defaults
    ARGON2_TIME_COST = _env_int("ARGON2_TIME_COST", None)
    ARGON2_MEMORY_COST = _env_int("ARGON2_MEMORY_COST", None)
    ARGON2_PARALLELISM = _env_int("ARGON2_PARALLELISM", None)

    # Mail
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = _env_int("SMTP_PORT", 587)
    SMTP_USER = os.getenv("SMTP_USER")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", True)
    SMTP_FROM = os.getenv("SMTP_FROM", "noreply@votive.app")
    APP_URL = os.getenv("APP_URL", "http://localhost:3000")

    # Cookies
    REFRESH_COOKIE_NAME = "refreshToken"
    REFRESH_COOKIE_SECURE = _env_bool("REFRESH_COOKIE_SECURE", True)
    CSRF_COOKIE_NAME = "csrf-token"
    CSRF_HEADER_NAME = "X-CSRF-Token"

    @classmethod
    def validate(cls):
        """Nothing to enforce outside production."""


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    APP_ENV = "dev"
    # Local http://localhost has no TLS
    REFRESH_COOKIE_SECURE = _env_bool("REFRESH_COOKIE_SECURE", False)


class TestingConfig(BaseConfig):
    TESTING = True
    APP_ENV = "test"
    DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    REFRESH_COOKIE_SECURE = False
    # Cheap hashing keeps the suite fast
    ARGON2_TIME_COST = 1
    ARGON2_MEMORY_COST = 8
    ARGON2_PARALLELISM = 1
    SMTP_HOST = None


class ProductionConfig(BaseConfig):
    DEBUG = False
    APP_ENV = "prod"
    REFRESH_COOKIE_SECURE = True

    @classmethod
    def validate(cls):
        """Refuse to boot with missing, default or shared JWT secrets."""
        access, refresh = cls.JWT_ACCESS_SECRET, cls.JWT_REFRESH_SECRET
        if not access or not refresh:
            raise RuntimeError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must be set in production")
        if access == DEV_ACCESS_SECRET or refresh == DEV_REFRESH_SECRET:
            raise RuntimeError("JWT secrets must not use development defaults in production")
        if access == refresh:
            raise RuntimeError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must differ")


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/test/prod).
    """
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig
