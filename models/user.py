from sqlalchemy import Boolean, CheckConstraint, Column, Integer, String
from sqlalchemy.orm import relationship

from models.base_model import Base, BaseModel, UTCDateTime

GENDERS = ("male", "female", "other", "prefer-not-to-say")


class User(BaseModel, Base):
    __tablename__ = "users"

    # Stored lowercase; uniqueness is the registration conflict check of last resort
    email = Column(String(254), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)

    name = Column(String(100), nullable=False)
    gender = Column(String(32), nullable=True)
    birth_year = Column(Integer, nullable=False)

    email_verified = Column(Boolean, nullable=False, default=False)
    email_verified_at = Column(UTCDateTime(), nullable=True)

    # Lockout state
    failed_login_attempts = Column(Integer, nullable=False, default=0)
    lockout_until = Column(UTCDateTime(), nullable=True)
    last_failed_login_at = Column(UTCDateTime(), nullable=True)

    refresh_tokens = relationship(
        "RefreshToken",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    password_reset_tokens = relationship(
        "PasswordResetToken",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    email_verify_tokens = relationship(
        "EmailVerifyToken",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("failed_login_attempts >= 0", name="ck_users_failed_attempts_nonnegative"),
    )

    @property
    def password(self):
        raise AttributeError("Password: Write-only field")

    def is_locked(self, now) -> bool:
        return self.lockout_until is not None and self.lockout_until > now

    def __repr__(self):
        return f"<User id={self.id}>"
