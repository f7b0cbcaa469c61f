"""
Single-use, time-bounded recovery tokens.

Password reset and email verification share one shape; they live in
separate tables so their lifetimes and rate limits never interfere.
A row is "live" while used_at is NULL and expires_at is in the future;
setting used_at is terminal.
"""
from sqlalchemy import Column, ForeignKey, Index, String
from sqlalchemy.orm import declared_attr, relationship

from models.base_model import Base, BaseModel, UTCDateTime


class RecoveryTokenMixin:
    token = Column(String(128), nullable=False, unique=True, index=True)
    expires_at = Column(UTCDateTime(), nullable=False)
    used_at = Column(UTCDateTime(), nullable=True)

    @declared_attr
    def user_id(cls):
        return Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    @property
    def is_used(self) -> bool:
        return self.used_at is not None

    def is_expired(self, now) -> bool:
        return self.expires_at <= now

    def __repr__(self):
        return f"<{self.__class__.__name__} user={self.user_id} used={self.is_used}>"


class PasswordResetToken(RecoveryTokenMixin, BaseModel, Base):
    __tablename__ = "password_reset_tokens"

    user = relationship("User", back_populates="password_reset_tokens")

    __table_args__ = (
        Index("ix_password_reset_tokens_user_created", "user_id", "created_at"),
    )


class EmailVerifyToken(RecoveryTokenMixin, BaseModel, Base):
    __tablename__ = "email_verify_tokens"

    user = relationship("User", back_populates="email_verify_tokens")

    __table_args__ = (
        Index("ix_email_verify_tokens_user_created", "user_id", "created_at"),
    )
