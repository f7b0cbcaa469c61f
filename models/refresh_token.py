"""
RefreshToken model: one row per live session.
The signed JWT held by the client only carries token_id; this row is the
source of truth. Rotation deletes the row and inserts a successor, logout
deletes it, so there is no "revoked" flag.
Fields:
- token_id (unique, opaque)
- user_id (String(36)) - FK to users.id, cascades on account deletion
- expires_at
"""
from sqlalchemy import Column, String, ForeignKey
from sqlalchemy.orm import relationship

from models.base_model import BaseModel, Base, UTCDateTime


class RefreshToken(BaseModel, Base):
    __tablename__ = "refresh_tokens"

    token_id = Column(String(64), nullable=False, unique=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    expires_at = Column(UTCDateTime(), nullable=False)

    user = relationship("User", back_populates="refresh_tokens")

    def __repr__(self):
        return f"<RefreshToken user={self.user_id} expires_at={self.expires_at}>"
