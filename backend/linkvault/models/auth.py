"""Authentication/session models."""
import uuid

from sqlalchemy import Column, ForeignKey, Index, String
from sqlalchemy.orm import relationship

from linkvault.database import Base


class RefreshToken(Base):
    """Single-use refresh credential, stored only as a digest of the plaintext."""

    __tablename__ = "refresh_tokens"
    __table_args__ = (
        Index("ix_refresh_tokens_user_active", "user_id", "revoked_at"),
        Index("ix_refresh_tokens_expires_at", "expires_at"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    created_at = Column(String(32), nullable=False)
    expires_at = Column(String(32), nullable=False)
    revoked_at = Column(String(32))
    rotated_from_id = Column(String(36), ForeignKey("refresh_tokens.id", ondelete="SET NULL"))

    user = relationship("User", back_populates="refresh_tokens")
