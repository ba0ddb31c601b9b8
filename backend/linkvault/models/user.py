"""User model."""
import uuid

from sqlalchemy import Column, String
from sqlalchemy.orm import relationship

from linkvault.database import Base


class User(Base):
    """User account."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(200), nullable=False)
    email = Column(String(320), unique=True, nullable=False, index=True)  # stored trimmed + lower-cased
    password_hash = Column(String(255), nullable=False)
    created_at = Column(String(32), nullable=False)

    # Relationships
    refresh_tokens = relationship(
        "RefreshToken",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
