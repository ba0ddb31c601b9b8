"""SQLAlchemy models package."""
from linkvault.models.user import User
from linkvault.models.auth import RefreshToken

__all__ = [
    "User",
    "RefreshToken",
]
