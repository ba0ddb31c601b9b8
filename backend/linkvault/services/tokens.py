"""Access-token issuance and refresh-token generation."""
import base64
from dataclasses import dataclass
from datetime import datetime
import secrets
import uuid

from jose import jwt

from linkvault.config import TokenSettings
from linkvault.models.user import User
from linkvault.services.clock import Clock, SystemClock
from linkvault.services.hashing import TokenHasher

REFRESH_TOKEN_BYTES = 64


@dataclass(frozen=True)
class AccessToken:
    token: str
    expires_at: datetime


@dataclass(frozen=True)
class IssuedRefreshToken:
    """A freshly generated refresh token.

    ``token`` is the plaintext handed to the client exactly once; only
    ``token_hash`` is ever persisted.
    """

    token: str
    token_hash: str
    expires_at: datetime

    def __repr__(self) -> str:
        return f"IssuedRefreshToken(token_hash={self.token_hash!r}, expires_at={self.expires_at!r})"


class AccessTokenIssuer:
    """Signs short-lived HS256 bearer tokens carrying the user's identity claims."""

    def __init__(self, settings: TokenSettings, clock: Clock | None = None):
        if not settings.secret_key:
            raise ValueError("A signing key is required to issue access tokens.")
        self.settings = settings
        self.clock = clock or SystemClock()

    def issue(self, user: User) -> AccessToken:
        """Create a JWT access token for ``user``."""
        now = self.clock.now()
        expires_at = now + self.settings.access_token_lifetime
        claims = {
            "sub": str(user.id),
            "email": user.email,
            "name": user.name,
            "iss": self.settings.issuer,
            "aud": self.settings.audience,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
            "jti": uuid.uuid4().hex,
            "type": "access",
        }
        token = jwt.encode(claims, self.settings.secret_key, algorithm=self.settings.algorithm)
        return AccessToken(token=token, expires_at=expires_at)


class RefreshTokenFactory:
    """Generates opaque 512-bit refresh tokens together with their digest and expiry."""

    def __init__(
        self,
        settings: TokenSettings,
        hasher: TokenHasher | None = None,
        clock: Clock | None = None,
    ):
        self.settings = settings
        self.hasher = hasher or TokenHasher()
        self.clock = clock or SystemClock()

    def create(self) -> IssuedRefreshToken:
        raw = secrets.token_bytes(REFRESH_TOKEN_BYTES)
        token = base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")
        return IssuedRefreshToken(
            token=token,
            token_hash=self.hasher.digest(token),
            expires_at=self.clock.now() + self.settings.refresh_token_lifetime,
        )
