"""Password and refresh-token hashing."""
import hashlib

import bcrypt

# bcrypt only consumes the first 72 bytes of its input
BCRYPT_MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """Salted bcrypt hashing for user credentials."""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds

    def hash(self, password: str) -> str:
        """Hash a password."""
        return bcrypt.hashpw(
            password.encode("utf-8"),
            bcrypt.gensalt(rounds=self.rounds),
        ).decode("utf-8")

    def verify(self, password_hash: str, password: str) -> bool:
        """Verify a password against its hash."""
        try:
            return bcrypt.checkpw(
                password.encode("utf-8"),
                password_hash.encode("utf-8"),
            )
        except ValueError:
            # Over-long input or a corrupt stored hash never verifies.
            return False


class TokenHasher:
    """Deterministic SHA-256 digest used to look refresh tokens up by equality."""

    def digest(self, token: str) -> str:
        """Hash refresh token before persisting."""
        return hashlib.sha256(token.encode("utf-8")).hexdigest()
