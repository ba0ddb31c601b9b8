"""Session lifecycle: registration, login, refresh-token rotation and logout.

Every operation returns a ``Result``; store and signing failures are logged
here and surfaced to callers only as a generic internal error. All store work
for one operation runs inside a single ``transaction()`` block, so an
exception or cancellation before commit leaves no partial state behind.
"""
from dataclasses import dataclass
from functools import lru_cache
import logging

from email_validator import EmailNotValidError, validate_email
from jose.exceptions import JOSEError
from sqlalchemy.exc import SQLAlchemyError

from linkvault.models.auth import RefreshToken
from linkvault.models.user import User
from linkvault.services.clock import Clock, SystemClock, from_timestamp, to_timestamp
from linkvault.services.credential_store import CredentialStore, EmailAlreadyRegistered
from linkvault.services.hashing import BCRYPT_MAX_PASSWORD_BYTES, PasswordHasher, TokenHasher
from linkvault.services.results import (
    ErrorCode,
    ErrorKind,
    Result,
    ServiceError,
    internal_error,
    validation_failed,
)
from linkvault.services.tokens import (
    AccessToken,
    AccessTokenIssuer,
    IssuedRefreshToken,
    RefreshTokenFactory,
)

logger = logging.getLogger(__name__)

NAME_MAX_LENGTH = 200
EMAIL_MAX_LENGTH = 320
PASSWORD_MIN_LENGTH = 8

INVALID_CREDENTIALS = ServiceError(
    kind=ErrorKind.UNAUTHORIZED,
    code=ErrorCode.INVALID_CREDENTIALS,
    message="Invalid credentials.",
)
INVALID_REFRESH_TOKEN = ServiceError(
    kind=ErrorKind.UNAUTHORIZED,
    code=ErrorCode.INVALID_REFRESH_TOKEN,
    message="Invalid refresh token.",
)
EMAIL_TAKEN = ServiceError(
    kind=ErrorKind.CONFLICT,
    code=ErrorCode.EMAIL_TAKEN,
    message="Email already registered.",
)


@dataclass(frozen=True)
class UserProfile:
    """Public view of a user; never carries the password hash."""

    id: str
    name: str
    email: str

    @classmethod
    def from_user(cls, user: User) -> "UserProfile":
        return cls(id=str(user.id), name=user.name, email=user.email)


@dataclass(frozen=True)
class LoginOutcome:
    user: UserProfile
    access_token: AccessToken
    refresh_token: IssuedRefreshToken


@dataclass(frozen=True)
class RefreshOutcome:
    access_token: AccessToken
    refresh_token: IssuedRefreshToken


def normalize_email(email: str) -> str:
    return email.strip().lower()


@lru_cache
def _dummy_password_hash(rounds: int) -> str:
    # Verified against when the email is unknown so both login failures cost the same.
    return PasswordHasher(rounds=rounds).hash("linkvault-dummy-password")


def _validate_registration(name: str, email: str, password: str) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}

    stripped_name = (name or "").strip()
    if not stripped_name:
        errors.setdefault("name", []).append("Name is required.")
    elif len(stripped_name) > NAME_MAX_LENGTH:
        errors.setdefault("name", []).append(f"Name must be at most {NAME_MAX_LENGTH} characters.")

    errors.update(_validate_email(email))

    password = password or ""
    if len(password) < PASSWORD_MIN_LENGTH:
        errors.setdefault("password", []).append(
            f"Password must be at least {PASSWORD_MIN_LENGTH} characters."
        )
    elif len(password.encode("utf-8")) > BCRYPT_MAX_PASSWORD_BYTES:
        errors.setdefault("password", []).append(
            f"Password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes."
        )

    return errors


def _validate_email(email: str) -> dict[str, list[str]]:
    normalized = normalize_email(email or "")
    if not normalized:
        return {"email": ["Email is required."]}
    if len(normalized) > EMAIL_MAX_LENGTH:
        return {"email": [f"Email must be at most {EMAIL_MAX_LENGTH} characters."]}
    try:
        validate_email(normalized, check_deliverability=False)
    except EmailNotValidError:
        return {"email": ["Email is not a valid address."]}
    return {}


class SessionService:
    """Owns every state transition of users' refresh tokens.

    Refresh tokens move from active to exactly one terminal state: rotated
    (revoked by a successful refresh), revoked (logout) or expired (detected
    when presented). The service holds no state of its own between calls.
    """

    def __init__(
        self,
        store: CredentialStore,
        access_tokens: AccessTokenIssuer,
        refresh_tokens: RefreshTokenFactory,
        password_hasher: PasswordHasher | None = None,
        token_hasher: TokenHasher | None = None,
        clock: Clock | None = None,
    ):
        self.store = store
        self.access_tokens = access_tokens
        self.refresh_tokens = refresh_tokens
        self.password_hasher = password_hasher or PasswordHasher()
        self.token_hasher = token_hasher or TokenHasher()
        self.clock = clock or SystemClock()

    def register(self, name: str, email: str, password: str) -> Result[UserProfile]:
        """Create a user with a unique, normalized email."""
        errors = _validate_registration(name, email, password)
        if errors:
            return Result.failure(validation_failed(errors))

        normalized = normalize_email(email)
        try:
            with self.store.transaction():
                if self.store.get_user_by_email(normalized) is not None:
                    return Result.failure(EMAIL_TAKEN)

                user = self.store.add_user(
                    User(
                        name=name.strip(),
                        email=normalized,
                        password_hash=self.password_hasher.hash(password),
                        created_at=to_timestamp(self.clock.now()),
                    )
                )
                profile = UserProfile.from_user(user)
        except EmailAlreadyRegistered:
            return Result.failure(EMAIL_TAKEN)
        except SQLAlchemyError:
            logger.exception("Registration failed due to a store error")
            return Result.failure(internal_error())

        logger.info("Registered user %s", profile.id)
        return Result.success(profile)

    def login(self, email: str, password: str) -> Result[LoginOutcome]:
        """Verify credentials and open a new session.

        Unknown email and wrong password produce the same failure.
        """
        errors = _validate_email(email)
        if not password:
            errors.setdefault("password", []).append("Password is required.")
        if errors:
            return Result.failure(validation_failed(errors))

        normalized = normalize_email(email)
        try:
            with self.store.transaction():
                user = self.store.get_user_by_email(normalized)
                if user is None:
                    self.password_hasher.verify(_dummy_password_hash(self.password_hasher.rounds), password)
                    logger.info("Login rejected")
                    return Result.failure(INVALID_CREDENTIALS)
                if not self.password_hasher.verify(user.password_hash, password):
                    logger.info("Login rejected")
                    return Result.failure(INVALID_CREDENTIALS)

                access_token = self.access_tokens.issue(user)
                refresh_token = self._open_session(user.id)
                outcome = LoginOutcome(
                    user=UserProfile.from_user(user),
                    access_token=access_token,
                    refresh_token=refresh_token,
                )
        except (SQLAlchemyError, JOSEError):
            logger.exception("Login failed due to an internal error")
            return Result.failure(internal_error())

        logger.info("User %s logged in", outcome.user.id)
        return Result.success(outcome)

    def refresh(self, presented_token: str) -> Result[RefreshOutcome]:
        """Redeem a refresh token once, rotating it to a new one.

        Missing, unknown, revoked and expired tokens are indistinguishable to
        the caller.
        """
        if not presented_token:
            return Result.failure(INVALID_REFRESH_TOKEN)

        token_hash = self.token_hasher.digest(presented_token)
        now = self.clock.now()
        try:
            with self.store.transaction():
                existing = self.store.get_refresh_token_by_hash(token_hash)
                if existing is None:
                    logger.info("Refresh rejected: unknown token")
                    return Result.failure(INVALID_REFRESH_TOKEN)
                if existing.revoked_at is not None:
                    logger.warning("Refresh rejected: token %s was already revoked", existing.id)
                    return Result.failure(INVALID_REFRESH_TOKEN)
                if from_timestamp(existing.expires_at) <= now:
                    logger.info("Refresh rejected: token %s expired", existing.id)
                    return Result.failure(INVALID_REFRESH_TOKEN)

                # Only one concurrent caller can flip revoked_at for this row.
                if not self.store.revoke_refresh_token(existing.id, now):
                    logger.warning("Refresh rejected: token %s lost a concurrent rotation", existing.id)
                    return Result.failure(INVALID_REFRESH_TOKEN)

                user = self.store.get_user(existing.user_id)
                if user is None:
                    # Leaving the block commits the revocation above; no successor is issued.
                    logger.info("Refresh rejected: owner of token %s no longer exists", existing.id)
                    return Result.failure(INVALID_REFRESH_TOKEN)

                refresh_token = self._open_session(user.id, rotated_from_id=existing.id)
                access_token = self.access_tokens.issue(user)
                rotated_id = existing.id
        except (SQLAlchemyError, JOSEError):
            logger.exception("Refresh failed due to an internal error")
            return Result.failure(internal_error())

        logger.info("Rotated refresh token %s", rotated_id)
        return Result.success(RefreshOutcome(access_token=access_token, refresh_token=refresh_token))

    def logout(self, presented_token: str | None) -> Result[None]:
        """Revoke the presented refresh token; unknown or revoked tokens are a no-op."""
        if not presented_token:
            return Result.success(None)

        token_hash = self.token_hasher.digest(presented_token)
        try:
            with self.store.transaction():
                existing = self.store.get_refresh_token_by_hash(token_hash)
                if existing is not None and existing.revoked_at is None:
                    if self.store.revoke_refresh_token(existing.id, self.clock.now()):
                        logger.info("Revoked refresh token %s on logout", existing.id)
        except SQLAlchemyError:
            logger.exception("Logout failed due to a store error")
            return Result.failure(internal_error())

        return Result.success(None)

    def get_profile(self, user_id: str) -> Result[UserProfile]:
        """Load the public profile for an authenticated caller."""
        try:
            user = self.store.get_user(user_id)
        except SQLAlchemyError:
            logger.exception("Profile lookup failed due to a store error")
            return Result.failure(internal_error())

        if user is None:
            return Result.failure(
                ServiceError(
                    kind=ErrorKind.UNAUTHORIZED,
                    code=ErrorCode.INVALID_ACCESS_TOKEN,
                    message="Unauthorized.",
                )
            )
        return Result.success(UserProfile.from_user(user))

    def _open_session(self, user_id: str, rotated_from_id: str | None = None) -> IssuedRefreshToken:
        """Persist the digest of a new refresh token and return its plaintext."""
        issued = self.refresh_tokens.create()
        self.store.add_refresh_token(
            RefreshToken(
                user_id=user_id,
                token_hash=issued.token_hash,
                created_at=to_timestamp(self.clock.now()),
                expires_at=to_timestamp(issued.expires_at),
                rotated_from_id=rotated_from_id,
            )
        )
        return issued
