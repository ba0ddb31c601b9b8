"""Bearer-token verification for protected requests."""
import logging
import uuid

from jose import jwt
from jose.exceptions import JOSEError

from linkvault.config import TokenSettings
from linkvault.services.results import ErrorCode, ErrorKind, Result, ServiceError

logger = logging.getLogger(__name__)

UNAUTHENTICATED = ServiceError(
    kind=ErrorKind.UNAUTHORIZED,
    code=ErrorCode.INVALID_ACCESS_TOKEN,
    message="Unauthorized.",
)


class AuthenticationGateway:
    """Resolves a bearer token to the caller's user id.

    Verification is pure: signature, issuer, audience and expiry (with the
    configured clock-skew allowance) are checked without touching the store.
    Every kind of failure yields the same ``UNAUTHENTICATED`` error.
    """

    def __init__(self, settings: TokenSettings):
        self.settings = settings

    def identify(self, bearer_token: str | None) -> Result[str]:
        if not bearer_token:
            return Result.failure(UNAUTHENTICATED)

        try:
            claims = jwt.decode(
                bearer_token,
                self.settings.secret_key,
                algorithms=[self.settings.algorithm],
                audience=self.settings.audience,
                issuer=self.settings.issuer,
                options={
                    "require_exp": True,
                    "require_sub": True,
                    "leeway": int(self.settings.clock_skew.total_seconds()),
                },
            )
        except JOSEError as exc:
            logger.debug("Access token rejected: %s", exc)
            return Result.failure(UNAUTHENTICATED)

        if claims.get("type") != "access":
            return Result.failure(UNAUTHENTICATED)

        try:
            user_id = str(uuid.UUID(claims["sub"]))
        except (KeyError, TypeError, ValueError):
            return Result.failure(UNAUTHENTICATED)

        return Result.success(user_id)
