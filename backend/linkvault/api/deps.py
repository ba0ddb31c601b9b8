"""Shared FastAPI dependencies."""
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from linkvault.api.errors import ServiceErrorException
from linkvault.config import get_settings, get_token_settings
from linkvault.database import get_db
from linkvault.services.authentication import AuthenticationGateway
from linkvault.services.credential_store import SqlAlchemyCredentialStore
from linkvault.services.hashing import PasswordHasher
from linkvault.services.sessions import SessionService
from linkvault.services.tokens import AccessTokenIssuer, RefreshTokenFactory

__all__ = [
    "bearer_scheme",
    "get_authentication_gateway",
    "get_current_user_id",
    "get_db",
    "get_session_service",
]

bearer_scheme = HTTPBearer(auto_error=False)


def get_authentication_gateway() -> AuthenticationGateway:
    return AuthenticationGateway(get_token_settings())


def get_session_service(db: Session = Depends(get_db)) -> SessionService:
    """Build a session service bound to this request's database session."""
    token_settings = get_token_settings()
    return SessionService(
        store=SqlAlchemyCredentialStore(db),
        access_tokens=AccessTokenIssuer(token_settings),
        refresh_tokens=RefreshTokenFactory(token_settings),
        password_hasher=PasswordHasher(rounds=get_settings().password_hash_rounds),
    )


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    gateway: AuthenticationGateway = Depends(get_authentication_gateway),
) -> str:
    """Resolve the caller's user id from the bearer token or reject with 401."""
    result = gateway.identify(credentials.credentials if credentials else None)
    if not result.ok:
        raise ServiceErrorException(result.error)
    return result.value
