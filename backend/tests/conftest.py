"""Pytest configuration and fixtures for testing."""
from datetime import datetime, timedelta, timezone
import os
import sys

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

TEST_SECRET_KEY = "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"

os.environ.setdefault("SECRET_KEY", TEST_SECRET_KEY)
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("PASSWORD_HASH_ROUNDS", "4")

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from linkvault import models  # noqa: E402,F401
from linkvault.api.ratelimit import limiter  # noqa: E402
from linkvault.config import TokenSettings  # noqa: E402
from linkvault.database import Base  # noqa: E402
from linkvault.services.credential_store import SqlAlchemyCredentialStore  # noqa: E402
from linkvault.services.hashing import PasswordHasher  # noqa: E402
from linkvault.services.sessions import SessionService  # noqa: E402
from linkvault.services.tokens import AccessTokenIssuer, RefreshTokenFactory  # noqa: E402


class FixedClock:
    """Clock test double that only moves when told to."""

    def __init__(self, current: datetime | None = None):
        self.current = current or datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def token_settings():
    return TokenSettings(secret_key=TEST_SECRET_KEY)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def db_engine():
    """In-memory SQLite shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()

    yield session

    session.close()


@pytest.fixture
def store(db_session):
    return SqlAlchemyCredentialStore(db_session)


def build_session_service(store, token_settings, clock) -> SessionService:
    return SessionService(
        store=store,
        access_tokens=AccessTokenIssuer(token_settings, clock=clock),
        refresh_tokens=RefreshTokenFactory(token_settings, clock=clock),
        password_hasher=PasswordHasher(rounds=4),
        clock=clock,
    )


@pytest.fixture
def session_service(store, token_settings, clock):
    return build_session_service(store, token_settings, clock)


@pytest.fixture
def make_session_service(token_settings, clock):
    """Build extra services, e.g. over a second database session."""

    def _make(store):
        return build_session_service(store, token_settings, clock)

    return _make


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Every test starts with an empty login window."""
    limiter.reset()

    yield

    limiter.reset()
