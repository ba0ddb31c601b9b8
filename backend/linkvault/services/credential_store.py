"""Persistence boundary for users and refresh tokens."""
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from datetime import datetime
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from linkvault.models.auth import RefreshToken
from linkvault.models.user import User
from linkvault.services.clock import to_timestamp


class EmailAlreadyRegistered(Exception):
    """Raised when the unique email constraint rejects a new user."""


class CredentialStore(Protocol):
    def transaction(self) -> AbstractContextManager[None]: ...

    def get_user(self, user_id: str) -> User | None: ...

    def get_user_by_email(self, email: str) -> User | None: ...

    def add_user(self, user: User) -> User: ...

    def get_refresh_token_by_hash(self, token_hash: str) -> RefreshToken | None: ...

    def add_refresh_token(self, token: RefreshToken) -> RefreshToken: ...

    def revoke_refresh_token(self, token_id: str, revoked_at: datetime) -> bool: ...


class SqlAlchemyCredentialStore:
    """CredentialStore backed by a SQLAlchemy session.

    Writes are flushed but only become visible once the surrounding
    ``transaction()`` block commits.
    """

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Commit on success, roll back on any exception (cancellation included)."""
        try:
            yield
            self.db.commit()
        except BaseException:
            self.db.rollback()
            raise

    def get_user(self, user_id: str) -> User | None:
        return self.db.get(User, user_id)

    def get_user_by_email(self, email: str) -> User | None:
        return self.db.scalars(select(User).where(User.email == email)).first()

    def add_user(self, user: User) -> User:
        self.db.add(user)
        try:
            self.db.flush()
        except IntegrityError as exc:
            raise EmailAlreadyRegistered(user.email) from exc
        return user

    def get_refresh_token_by_hash(self, token_hash: str) -> RefreshToken | None:
        return self.db.scalars(
            select(RefreshToken).where(RefreshToken.token_hash == token_hash)
        ).first()

    def add_refresh_token(self, token: RefreshToken) -> RefreshToken:
        self.db.add(token)
        self.db.flush()
        return token

    def revoke_refresh_token(self, token_id: str, revoked_at: datetime) -> bool:
        """Revoke a token only if it is still unrevoked.

        Returns True for exactly one caller per token; concurrent callers racing
        on the same row get False.
        """
        result = self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.id == token_id, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=to_timestamp(revoked_at))
        )
        return result.rowcount == 1
