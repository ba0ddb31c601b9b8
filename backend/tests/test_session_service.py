import logging

from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from linkvault.database import Base
from linkvault.models.auth import RefreshToken
from linkvault.models.user import User
from linkvault.services.credential_store import SqlAlchemyCredentialStore
from linkvault.services.results import ErrorCode, ErrorKind

PASSWORD = "Passw0rd!"


def _register_and_login(service, email="alice@example.com", name="Alice"):
    assert service.register(name, email, PASSWORD).ok
    result = service.login(email, PASSWORD)
    assert result.ok
    return result.value


def test_register_then_login_with_normalized_email(session_service):
    registered = session_service.register("  Alice ", "  Alice@Example.COM ", PASSWORD)

    assert registered.ok
    assert registered.value.email == "alice@example.com"
    assert registered.value.name == "Alice"
    assert not hasattr(registered.value, "password_hash")

    login = session_service.login("ALICE@example.com", PASSWORD)
    assert login.ok
    assert login.value.user == registered.value
    assert login.value.access_token.token
    assert login.value.refresh_token.token


def test_register_rejects_email_differing_only_in_case_or_whitespace(session_service):
    assert session_service.register("Alice", "alice@example.com", PASSWORD).ok

    duplicate = session_service.register("Other", "  ALICE@example.com  ", PASSWORD)

    assert not duplicate.ok
    assert duplicate.error.kind == ErrorKind.CONFLICT
    assert duplicate.error.code == ErrorCode.EMAIL_TAKEN


def test_register_validates_input(session_service):
    result = session_service.register("", "not-an-email", "short")

    assert not result.ok
    assert result.error.kind == ErrorKind.VALIDATION
    assert set(result.error.errors) == {"name", "email", "password"}


def test_register_rejects_password_beyond_bcrypt_limit(session_service):
    result = session_service.register("Alice", "alice@example.com", "é" * 40)

    assert not result.ok
    assert result.error.errors == {"password": ["Password must be at most 72 bytes."]}


def test_register_stores_only_password_hash(session_service, db_session):
    session_service.register("Alice", "alice@example.com", PASSWORD)

    user = db_session.query(User).one()
    assert user.password_hash != PASSWORD
    assert user.password_hash.startswith("$2")


def test_login_failures_are_indistinguishable(session_service):
    session_service.register("Alice", "alice@example.com", PASSWORD)

    wrong_password = session_service.login("alice@example.com", "WrongPass1!")
    unknown_email = session_service.login("nobody@example.com", PASSWORD)

    assert not wrong_password.ok
    assert not unknown_email.ok
    assert wrong_password.error == unknown_email.error
    assert wrong_password.error.kind == ErrorKind.UNAUTHORIZED
    assert wrong_password.error.code == ErrorCode.INVALID_CREDENTIALS


def test_login_requires_email_and_password(session_service):
    result = session_service.login("   ", "")

    assert not result.ok
    assert result.error.kind == ErrorKind.VALIDATION
    assert set(result.error.errors) == {"email", "password"}


def test_login_persists_only_refresh_token_hash(session_service, db_session):
    outcome = _register_and_login(session_service)

    row = db_session.query(RefreshToken).one()
    assert row.token_hash == session_service.token_hasher.digest(outcome.refresh_token.token)
    assert row.token_hash != outcome.refresh_token.token
    assert row.revoked_at is None


def test_alice_rotation_scenario(session_service):
    login = _register_and_login(session_service)
    a1, r1 = login.access_token.token, login.refresh_token.token

    first = session_service.refresh(r1)
    assert first.ok
    a2, r2 = first.value.access_token.token, first.value.refresh_token.token
    assert a2 != a1
    assert r2 != r1

    replay = session_service.refresh(r1)
    assert not replay.ok
    assert replay.error.kind == ErrorKind.UNAUTHORIZED

    assert session_service.refresh(r2).ok


def test_rotation_revokes_old_row_and_links_new_one(session_service, db_session):
    login = _register_and_login(session_service)

    session_service.refresh(login.refresh_token.token)

    rows = db_session.query(RefreshToken).order_by(RefreshToken.created_at, RefreshToken.rotated_from_id).all()
    assert len(rows) == 2
    old = next(row for row in rows if row.rotated_from_id is None)
    new = next(row for row in rows if row.rotated_from_id is not None)
    assert old.revoked_at is not None
    assert new.revoked_at is None
    assert new.rotated_from_id == old.id
    assert new.user_id == old.user_id


def test_refresh_failures_are_indistinguishable(session_service, clock):
    login = _register_and_login(session_service)
    rotated = session_service.refresh(login.refresh_token.token).value.refresh_token.token

    expired_source = session_service.login("alice@example.com", PASSWORD).value.refresh_token.token
    clock.advance(days=7)

    unknown = session_service.refresh("forged-token")
    revoked = session_service.refresh(login.refresh_token.token)
    expired = session_service.refresh(expired_source)
    empty = session_service.refresh("")

    assert unknown.error == revoked.error == expired.error == empty.error
    assert unknown.error.code == ErrorCode.INVALID_REFRESH_TOKEN
    # The rotated token shares the same expiry horizon, so it is expired too.
    assert session_service.refresh(rotated).error == unknown.error


def test_refresh_is_valid_until_just_before_expiry(session_service, clock):
    login = _register_and_login(session_service)

    clock.advance(days=7, seconds=-1)

    assert session_service.refresh(login.refresh_token.token).ok


def test_refresh_issues_access_token_from_current_user_record(session_service, db_session):
    login = _register_and_login(session_service)
    user = db_session.query(User).one()
    user.name = "Alice Renamed"
    db_session.commit()

    refreshed = session_service.refresh(login.refresh_token.token)
    claims = jwt.get_unverified_claims(refreshed.value.access_token.token)
    assert claims["name"] == "Alice Renamed"


def test_logout_revokes_and_is_idempotent(session_service, db_session):
    login = _register_and_login(session_service)
    token = login.refresh_token.token

    assert session_service.logout(token).ok
    assert db_session.query(RefreshToken).one().revoked_at is not None

    refresh = session_service.refresh(token)
    assert not refresh.ok
    assert refresh.error.kind == ErrorKind.UNAUTHORIZED

    assert session_service.logout(token).ok
    assert session_service.logout("never-issued").ok
    assert session_service.logout(None).ok


def test_logout_keeps_other_sessions_alive(session_service):
    first = _register_and_login(session_service)
    second = session_service.login("alice@example.com", PASSWORD).value

    session_service.logout(first.refresh_token.token)

    assert session_service.refresh(second.refresh_token.token).ok


def test_get_profile(session_service):
    profile = session_service.register("Alice", "alice@example.com", PASSWORD).value

    assert session_service.get_profile(profile.id).value == profile
    missing = session_service.get_profile("00000000-0000-0000-0000-000000000000")
    assert missing.error.kind == ErrorKind.UNAUTHORIZED


def test_concurrent_refresh_has_exactly_one_winner(tmp_path, make_session_service):
    engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    winner_db, loser_db = factory(), factory()
    winner = make_session_service(SqlAlchemyCredentialStore(winner_db))
    loser_store = SqlAlchemyCredentialStore(loser_db)
    loser = make_session_service(loser_store)

    token = _register_and_login(winner).refresh_token.token
    outcomes = []

    # The loser reads the still-active row, then the winner rotates it before
    # the loser gets to revoke it.
    real_lookup = loser_store.get_refresh_token_by_hash

    def lookup_then_race(token_hash):
        row = real_lookup(token_hash)
        outcomes.append(winner.refresh(token))
        return row

    loser_store.get_refresh_token_by_hash = lookup_then_race

    losing = loser.refresh(token)

    assert outcomes[0].ok
    assert not losing.ok
    assert losing.error.code == ErrorCode.INVALID_REFRESH_TOKEN
    # One original row plus the single successor; the loser inserted nothing.
    assert winner_db.query(RefreshToken).count() == 2

    winner_db.close()
    loser_db.close()
    engine.dispose()


def test_store_failure_is_wrapped_and_logged(session_service, store, caplog):
    def broken(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    store.get_user_by_email = broken

    with caplog.at_level(logging.ERROR, logger="linkvault.services.sessions"):
        result = session_service.login("alice@example.com", PASSWORD)

    assert not result.ok
    assert result.error.kind == ErrorKind.INTERNAL
    assert result.error.code == ErrorCode.INTERNAL_ERROR
    assert "database is locked" not in result.error.message
    assert "database is locked" in caplog.text


def test_secrets_never_reach_the_logs(session_service, caplog):
    with caplog.at_level(logging.DEBUG, logger="linkvault"):
        login = _register_and_login(session_service)
        refreshed = session_service.refresh(login.refresh_token.token)
        session_service.logout(refreshed.value.refresh_token.token)

    assert PASSWORD not in caplog.text
    assert login.refresh_token.token not in caplog.text
    assert refreshed.value.refresh_token.token not in caplog.text


def test_refresh_for_vanished_owner_still_commits_revocation(session_service, store, db_session):
    login = _register_and_login(session_service)
    store.get_user = lambda user_id: None

    result = session_service.refresh(login.refresh_token.token)

    assert not result.ok
    assert result.error.code == ErrorCode.INVALID_REFRESH_TOKEN
    db_session.expire_all()
    rows = db_session.query(RefreshToken).all()
    assert len(rows) == 1
    assert rows[0].revoked_at is not None
