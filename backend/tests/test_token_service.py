from datetime import timedelta

import pytest
from sqlalchemy import func, select

from chatbridge.core.exceptions import ConfigurationInvalidError, InvalidRefreshTokenError
from chatbridge.models.security import RefreshToken
from chatbridge.services.token_service import TokenService, as_utc, utc_now


def _count(db, user=None):
    query = select(func.count()).select_from(RefreshToken)
    if user is not None:
        query = query.where(RefreshToken.user_id == user.id)
    return db.execute(query).scalar_one()


@pytest.fixture
def alice(db, service, make_registration):
    return service.register(db, make_registration())


@pytest.fixture
def bob(db, service, make_registration):
    return service.register(db, make_registration(username="bob", email="bob@x.com"))


def test_generate_sets_expiry_from_lifetime(db, tokens, alice):
    now = utc_now()
    record = tokens.generate(db, alice, now=now)
    assert len(record.token) >= 64
    assert as_utc(record.expiry_date) == now + timedelta(days=7)
    assert tokens.validate(db, record.token).user_id == alice.id


def test_generate_keeps_other_sessions(db, tokens, alice):
    first = tokens.generate(db, alice)
    second = tokens.generate(db, alice)
    assert first.token != second.token
    assert _count(db, alice) == 2


def test_validate_unknown_token(db, tokens, alice):
    tokens.generate(db, alice)
    with pytest.raises(InvalidRefreshTokenError):
        tokens.validate(db, "no-such-token")


def test_is_expired_at_the_boundary(db, tokens, alice):
    now = utc_now()
    record = tokens.generate(db, alice, now=now)
    assert not tokens.is_expired(record, now + timedelta(days=7) - timedelta(seconds=1))
    assert tokens.is_expired(record, now + timedelta(days=7))


def test_rotate_leaves_exactly_one_new_token(db, tokens, alice):
    old = tokens.generate(db, alice).token
    tokens.generate(db, alice)

    new = tokens.rotate(db, old, alice)

    assert new.token != old
    assert _count(db, alice) == 1
    assert tokens.validate(db, new.token).user_id == alice.id
    with pytest.raises(InvalidRefreshTokenError):
        tokens.validate(db, old)


def test_rotating_a_consumed_token_fails(db, tokens, alice):
    old = tokens.generate(db, alice).token
    current = tokens.rotate(db, old, alice)

    with pytest.raises(InvalidRefreshTokenError):
        tokens.rotate(db, old, alice)

    # The successor survives the failed attempt
    assert tokens.validate(db, current.token).user_id == alice.id


def test_rotate_does_not_cross_users(db, tokens, alice, bob):
    alice_token = tokens.generate(db, alice).token
    bob_token = tokens.generate(db, bob).token

    with pytest.raises(InvalidRefreshTokenError):
        tokens.rotate(db, alice_token, bob)

    assert _count(db, alice) == 1
    assert _count(db, bob) == 1
    assert tokens.validate(db, bob_token).user_id == bob.id


def test_revoke_all_is_scoped_and_idempotent(db, tokens, alice, bob):
    tokens.generate(db, alice)
    tokens.generate(db, alice)
    tokens.generate(db, bob)

    assert tokens.revoke_all(db, alice) == 2
    assert tokens.revoke_all(db, alice) == 0
    assert _count(db, alice) == 0
    assert _count(db, bob) == 1


def test_sweep_removes_only_tokens_expired_strictly_before(db, tokens, alice):
    now = utc_now()
    past = tokens.generate(db, alice, now=now - timedelta(days=8)).token
    boundary = tokens.generate(db, alice, now=now - timedelta(days=7)).token
    live = tokens.generate(db, alice, now=now).token

    assert tokens.sweep_expired(db, before=now) == 1

    remaining = set(db.execute(select(RefreshToken.token)).scalars())
    assert past not in remaining
    assert {boundary, live} <= remaining


def test_deleting_user_cascades_to_tokens(db, tokens, service, alice, bob):
    tokens.generate(db, alice)
    tokens.generate(db, bob)

    service.users.delete(db, alice)

    assert _count(db) == 1


@pytest.mark.parametrize("lifetime", [timedelta(0), timedelta(days=-1)])
def test_non_positive_lifetime_refuses_to_build(lifetime):
    with pytest.raises(ConfigurationInvalidError):
        TokenService(lifetime)


def test_sweep_script_uses_its_own_session(monkeypatch, session_factory, tokens, alice):
    import run_token_sweep

    setup = session_factory()
    try:
        tokens.generate(setup, alice, now=utc_now() - timedelta(days=30))
        tokens.generate(setup, alice)
    finally:
        setup.close()

    monkeypatch.setattr(run_token_sweep, "SessionLocal", session_factory)
    run_token_sweep.main()

    check = session_factory()
    try:
        assert _count(check) == 1
    finally:
        check.close()
