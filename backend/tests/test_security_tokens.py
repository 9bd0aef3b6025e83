from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from chatbridge.core.exceptions import ConfigurationInvalidError, TokenInvalidError
from chatbridge.core.security import (
    AccessTokenIssuer,
    get_password_hash,
    permissions_for,
    verify_password,
)

SECRET = "s" * 32


def _issuer(minutes=15, secret=SECRET):
    return AccessTokenIssuer(secret, algorithm="HS256", lifetime=timedelta(minutes=minutes))


def test_access_token_round_trip():
    issuer = _issuer()
    token = issuer.issue("alice", ["USER"])
    claims = issuer.verify(token)
    assert claims.username == "alice"
    assert claims.roles == ["USER"]
    assert claims.expires_at - claims.issued_at == timedelta(minutes=15)


def test_access_token_carries_type_and_unique_id():
    issuer = _issuer()
    first = jwt.get_unverified_claims(issuer.issue("alice", ["USER"]))
    second = jwt.get_unverified_claims(issuer.issue("alice", ["USER"]))
    assert first["typ"] == "access"
    assert first["jti"] != second["jti"]


def test_tampered_token_is_rejected():
    issuer = _issuer()
    token = issuer.issue("alice", ["USER"])
    header, payload, signature = token.split(".")
    forged = jwt.encode({"sub": "mallory", "roles": ["ADMIN"], "typ": "access"}, "x" * 32, algorithm="HS256")
    with pytest.raises(TokenInvalidError):
        issuer.verify(".".join([header, forged.split(".")[1], signature]))


def test_token_signed_with_other_secret_is_rejected():
    token = _issuer(secret="o" * 40).issue("alice", ["USER"])
    with pytest.raises(TokenInvalidError):
        _issuer().verify(token)


def test_expired_token_fails_like_any_invalid_token():
    issuer = _issuer()
    issued = datetime.now(timezone.utc) - timedelta(hours=1)
    token = issuer.issue("alice", ["USER"], now=issued)
    with pytest.raises(TokenInvalidError) as expired:
        issuer.verify(token)
    with pytest.raises(TokenInvalidError) as garbage:
        issuer.verify("not-a-token")
    assert expired.value.message == garbage.value.message
    assert expired.value.status_code == 401


def test_expired_token_accepted_when_expiry_check_is_skipped():
    issuer = _issuer()
    token = issuer.issue("alice", ["USER"], now=datetime.now(timezone.utc) - timedelta(hours=1))
    assert issuer.verify(token, allow_expired=True).username == "alice"


def test_non_access_token_is_rejected():
    token = jwt.encode(
        {"sub": "alice", "roles": ["USER"], "typ": "refresh", "iat": 0, "exp": 4102444800},
        SECRET,
        algorithm="HS256",
    )
    with pytest.raises(TokenInvalidError):
        _issuer().verify(token)


@pytest.mark.parametrize("secret", ["", "short", "x" * 31])
def test_short_secret_refuses_to_build(secret):
    with pytest.raises(ConfigurationInvalidError):
        AccessTokenIssuer(secret, lifetime=timedelta(minutes=5))


@pytest.mark.parametrize("lifetime", [timedelta(0), timedelta(seconds=-1), None])
def test_non_positive_lifetime_refuses_to_build(lifetime):
    with pytest.raises(ConfigurationInvalidError):
        AccessTokenIssuer(SECRET, lifetime=lifetime)


def test_password_hash_verifies_only_the_original():
    hashed = get_password_hash("P@ssw0rd1")
    assert hashed != "P@ssw0rd1"
    assert verify_password("P@ssw0rd1", hashed)
    assert not verify_password("P@ssw0rd2", hashed)


def test_role_permission_table():
    assert "users:manage" not in permissions_for(["USER"])
    assert {"ROLE_ADMIN", "users:manage", "chat:use"} <= permissions_for(["USER", "ADMIN"])
    assert permissions_for(["UNKNOWN"]) == frozenset()
