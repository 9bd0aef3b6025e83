import pytest
from sqlalchemy import text

from chatbridge.core.encryption import SecretEncryptor, secret_encryptor
from chatbridge.core.exceptions import ConfigurationInvalidError, SecretEncryptionError

SALT = "deadbeefcafebabe"


def _encryptor(key="unit-test-key", salt=SALT):
    return SecretEncryptor(key, salt, iterations=1000)


def test_round_trip_and_ciphertext_hides_plaintext():
    enc = _encryptor()
    ciphertext = enc.encrypt("sk-abc")
    assert ciphertext != "sk-abc"
    assert "sk-abc" not in ciphertext
    assert enc.decrypt(ciphertext) == "sk-abc"


def test_same_plaintext_encrypts_differently_each_time():
    enc = _encryptor()
    assert enc.encrypt("sk-abc") != enc.encrypt("sk-abc")


@pytest.mark.parametrize("value", [None, ""])
def test_empty_values_bypass_the_cipher(value):
    enc = _encryptor()
    assert enc.encrypt(value) == value
    assert enc.decrypt(value) == value


def test_tampered_ciphertext_is_an_error():
    enc = _encryptor()
    ciphertext = enc.encrypt("sk-abc")
    flipped = ciphertext[:-1] + ("0" if ciphertext[-1] != "0" else "1")
    with pytest.raises(SecretEncryptionError):
        enc.decrypt(flipped)


def test_other_key_cannot_decrypt():
    ciphertext = _encryptor().encrypt("sk-abc")
    with pytest.raises(SecretEncryptionError):
        _encryptor(key="another-key").decrypt(ciphertext)


@pytest.mark.parametrize("garbage", ["zz-not-hex", "abcd"])
def test_non_ciphertext_is_an_error(garbage):
    with pytest.raises(SecretEncryptionError):
        _encryptor().decrypt(garbage)


@pytest.mark.parametrize("key,salt", [("", SALT), ("   ", SALT), ("k", ""), ("k", "not-hex")])
def test_bad_key_material_refuses_to_build(key, salt):
    with pytest.raises(ConfigurationInvalidError):
        SecretEncryptor(key, salt)


def test_api_key_column_is_encrypted_at_rest(db, service, make_registration):
    user = service.register(db, make_registration())

    raw = db.execute(text("SELECT api_key FROM users WHERE id = :id"), {"id": user.id}).scalar_one()
    assert raw != "sk-abc"
    assert secret_encryptor.decrypt(raw) == "sk-abc"

    db.expire_all()
    assert service.current_user(db, "alice").api_key == "sk-abc"
