"""At-rest encryption of the user's AI provider API key.

The key is derived once from the configured key/salt pair with PBKDF2 and
used for AES-256-GCM. Each value gets its own random nonce, so the stored
text is ``hex(nonce || ciphertext || tag)``.

Changing ``ENCRYPTION_KEY`` or ``ENCRYPTION_SALT`` makes every previously
stored value undecryptable; there is no re-encryption step.
"""

from __future__ import annotations

import binascii
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from sqlalchemy.types import Text, TypeDecorator

from chatbridge.config import settings
from chatbridge.core.exceptions import ConfigurationInvalidError, SecretEncryptionError

KEY_SIZE = 32
NONCE_SIZE = 12


def derive_key(secret: str, salt: bytes, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(secret.encode("utf-8"))


class SecretEncryptor:
    """Symmetric encrypt/decrypt of short text secrets."""

    def __init__(self, key: str, salt: str, iterations: int = 100_000) -> None:
        if not key or not key.strip():
            raise ConfigurationInvalidError("Encryption key cannot be blank")
        if not salt or not salt.strip():
            raise ConfigurationInvalidError("Encryption salt cannot be blank")
        try:
            salt_bytes = binascii.unhexlify(salt.strip())
        except (binascii.Error, ValueError) as exc:
            raise ConfigurationInvalidError("Encryption salt must be hex-encoded") from exc
        self._aesgcm = AESGCM(derive_key(key, salt_bytes, iterations))

    def encrypt(self, plaintext: Optional[str]) -> Optional[str]:
        # None and "" pass through without touching the cipher
        if plaintext is None or plaintext == "":
            return plaintext
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        return (nonce + sealed).hex()

    def decrypt(self, ciphertext: Optional[str]) -> Optional[str]:
        if ciphertext is None or ciphertext == "":
            return ciphertext
        try:
            raw = bytes.fromhex(ciphertext)
        except ValueError as exc:
            raise SecretEncryptionError("Stored secret is not valid ciphertext") from exc
        if len(raw) <= NONCE_SIZE:
            raise SecretEncryptionError("Stored secret is not valid ciphertext")
        try:
            plain = self._aesgcm.decrypt(raw[:NONCE_SIZE], raw[NONCE_SIZE:], None)
        except InvalidTag as exc:
            raise SecretEncryptionError("Stored secret failed authentication") from exc
        return plain.decode("utf-8")


class EncryptedText(TypeDecorator):
    """Text column that is encrypted on write and decrypted on read."""

    impl = Text
    cache_ok = True

    def __init__(self, encryptor: SecretEncryptor, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.encryptor = encryptor

    def process_bind_param(self, value, dialect):
        return self.encryptor.encrypt(value)

    def process_result_value(self, value, dialect):
        return self.encryptor.decrypt(value)


secret_encryptor = SecretEncryptor(
    settings.ENCRYPTION_KEY,
    settings.ENCRYPTION_SALT,
    iterations=settings.ENCRYPTION_KDF_ITERATIONS,
)
