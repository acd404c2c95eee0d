"""
Credential vault for connection secrets at rest.

Secrets are encrypted with AES-256-CBC. The key is derived from the
process-wide ENCRYPTION_KEY passphrase with scrypt and a fixed salt, which
keeps ciphertexts written by earlier deployments readable. Each call to
``encrypt`` uses a fresh random IV and returns ``"<iv hex>:<ciphertext hex>"``.
"""

import logging
import os
from typing import Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from core.config import settings
from core.exceptions import ConfigurationError, DecryptionError

logger = logging.getLogger(__name__)

_SALT = b"salt"
_KEY_LENGTH = 32
_IV_LENGTH = 16


class CredentialVault:
    """
    Symmetric encrypt/decrypt of connection passwords.

    The derived key is cached for the lifetime of the vault, so build one
    vault per process rather than per call.
    """

    def __init__(self, passphrase: Optional[str]):
        if not passphrase:
            raise ConfigurationError(
                "ENCRYPTION_KEY is not set; refusing to store credentials without it",
                context={"setting": "ENCRYPTION_KEY"}
            )
        kdf = Scrypt(salt=_SALT, length=_KEY_LENGTH, n=2**14, r=8, p=1)
        self._key = kdf.derive(passphrase.encode("utf-8"))

    @classmethod
    def from_settings(cls) -> "CredentialVault":
        return cls(settings.ENCRYPTION_KEY)

    def encrypt(self, secret: str) -> str:
        iv = os.urandom(_IV_LENGTH)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(secret.encode("utf-8")) + padder.finalize()

        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a value produced by ``encrypt``.

        Raises:
            DecryptionError: Malformed input, or a key that no longer matches
        """
        if not ciphertext or ":" not in ciphertext:
            raise DecryptionError("Encrypted value is malformed: missing IV separator")

        iv_hex, _, body_hex = ciphertext.partition(":")
        try:
            iv = bytes.fromhex(iv_hex)
            body = bytes.fromhex(body_hex)
        except ValueError as e:
            raise DecryptionError("Encrypted value is malformed: invalid hex", original_exception=e)

        if len(iv) != _IV_LENGTH:
            raise DecryptionError(
                "Encrypted value is malformed: bad IV length",
                context={"iv_length": len(iv)}
            )
        if not body or len(body) % (algorithms.AES.block_size // 8):
            raise DecryptionError("Encrypted value is malformed: bad ciphertext length")

        decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        try:
            padded = decryptor.update(body) + decryptor.finalize()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            logger.warning("Credential decryption failed; ENCRYPTION_KEY may have changed")
            raise DecryptionError(
                "Unable to decrypt credential; the encryption key may have changed",
                original_exception=e
            )
