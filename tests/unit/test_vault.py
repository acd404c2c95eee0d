"""
Unit tests for the credential vault
"""

import pytest

from core.exceptions import ConfigurationError, DecryptionError
from core.security import CredentialVault


def test_round_trip(vault):
    ciphertext = vault.encrypt("hunter2")

    assert "hunter2" not in ciphertext
    assert vault.decrypt(ciphertext) == "hunter2"


def test_fresh_iv_per_encryption(vault):
    first = vault.encrypt("same secret")
    second = vault.encrypt("same secret")

    assert first != second
    iv_hex, _, body_hex = first.partition(":")
    assert len(iv_hex) == 32
    assert len(body_hex) % 32 == 0


def test_missing_passphrase_is_configuration_error():
    with pytest.raises(ConfigurationError) as exc_info:
        CredentialVault("")
    assert exc_info.value.context["setting"] == "ENCRYPTION_KEY"


@pytest.mark.parametrize("value", ["", "no-separator", "zz:zz", "00ff:00ff"])
def test_malformed_ciphertext(vault, value):
    with pytest.raises(DecryptionError):
        vault.decrypt(value)


def test_wrong_key_does_not_leak_plaintext(vault):
    ciphertext = vault.encrypt("hunter2")
    other = CredentialVault("a-different-key")

    # wrong-key CBC decryption can occasionally unpad cleanly; it must never return the secret
    try:
        result = other.decrypt(ciphertext)
    except DecryptionError as e:
        assert "hunter2" not in str(e)
    else:
        assert result != "hunter2"
