"""
Tests for the credential vault and token encryption.
"""

import base64

import pytest

from schoolsync.core.security import CredentialVault, decrypt, encrypt
from schoolsync.integrations.sis.error_handler import AuthenticationFailure, SyncErrorCategory

ITERATIONS = 1000


class TestTokenEncryption:
    """Test passphrase-based encryption of the Capsule token."""

    def test_decrypt_recovers_plaintext(self):
        blob = encrypt("capsule-token-123", "correct horse", ITERATIONS)

        assert decrypt(blob, "correct horse", ITERATIONS) == "capsule-token-123"

    def test_blob_is_salted(self):
        """Test that the same token encrypts differently each time."""
        first = encrypt("token", "pass", ITERATIONS)
        second = encrypt("token", "pass", ITERATIONS)

        assert first != second

    def test_blob_layout(self):
        blob = encrypt("token", "pass", ITERATIONS)
        raw = base64.b64decode(blob)

        # salt(16) + nonce(12) + ciphertext(5) + tag(16)
        assert len(raw) == 16 + 12 + 5 + 16

    def test_wrong_passphrase_fails(self):
        blob = encrypt("token", "right", ITERATIONS)

        with pytest.raises(AuthenticationFailure) as exc_info:
            decrypt(blob, "wrong", ITERATIONS)

        assert exc_info.value.category == SyncErrorCategory.AUTHENTICATION

    def test_tampered_blob_fails(self):
        raw = bytearray(base64.b64decode(encrypt("token", "pass", ITERATIONS)))
        raw[-1] ^= 0x01
        tampered = base64.b64encode(bytes(raw)).decode("ascii")

        with pytest.raises(AuthenticationFailure):
            decrypt(tampered, "pass", ITERATIONS)

    def test_malformed_blob_fails(self):
        with pytest.raises(AuthenticationFailure, match="not valid base64"):
            decrypt("not base64 !!", "pass", ITERATIONS)

    def test_truncated_blob_fails(self):
        short = base64.b64encode(b"x" * 20).decode("ascii")

        with pytest.raises(AuthenticationFailure, match="truncated"):
            decrypt(short, "pass", ITERATIONS)


class TestCredentialVault:
    """Test session caching of the decrypted token."""

    def test_seal_caches_session_token(self):
        vault = CredentialVault(iterations=ITERATIONS)

        blob = vault.seal("token", "pass")

        assert vault.has_session
        assert vault.unseal(blob, None) == "token"

    def test_unseal_without_passphrase_returns_none(self):
        blob = encrypt("token", "pass", ITERATIONS)
        vault = CredentialVault(iterations=ITERATIONS)

        assert vault.unseal(blob, None) is None
        assert vault.unseal(None, "pass") is None

    def test_unseal_decrypts_once(self):
        blob = encrypt("token", "pass", ITERATIONS)
        vault = CredentialVault(iterations=ITERATIONS)

        assert vault.unseal(blob, "pass") == "token"
        assert vault.unseal(blob, None) == "token"

    def test_clear_session(self):
        vault = CredentialVault(iterations=ITERATIONS)
        blob = vault.seal("token", "pass")

        vault.clear_session()

        assert not vault.has_session
        assert vault.unseal(blob, None) is None

    def test_unseal_with_wrong_passphrase_raises(self):
        blob = encrypt("token", "pass", ITERATIONS)
        vault = CredentialVault(iterations=ITERATIONS)

        with pytest.raises(AuthenticationFailure):
            vault.unseal(blob, "nope")
        assert not vault.has_session
