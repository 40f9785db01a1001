"""
Credential vault for the Capsule API token.

Blob format: base64(salt(16) || nonce(12) || AES-256-GCM ciphertext+tag),
key derived with PBKDF2-HMAC-SHA256.
"""
import base64
import binascii
import logging
import secrets
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from schoolsync.core.config import settings
from schoolsync.integrations.sis.error_handler import AuthenticationFailure


logger = logging.getLogger(__name__)

SALT_BYTES = 16
NONCE_BYTES = 12
KEY_BYTES = 32


def derive_key(passphrase: str, salt: bytes, iterations: Optional[int] = None) -> bytes:
    """Derive a 256-bit AES key from a passphrase."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_BYTES,
        salt=salt,
        iterations=iterations or settings.PBKDF2_ITERATIONS,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def encrypt(plaintext: str, passphrase: str, iterations: Optional[int] = None) -> str:
    """Encrypt plaintext; returns the base64 blob."""
    salt = secrets.token_bytes(SALT_BYTES)
    nonce = secrets.token_bytes(NONCE_BYTES)
    key = derive_key(passphrase, salt, iterations)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    return base64.b64encode(salt + nonce + ciphertext).decode("ascii")


def decrypt(blob: str, passphrase: str, iterations: Optional[int] = None) -> str:
    """
    Decrypt a base64 blob produced by encrypt().

    Raises:
        AuthenticationFailure: wrong passphrase, tampered or malformed blob
    """
    try:
        raw = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError, TypeError):
        raise AuthenticationFailure("Credential blob is not valid base64")

    if len(raw) <= SALT_BYTES + NONCE_BYTES:
        raise AuthenticationFailure("Credential blob is truncated")

    salt = raw[:SALT_BYTES]
    nonce = raw[SALT_BYTES:SALT_BYTES + NONCE_BYTES]
    ciphertext = raw[SALT_BYTES + NONCE_BYTES:]
    key = derive_key(passphrase, salt, iterations)

    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext, None)
    except InvalidTag:
        raise AuthenticationFailure()

    return plaintext.decode("utf-8")


class CredentialVault:
    """Holds the decrypted token in memory for the lifetime of a session."""

    def __init__(self, iterations: Optional[int] = None):
        self.iterations = iterations
        self._session_token: Optional[str] = None

    @property
    def has_session(self) -> bool:
        return self._session_token is not None

    def seal(self, token: str, passphrase: str) -> str:
        """Encrypt a token for storage and keep the plaintext for this session."""
        blob = encrypt(token, passphrase, self.iterations)
        self._session_token = token
        return blob

    def unseal(self, blob: Optional[str], passphrase: Optional[str]) -> Optional[str]:
        """
        Return the session token, decrypting the stored blob if needed.

        Returns None when nothing is stored or no passphrase was supplied
        and no session token is cached.
        """
        if self._session_token:
            return self._session_token
        if not blob or not passphrase:
            return None

        self._session_token = decrypt(blob, passphrase, self.iterations)
        logger.info("Credential unsealed for this session")
        return self._session_token

    def clear_session(self) -> None:
        """Drop the in-memory token."""
        self._session_token = None
