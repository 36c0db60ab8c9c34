"""Encryption utilities for stored GitLab access tokens.

Tokens are encrypted with AES-256-GCM (AEAD cipher):
- The key is derived from a configured passphrase with scrypt and a fixed salt,
  so the same passphrase yields the same key across process restarts
- Each encryption uses a fresh random 16-byte IV
- Store: "<ciphertext hex>:<auth tag hex>" plus the IV hex in a separate field

The passphrase must be configured explicitly; there is no built-in default.
"""

import logging
import os
from typing import Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
IV_LENGTH = 16
TAG_LENGTH = 16

# scrypt cost parameters; changing any of these invalidates every stored token
KDF_SALT = b"salt"
KDF_N = 2**14
KDF_R = 8
KDF_P = 1


class CredentialError(Exception):
    """Base class for credential vault failures."""

    pass


class EncryptionError(CredentialError):
    """Raised when encryption/decryption fails (tampering, wrong key or IV)."""

    pass


class VaultNotConfiguredError(CredentialError):
    """Raised when no encryption passphrase has been configured."""

    pass


def derive_key(passphrase: str) -> bytes:
    """Derive the 32-byte AES key from a passphrase.

    Args:
        passphrase: Configured secret passphrase

    Returns:
        32-byte key
    """
    kdf = Scrypt(salt=KDF_SALT, length=KEY_LENGTH, n=KDF_N, r=KDF_R, p=KDF_P)
    return kdf.derive(passphrase.encode("utf-8"))


class CredentialVault:
    """Encrypts and decrypts repository access tokens.

    Example:
        vault = CredentialVault(passphrase)
        encrypted, iv = vault.encrypt("glpat-...")
        token = vault.decrypt(encrypted, iv)
    """

    def __init__(self, passphrase: str):
        if not passphrase:
            raise VaultNotConfiguredError(
                "Token encryption passphrase is not configured. "
                "Set the TOKEN_ENCRYPTION_KEY environment variable."
            )
        self._aesgcm = AESGCM(derive_key(passphrase))

    @classmethod
    def from_settings(cls, settings=None) -> "CredentialVault":
        """Build a vault from application settings.

        Raises:
            VaultNotConfiguredError: If settings.token_encryption_key is unset
        """
        if settings is None:
            from gitlab_kb_refresh.core.config import settings

        secret = settings.token_encryption_key
        passphrase = secret.get_secret_value() if secret is not None else ""
        return cls(passphrase)

    def encrypt(self, plaintext: str) -> Tuple[str, str]:
        """Encrypt a token.

        Args:
            plaintext: Token to encrypt

        Returns:
            Tuple of ("<ciphertext hex>:<auth tag hex>", "<iv hex>")

        Raises:
            EncryptionError: If encryption fails
        """
        try:
            iv = os.urandom(IV_LENGTH)
            sealed = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        except Exception as e:
            logger.error(f"Failed to encrypt token: {e}")
            raise EncryptionError(f"Encryption failed: {e}") from e

        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return f"{ciphertext.hex()}:{tag.hex()}", iv.hex()

    def decrypt(self, ciphertext_hex: str, iv_hex: str) -> str:
        """Decrypt a token produced by encrypt().

        Args:
            ciphertext_hex: "<ciphertext hex>:<auth tag hex>"
            iv_hex: IV hex string stored alongside the ciphertext

        Returns:
            Decrypted token

        Raises:
            EncryptionError: If the data is malformed or fails authentication
        """
        cipher_part, sep, tag_part = (ciphertext_hex or "").partition(":")
        if not sep or not tag_part:
            raise EncryptionError("Decryption failed: missing authentication tag")

        try:
            ciphertext = bytes.fromhex(cipher_part)
            tag = bytes.fromhex(tag_part)
            iv = bytes.fromhex(iv_hex or "")
        except ValueError as e:
            raise EncryptionError(f"Decryption failed: malformed hex data ({e})") from e

        if len(tag) != TAG_LENGTH:
            raise EncryptionError(
                f"Decryption failed: auth tag must be {TAG_LENGTH} bytes, got {len(tag)}"
            )
        if not iv:
            raise EncryptionError("Decryption failed: missing IV")

        try:
            plaintext = self._aesgcm.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            logger.error("Failed to decrypt token: integrity check failed")
            raise EncryptionError("Decryption failed: integrity check failed") from e
        except ValueError as e:
            raise EncryptionError(f"Decryption failed: {e}") from e

        return plaintext.decode("utf-8")
