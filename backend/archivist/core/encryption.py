"""AES-256-GCM encryption for credentials stored at rest.

Paperless API tokens and AI provider keys are stored encrypted. The key is
derived from ENCRYPTION_KEY with scrypt; values are serialized as
``<iv hex>:<tag hex>:<ciphertext hex>``.
"""

import os
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from archivist.config import get_settings
from archivist.core.exceptions import ConfigurationError
from archivist.core.logging import get_logger

logger = get_logger(__name__)

IV_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32
KEY_SALT = b"salt"


@lru_cache(maxsize=4)
def _derive_key(secret: str) -> bytes:
    """Derive the 32-byte AES key from the configured secret."""
    kdf = Scrypt(salt=KEY_SALT, length=KEY_LENGTH, n=2**14, r=8, p=1)
    return kdf.derive(secret.encode("utf-8"))


def _get_key() -> bytes:
    secret = get_settings().encryption_key
    if not secret:
        raise ConfigurationError("ENCRYPTION_KEY environment variable is not set")
    return _derive_key(secret)


def encrypt(plaintext: str) -> str:
    """Encrypt a secret for storage.

    Args:
        plaintext: Secret value (API token or key)

    Returns:
        ``iv:tag:ciphertext`` as hex strings
    """
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(_get_key()).encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"


def decrypt(encrypted: str) -> str:
    """Decrypt a value produced by :func:`encrypt`.

    Raises:
        ConfigurationError: If the value is malformed or was encrypted
            with a different key
    """
    parts = encrypted.split(":")
    if len(parts) != 3:
        raise ConfigurationError("Invalid encrypted data format")

    try:
        iv, tag, ciphertext = (bytes.fromhex(part) for part in parts)
    except ValueError as e:
        raise ConfigurationError("Invalid encrypted data format") from e

    try:
        plaintext = AESGCM(_get_key()).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as e:
        logger.error("credential_decryption_failed")
        raise ConfigurationError("Failed to decrypt stored credential") from e

    return plaintext.decode("utf-8")
