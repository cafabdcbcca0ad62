"""
AES-256-GCM encryption for GitHub tokens stored in the credentials table.

PBKDF2 key derivation + AES-GCM encryption:
- Salt: 'repodesk-credentials' (fixed)
- Iterations: 100000
- IV: 12 bytes (random)
- Format: base64(iv + ciphertext)
"""

import os
import base64
import logging
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives import hashes

logger = logging.getLogger(__name__)

SALT = b"repodesk-credentials"
ITERATIONS = 100000
KEY_LENGTH = 32  # 256 bits
IV_LENGTH = 12


def _get_encryption_secret() -> str:
    """Get encryption secret from environment variable."""
    secret = os.getenv("ENCRYPTION_SECRET")
    if not secret:
        raise ValueError(
            "ENCRYPTION_SECRET is not set. Generate one with: openssl rand -base64 32"
        )
    if len(secret) < 32:
        raise ValueError("ENCRYPTION_SECRET must be at least 32 characters")
    return secret


@lru_cache(maxsize=4)
def _derive_key(secret: str) -> bytes:
    """Derive a 256-bit AES key from the first 32 bytes of the secret."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=SALT,
        iterations=ITERATIONS,
    )
    return kdf.derive(secret.encode("utf-8")[:32])


def encrypt(plaintext: str) -> str:
    """
    Encrypt a token using AES-256-GCM.

    Returns:
        Base64-encoded string containing iv + ciphertext
    """
    if not plaintext:
        return ""

    aesgcm = AESGCM(_derive_key(_get_encryption_secret()))
    iv = os.urandom(IV_LENGTH)
    ciphertext = aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
    return base64.b64encode(iv + ciphertext).decode("utf-8")


def decrypt(encrypted_data: str) -> str:
    """
    Decrypt a value produced by encrypt().

    Raises:
        ValueError: wrong secret or corrupted data
    """
    if not encrypted_data:
        return ""

    try:
        combined = base64.b64decode(encrypted_data)
        aesgcm = AESGCM(_derive_key(_get_encryption_secret()))
        plaintext = aesgcm.decrypt(combined[:IV_LENGTH], combined[IV_LENGTH:], None)
    except (InvalidTag, ValueError) as e:
        logger.error(f"Decryption failed: {e}")
        raise ValueError("Decryption failed") from e

    return plaintext.decode("utf-8")
