"""Cryptographic utilities for private key storage.

Uses PBKDF2-SHA256 to derive a Fernet key (AES-128-CBC with HMAC) from the
user's password. Only the ciphertext and salt are ever persisted.
"""

import base64
import hashlib
import logging
import os
from dataclasses import dataclass
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from cypherx.errors import InvalidPassword

logger = logging.getLogger(__name__)

SALT_BYTES = 16
DEFAULT_ITERATIONS = 100_000


def derive_key_from_password(
    password: str,
    salt: Optional[bytes] = None,
    iterations: int = DEFAULT_ITERATIONS,
) -> tuple[bytes, bytes]:
    """Derive a Fernet key from a password using PBKDF2.

    Args:
        password: User-provided password
        salt: Optional salt (generated if not provided)
        iterations: PBKDF2 iteration count

    Returns:
        Tuple of (base64-encoded key, salt)
    """
    if salt is None:
        salt = os.urandom(SALT_BYTES)

    key = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode(),
        salt,
        iterations,
        dklen=32,
    )

    # Fernet requires base64-encoded key
    return base64.urlsafe_b64encode(key), salt


@dataclass(frozen=True)
class EncryptedKey:
    ciphertext: str
    salt: str  # hex
    iterations: int


def encrypt_secret(secret: str, password: str, iterations: int = DEFAULT_ITERATIONS) -> EncryptedKey:
    """Encrypt a secret under a password-derived key with a fresh salt."""
    key, salt = derive_key_from_password(password, iterations=iterations)
    token = Fernet(key).encrypt(secret.encode())
    return EncryptedKey(ciphertext=token.decode(), salt=salt.hex(), iterations=iterations)


def decrypt_secret(encrypted: EncryptedKey, password: str) -> str:
    """Decrypt a secret.

    Wrong password, tampered ciphertext and malformed salt all raise the same
    InvalidPassword after the same key-derivation work.

    Raises:
        InvalidPassword: If decryption fails for any reason
    """
    try:
        salt = bytes.fromhex(encrypted.salt)
        salt_ok = len(salt) == SALT_BYTES
    except ValueError:
        salt, salt_ok = b"", False
    if not salt_ok:
        salt = os.urandom(SALT_BYTES)

    iterations = encrypted.iterations if encrypted.iterations > 0 else DEFAULT_ITERATIONS
    key, _ = derive_key_from_password(password, salt, iterations)

    try:
        plaintext = Fernet(key).decrypt(encrypted.ciphertext.encode())
    except (InvalidToken, ValueError, TypeError):
        raise InvalidPassword()

    if not salt_ok:
        raise InvalidPassword()
    return plaintext.decode()
