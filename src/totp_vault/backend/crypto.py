"""Key derivation and AES-256-GCM encryption for the vault file."""

from __future__ import annotations

import os

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

SALT_SIZE = 32
KEY_SIZE = 32
_NONCE_SIZE = 12  # 96-bit nonce for AES-GCM


def generate_salt() -> bytes:
    """Return a fresh random salt."""
    return os.urandom(SALT_SIZE)


def derive_key(password: str, salt: bytes, iterations: int = 100_000) -> bytes:
    """Derive a 256-bit key from *password* with PBKDF2-HMAC-SHA256."""
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=KEY_SIZE, salt=salt, iterations=iterations)
    return kdf.derive(password.encode())


def encrypt(data: bytes, key: bytes) -> bytes:
    """Encrypt *data*. Returns nonce + ciphertext."""
    nonce = os.urandom(_NONCE_SIZE)
    return nonce + AESGCM(key).encrypt(nonce, data, None)


def decrypt(blob: bytes, key: bytes) -> bytes:
    """Decrypt a nonce + ciphertext blob.

    Raises ``cryptography.exceptions.InvalidTag`` on a wrong key or
    tampered data.
    """
    nonce, ct = blob[:_NONCE_SIZE], blob[_NONCE_SIZE:]
    return AESGCM(key).decrypt(nonce, ct, None)
