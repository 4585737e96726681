"""
Vault Crypto Core — Key derivation, encryption/decryption, and serialization.

- Key derivation: PBKDF2-HMAC-SHA256(password, salt) → 256-bit key
- Payload encryption: AES-256-GCM → base64([nonce 12B][ciphertext + tag 16B])

The AEAD tag is the only password check: there is no stored password hash,
a wrong key simply fails tag verification.

Security Note:
    Never log plaintext, ciphertext or key values.
    Nonces are random 96-bit and generated per call; collision probability
    is negligible under normal usage.
"""
import os
import base64
import binascii
import logging
from typing import Any

import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .exceptions import AuthenticationFailed

logger = logging.getLogger("docvault.vault")

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16  # 128-bit GCM tag
KEY_LENGTH = 32  # AES-256
PBKDF2_ITERATIONS = 230_000


# ---------------------------------------------------------------------------
# Encoding helpers
# ---------------------------------------------------------------------------

def b64encode(data: bytes) -> str:
    """Encode bytes as standard base64 text."""
    return base64.b64encode(data).decode("ascii")


def b64decode(text: str) -> bytes:
    """Decode standard base64 text.

    Raises:
        ValueError: If ``text`` is not valid base64.
    """
    try:
        return base64.b64decode(text.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as err:
        raise ValueError(f"Invalid base64 data: {err}") from err


def generate_salt(length: int = 16) -> bytes:
    """Generate a cryptographically random salt."""
    return os.urandom(length)


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(
    password: str,
    salt: bytes,
    iterations: int = PBKDF2_ITERATIONS,
) -> bytes:
    """Derive a 32-byte encryption key using PBKDF2-HMAC-SHA256.

    Deterministic: the same password and salt always yield the same key.

    Args:
        password: User password (UTF-8 encoded before stretching).
        salt: Per-vault random salt.
        iterations: PBKDF2 iteration count.

    Returns:
        32-byte derived key.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


# ---------------------------------------------------------------------------
# Payload encryption
# ---------------------------------------------------------------------------

def encrypt(plaintext: bytes, key: bytes) -> str:
    """Encrypt plaintext with AES-256-GCM under a fresh random nonce.

    Format: base64([nonce 12B][encrypted_payload + GCM_tag 16B])

    Args:
        plaintext: Data to encrypt.
        key: 32-byte key from ``derive_key``.

    Returns:
        Portable base64 ciphertext blob.
    """
    nonce = os.urandom(NONCE_SIZE)
    ct = AESGCM(key).encrypt(nonce, plaintext, None)
    return b64encode(nonce + ct)


def decrypt(blob: str, key: bytes) -> bytes:
    """Decrypt a base64 ciphertext blob produced by ``encrypt``.

    Args:
        blob: base64([nonce 12B][payload+tag]).
        key: 32-byte key from ``derive_key``.

    Returns:
        Decrypted plaintext bytes.

    Raises:
        AuthenticationFailed: If the blob is malformed or the tag does not
            verify (wrong key or tampered data).
    """
    try:
        raw = b64decode(blob)
    except ValueError as err:
        raise AuthenticationFailed("Ciphertext is not valid base64.") from err
    _min = NONCE_SIZE + TAG_SIZE
    if len(raw) < _min:
        raise AuthenticationFailed(
            f"Ciphertext too short: {len(raw)} bytes (minimum {_min})"
        )
    nonce = raw[:NONCE_SIZE]
    ct = raw[NONCE_SIZE:]
    try:
        return AESGCM(key).decrypt(nonce, ct, None)
    except InvalidTag as err:
        raise AuthenticationFailed() from err


# ---------------------------------------------------------------------------
# Value serialization
# ---------------------------------------------------------------------------

def serialize_value(value: Any) -> bytes:
    """Serialize a JSON-compatible value to compact bytes.

    Args:
        value: dict/list/primitive value to serialize.

    Returns:
        orjson-encoded bytes.
    """
    return orjson.dumps(value)


def deserialize_value(data: bytes | str) -> Any:
    """Deserialize bytes produced by ``serialize_value``.

    Raises:
        ValueError: If ``data`` is not valid JSON.
    """
    try:
        return orjson.loads(data)
    except orjson.JSONDecodeError as err:
        raise ValueError(f"Invalid JSON data: {err}") from err
