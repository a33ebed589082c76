"""
Symmetric cipher — AES-256-GCM for secret values.

Every call to ``encrypt_symmetric`` draws a fresh 96-bit IV from the OS
CSPRNG; callers cannot supply one.

Wire format (all base64):
    ciphertext  AES-GCM output without the tag
    iv          12 bytes (16-byte IVs from older clients still decrypt)
    auth_tag    16 bytes
"""

from __future__ import annotations

import base64
import binascii
import logging
import secrets

from .errors import AuthenticationFailure, MalformedInputError
from .models import EncryptedPayload

logger = logging.getLogger("envsync.symmetric")

KEY_SIZE = 32
IV_SIZE = 12
TAG_SIZE = 16


def generate_project_key() -> bytes:
    """Generate a fresh 256-bit project key."""
    return secrets.token_bytes(KEY_SIZE)


def key_to_hex(key: bytes) -> str:
    """Hex form of a project key, as it is wrapped for members."""
    return key.hex()


def key_from_hex(text: str) -> bytes:
    """Parse the hex form of a project key.

    Raises:
        MalformedInputError: If ``text`` is not 64 hex digits.
    """
    try:
        key = bytes.fromhex(text.strip())
    except ValueError:
        raise MalformedInputError() from None
    if len(key) != KEY_SIZE:
        raise MalformedInputError()
    return key


def _b64decode(value: str, field: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError, TypeError):
        logger.debug("Invalid base64 in %s", field)
        raise MalformedInputError() from None


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _check_key(key: bytes) -> None:
    if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_SIZE:
        logger.debug("Symmetric key must be %d bytes", KEY_SIZE)
        raise MalformedInputError("Encryption key is invalid.")


def encrypt_symmetric(plaintext: str, key: bytes) -> EncryptedPayload:
    """Encrypt a string with AES-256-GCM under ``key``.

    Args:
        plaintext: Text to encrypt (UTF-8 encoded before encryption).
        key: 32-byte symmetric key.

    Returns:
        EncryptedPayload with base64 ciphertext, IV and tag.
    """
    from cryptography.hazmat.primitives.ciphers.aead import AESGCM

    _check_key(key)
    iv = secrets.token_bytes(IV_SIZE)
    sealed = AESGCM(bytes(key)).encrypt(iv, plaintext.encode("utf-8"), None)
    return EncryptedPayload(
        ciphertext=_b64encode(sealed[:-TAG_SIZE]),
        iv=_b64encode(iv),
        auth_tag=_b64encode(sealed[-TAG_SIZE:]),
    )


def decrypt_symmetric(payload: EncryptedPayload, key: bytes) -> str:
    """Decrypt and authenticate an AES-256-GCM payload.

    Args:
        payload: Ciphertext, IV and tag as produced by ``encrypt_symmetric``.
        key: The 32-byte key used for encryption.

    Returns:
        The original plaintext.

    Raises:
        AuthenticationFailure: If the tag does not verify.
        MalformedInputError: If any field cannot be decoded.
    """
    from cryptography.exceptions import InvalidTag
    from cryptography.hazmat.primitives.ciphers.aead import AESGCM

    _check_key(key)
    ciphertext = _b64decode(payload.ciphertext, "ciphertext")
    iv = _b64decode(payload.iv, "iv")
    tag = _b64decode(payload.auth_tag, "auth_tag")

    if len(tag) != TAG_SIZE:
        logger.debug("Auth tag has %d bytes, expected %d", len(tag), TAG_SIZE)
        raise MalformedInputError()
    if not 8 <= len(iv) <= 128:
        logger.debug("IV has unsupported length %d", len(iv))
        raise MalformedInputError()

    try:
        plaintext = AESGCM(bytes(key)).decrypt(iv, ciphertext + tag, None)
    except InvalidTag:
        logger.debug("AES-GCM tag verification failed")
        raise AuthenticationFailure() from None

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError:
        raise MalformedInputError() from None
