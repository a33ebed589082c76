"""
Recovery keys — off-device backup of the identity private key.

A recovery key is 128 random bits shown once to the user as
``RK-XXXX-XXXX-XXXX-XXXX-XXXX-XXXX-XXXX-XXXX``. The backup key is derived
from it with scrypt and a fresh salt, then the private key is sealed with
AES-256-GCM. The server stores only the sealed backup.

The recovery key is normalized (trimmed, uppercased) before it reaches
scrypt on both the encrypt and decrypt side, so users may type it in
any case.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import secrets

from .errors import InvalidRecoveryKey
from .models import RecoveryBackup

logger = logging.getLogger("envsync.recovery")

PREFIX = "RK"
RECOVERY_KEY_BYTES = 16
GROUP_SIZE = 4
SALT_SIZE = 16
IV_SIZE = 12
TAG_SIZE = 16

# Node's crypto.scryptSync defaults; backups made by either client must open.
SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1
DERIVED_KEY_SIZE = 32

_RECOVERY_KEY_RE = re.compile(r"^RK(-[0-9A-F]{4}){8}$")


def generate_recovery_key() -> str:
    """Generate a new recovery key in grouped uppercase hex."""
    digits = secrets.token_hex(RECOVERY_KEY_BYTES).upper()
    groups = [digits[i:i + GROUP_SIZE] for i in range(0, len(digits), GROUP_SIZE)]
    return "-".join([PREFIX, *groups])


def normalize_recovery_key(recovery_key: str) -> str:
    """Canonical form fed to the KDF: surrounding whitespace removed, uppercased."""
    return recovery_key.strip().upper()


def looks_like_recovery_key(recovery_key: str) -> bool:
    """Whether the text has the shape of a recovery key (after normalization)."""
    return bool(_RECOVERY_KEY_RE.match(normalize_recovery_key(recovery_key)))


def _derive(recovery_key: str, salt: bytes) -> bytes:
    from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

    kdf = Scrypt(salt=salt, length=DERIVED_KEY_SIZE, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    return kdf.derive(normalize_recovery_key(recovery_key).encode("utf-8"))


def encrypt_with_recovery_key(private_key: str, recovery_key: str) -> RecoveryBackup:
    """Seal a private key under a recovery key.

    Args:
        private_key: PEM private key to back up.
        recovery_key: The user's recovery key.

    Returns:
        RecoveryBackup with base64 ciphertext, IV, salt and tag.
    """
    from cryptography.hazmat.primitives.ciphers.aead import AESGCM

    salt = secrets.token_bytes(SALT_SIZE)
    iv = secrets.token_bytes(IV_SIZE)
    sealed = AESGCM(_derive(recovery_key, salt)).encrypt(iv, private_key.encode("utf-8"), None)

    def b64(data: bytes) -> str:
        return base64.b64encode(data).decode("ascii")

    return RecoveryBackup(
        ciphertext=b64(sealed[:-TAG_SIZE]),
        iv=b64(iv),
        salt=b64(salt),
        auth_tag=b64(sealed[-TAG_SIZE:]),
    )


def decrypt_with_recovery_key(backup: RecoveryBackup, recovery_key: str) -> str:
    """Open a recovery backup.

    Args:
        backup: Backup as stored on the server.
        recovery_key: Key entered by the user, in any case.

    Returns:
        The PEM private key.

    Raises:
        InvalidRecoveryKey: If the key is wrong or the backup is corrupt.
    """
    from cryptography.exceptions import InvalidTag
    from cryptography.hazmat.primitives.ciphers.aead import AESGCM

    try:
        ciphertext = base64.b64decode(backup.ciphertext, validate=True)
        iv = base64.b64decode(backup.iv, validate=True)
        salt = base64.b64decode(backup.salt, validate=True)
        tag = base64.b64decode(backup.auth_tag, validate=True)
    except (binascii.Error, ValueError):
        logger.debug("Recovery backup contains invalid base64")
        raise InvalidRecoveryKey() from None

    if len(tag) != TAG_SIZE or not 8 <= len(iv) <= 128:
        logger.debug("Recovery backup has unexpected IV or tag length")
        raise InvalidRecoveryKey()

    try:
        plaintext = AESGCM(_derive(recovery_key, salt)).decrypt(iv, ciphertext + tag, None)
    except InvalidTag:
        raise InvalidRecoveryKey() from None

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError:
        raise InvalidRecoveryKey() from None
