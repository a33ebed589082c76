"""
Secret codec — plaintext entries to and from their encrypted-at-rest form.

Decoding is per entry: a row that fails to decrypt becomes a sentinel
``SecretEntry(failed=True)`` and the rest of the environment still
decodes. The sentinel's value never equals a real local value, so a
later push overwrites the broken row.
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

from .errors import CryptoError
from .models import EncryptedSecret, SecretEntry
from .symmetric import decrypt_symmetric, encrypt_symmetric

logger = logging.getLogger("envsync.codec")

DECRYPTION_FAILED = "__DECRYPTION_FAILED__"


def failure_marker() -> SecretEntry:
    """The sentinel used for a row that could not be decrypted."""
    return SecretEntry(value=DECRYPTION_FAILED, comment="", failed=True)


def encode_secrets(
    local_entries: Mapping[str, SecretEntry],
    keys_to_encode: Iterable[str],
    project_key: bytes,
) -> list[EncryptedSecret]:
    """Encrypt the selected local entries, each under its own fresh IV.

    Args:
        local_entries: Plaintext entries keyed by variable name.
        keys_to_encode: Which names to encrypt (e.g. a diff's creates).
        project_key: The unwrapped project key.

    Returns:
        EncryptedSecret list in the order of ``keys_to_encode``.
    """
    encoded = []
    for key in keys_to_encode:
        entry = local_entries[key]
        payload = encrypt_symmetric(entry.value, project_key)
        encoded.append(EncryptedSecret(
            key=key,
            encrypted_value=payload.ciphertext,
            iv=payload.iv,
            auth_tag=payload.auth_tag,
            comment=entry.comment,
        ))
    return encoded


def decode_secrets(
    encrypted_secrets: Iterable[EncryptedSecret],
    project_key: bytes,
) -> dict[str, SecretEntry]:
    """Decrypt a list of server rows into plaintext entries.

    Returns:
        Entries keyed by variable name; rows that failed carry the
        sentinel from ``failure_marker()``.
    """
    decoded: dict[str, SecretEntry] = {}
    for secret in encrypted_secrets:
        try:
            value = decrypt_symmetric(secret.payload, project_key)
        except CryptoError as exc:
            logger.warning("Could not decrypt %s: %s", secret.key, type(exc).__name__)
            decoded[secret.key] = failure_marker()
            continue
        decoded[secret.key] = SecretEntry(value=value, comment=secret.comment)
    return decoded


def failed_keys(decoded: Mapping[str, SecretEntry]) -> list[str]:
    """Names of entries that hold the failure sentinel."""
    return [key for key, entry in decoded.items() if entry.failed]
