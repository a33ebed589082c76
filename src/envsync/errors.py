"""
Exception hierarchy for the encryption and sync engine.

Cryptographic failures share one generic message so callers cannot tell
a wrong key from tampered ciphertext. Details go to debug logs only.
"""

from __future__ import annotations

from typing import Optional


class EnvSyncError(Exception):
    """Base class for every error raised by envsync."""

    retryable = False


class CryptoError(EnvSyncError):
    """A cryptographic operation failed."""

    default_message = "Unable to decrypt data."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)


class AuthenticationFailure(CryptoError):
    """AES-GCM tag verification failed (tampering or wrong key)."""


class DecryptionFailure(CryptoError):
    """RSA decryption failed (wrong private key or corrupt ciphertext)."""


class MalformedInputError(CryptoError):
    """Encoded input could not be parsed (bad base64, lengths, PEM)."""

    default_message = "Encrypted data is malformed."


class InvalidRecoveryKey(EnvSyncError):
    """The recovery key did not unlock the identity backup."""

    retryable = True

    def __init__(self, message: str = "Invalid recovery key.") -> None:
        super().__init__(message)


class InconsistentIdentityState(EnvSyncError):
    """Local and server key stores disagree. Needs manual intervention."""


class IdentityMissing(EnvSyncError):
    """The operation needs a local keypair and none is configured."""

    def __init__(self, message: str = "No local identity. Run 'envsync keys ensure' first.") -> None:
        super().__init__(message)


class MissingPublicKey(EnvSyncError):
    """The target user has not registered a public key yet."""

    def __init__(self, target: str) -> None:
        self.target = target
        super().__init__(f"{target} has no registered public key yet")


class ProjectKeyExists(EnvSyncError):
    """A project key has already been initialized for the project."""


class ProjectKeyMissing(EnvSyncError):
    """The caller holds no wrapped project key for the project."""


class NetworkFailure(EnvSyncError):
    """The remote store could not be reached (connection error or timeout)."""

    retryable = True


class RemoteError(EnvSyncError):
    """The remote store answered with an error status.

    Attributes:
        status_code: HTTP status returned by the server.
    """

    def __init__(self, message: str, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(message)


class InvalidVariableNames(EnvSyncError):
    """A local file contains variable names the server will not accept."""

    def __init__(self, keys: list[str]) -> None:
        self.keys = keys
        super().__init__(f"Invalid variable names: {', '.join(keys)}")


class EnvFileError(EnvSyncError):
    """A local .env file exists but could not be read or decoded."""

    def __init__(self, path, reason: str) -> None:
        self.path = path
        super().__init__(f"Cannot read {path}: {reason}")
