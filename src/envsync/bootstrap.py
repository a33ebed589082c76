"""
Identity bootstrap — make sure this device has a usable keypair.

    HAS_BOTH           -> nothing to do
    HAS_PRIVATE_ONLY   -> adopt the public key registered on the server
    NO_IDENTITY /
    HAS_PUBLIC_ONLY    -> restore the private key from the recovery backup,
                          or, when no backup was ever made, create a new
                          identity and its backup

Reads happen before anything is created, and the local store is only
written once every remote step of a branch has succeeded, so a failed
run can simply be repeated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .asymmetric import generate_keypair, keys_match
from .errors import IdentityMissing, InconsistentIdentityState, InvalidRecoveryKey
from .identity_store import IdentityStore
from .models import RecoveryBackup, StoredIdentity
from .recovery import (
    decrypt_with_recovery_key,
    encrypt_with_recovery_key,
    generate_recovery_key,
)
from .remote import RemoteStore

logger = logging.getLogger("envsync.bootstrap")


class IdentityState(str, Enum):
    """What the local store holds."""

    NO_IDENTITY = "no_identity"
    HAS_PRIVATE_ONLY = "has_private_only"
    HAS_PUBLIC_ONLY = "has_public_only"
    HAS_BOTH = "has_both"


class BootstrapOutcome(str, Enum):
    """How ``IdentityBootstrap.ensure`` reached a complete identity."""

    EXISTING = "existing"
    PUBLIC_KEY_RESTORED = "public_key_restored"
    RECOVERED = "recovered"
    CREATED = "created"


@dataclass
class BootstrapResult:
    """Result of a bootstrap run.

    Attributes:
        outcome: Which path completed the identity.
        identity: The complete local identity.
        recovery_key: Only set for ``CREATED``; show it once, never store it.
    """

    outcome: BootstrapOutcome
    identity: StoredIdentity
    recovery_key: Optional[str] = None


def classify(identity: StoredIdentity) -> IdentityState:
    """Map a stored identity to its bootstrap state."""
    has_public = bool(identity.public_key)
    has_private = bool(identity.private_key)
    if has_public and has_private:
        return IdentityState.HAS_BOTH
    if has_private:
        return IdentityState.HAS_PRIVATE_ONLY
    if has_public:
        return IdentityState.HAS_PUBLIC_ONLY
    return IdentityState.NO_IDENTITY


class IdentityBootstrap:
    """Drive the local identity to ``HAS_BOTH``.

    Args:
        store: Local identity store.
        remote: Directory of record.
        prompt_recovery_key: Called to ask the user for their recovery key.
            Receives the attempt number (1-based).
        max_attempts: Recovery key entries allowed before giving up.
    """

    def __init__(
        self,
        store: IdentityStore,
        remote: RemoteStore,
        prompt_recovery_key: Callable[[int], str],
        max_attempts: int = 3,
    ) -> None:
        self.store = store
        self.remote = remote
        self.prompt_recovery_key = prompt_recovery_key
        self.max_attempts = max(1, max_attempts)

    def ensure(self) -> BootstrapResult:
        """Run the state machine once and return the complete identity.

        Raises:
            InconsistentIdentityState: Server and device disagree.
            InvalidRecoveryKey: Every recovery key entry was rejected.
            NetworkFailure: The remote store was unreachable.
        """
        identity = self.store.load()
        state = classify(identity)
        logger.debug("Identity state: %s", state.value)

        if state == IdentityState.HAS_BOTH:
            return BootstrapResult(BootstrapOutcome.EXISTING, identity)

        if state == IdentityState.HAS_PRIVATE_ONLY:
            return self._adopt_public_key(identity)

        backup = self.remote.download_backup()
        if backup is not None:
            return self._recover(backup)
        return self._create()

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------

    def _adopt_public_key(self, identity: StoredIdentity) -> BootstrapResult:
        public_key = self.remote.get_my_public_key()
        if not public_key:
            raise InconsistentIdentityState(
                "A private key exists on this device but the server has no public key "
                "for your account. Refusing to generate a new identity."
            )
        if not keys_match(public_key, identity.private_key):
            raise InconsistentIdentityState(
                "The public key registered on the server does not belong to the "
                "private key on this device."
            )
        complete = StoredIdentity(public_key=public_key, private_key=identity.private_key)
        self.store.save(complete)
        logger.info("Public key restored from server")
        return BootstrapResult(BootstrapOutcome.PUBLIC_KEY_RESTORED, complete)

    def _recover(self, backup: RecoveryBackup) -> BootstrapResult:
        private_key = self._unlock_backup(backup)

        public_key = self.remote.get_my_public_key()
        if not public_key:
            raise InconsistentIdentityState(
                "An identity backup exists but the server has no public key for your account."
            )
        if not keys_match(public_key, private_key):
            raise InconsistentIdentityState(
                "The recovered private key does not match the public key on the server."
            )

        complete = StoredIdentity(public_key=public_key, private_key=private_key)
        self.store.save(complete)
        logger.info("Identity recovered from backup")
        return BootstrapResult(BootstrapOutcome.RECOVERED, complete)

    def _unlock_backup(self, backup: RecoveryBackup) -> str:
        for attempt in range(1, self.max_attempts + 1):
            recovery_key = self.prompt_recovery_key(attempt)
            try:
                return decrypt_with_recovery_key(backup, recovery_key)
            except InvalidRecoveryKey:
                logger.info("Recovery key rejected (attempt %d/%d)", attempt, self.max_attempts)
        raise InvalidRecoveryKey()

    def _create(self) -> BootstrapResult:
        keys = generate_keypair()
        self.remote.upload_public_key(keys.public_key)

        recovery_key = generate_recovery_key()
        self.remote.upload_backup(encrypt_with_recovery_key(keys.private_key, recovery_key))

        complete = StoredIdentity(public_key=keys.public_key, private_key=keys.private_key)
        self.store.save(complete)
        logger.info("New identity created and registered")
        return BootstrapResult(BootstrapOutcome.CREATED, complete, recovery_key=recovery_key)


def require_identity(store: IdentityStore) -> StoredIdentity:
    """Load the local identity, insisting that both keys are present.

    Raises:
        IdentityMissing: If the device has no complete keypair.
    """
    identity = store.load()
    if classify(identity) != IdentityState.HAS_BOTH:
        raise IdentityMissing()
    return identity
