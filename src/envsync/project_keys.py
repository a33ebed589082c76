"""
Project key distribution — one symmetric key per project, wrapped per member.

Key hierarchy:
    Member RSA identity (local private key)
    └── Wrapped project key (server, one per member)
        └── Project key (32 bytes, only ever unwrapped in memory)
            └── Secret values (AES-256-GCM)

A member can only hand the project key to someone else after unwrapping
their own copy; nothing here can conjure a project key for a project
that already has one.

Removing a member does not revoke anything: whoever once unwrapped the
project key may still hold it. Without rotation that access is residual.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from .asymmetric import decrypt_asymmetric, encrypt_asymmetric
from .errors import EnvSyncError, MissingPublicKey, ProjectKeyExists, ProjectKeyMissing
from .models import ProjectMember, WrappedProjectKey
from .remote import RemoteStore
from .symmetric import generate_project_key, key_from_hex, key_to_hex

logger = logging.getLogger("envsync.project_keys")


class ProjectKeyState(str, Enum):
    """Project key situation as seen by the caller."""

    UNINITIALIZED = "uninitialized"
    NOT_GRANTED = "not_granted"
    GRANTED = "granted"


@dataclass
class GrantReport:
    """Outcome of a batch grant.

    Attributes:
        granted: Members that received a wrapped key.
        unresolved: Members skipped because they have no public key yet.
        failed: Members whose grant failed for another reason, with the error.
    """

    granted: list[ProjectMember] = field(default_factory=list)
    unresolved: list[ProjectMember] = field(default_factory=list)
    failed: list[tuple[ProjectMember, str]] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not (self.unresolved or self.failed)


def wrap_project_key(project_key: bytes, public_key: str) -> str:
    """Encrypt a project key for one member."""
    return encrypt_asymmetric(key_to_hex(project_key), public_key)


def unwrap_project_key(encrypted_key: str, private_key: str) -> bytes:
    """Recover a project key from a member's wrapped copy."""
    return key_from_hex(decrypt_asymmetric(encrypted_key, private_key))


def pending_members(members: Iterable[ProjectMember]) -> list[ProjectMember]:
    """Members that exist on the project but cannot decrypt anything yet."""
    return [m for m in members if not m.wrapped_key]


class ProjectKeyDistributor:
    """Create, unwrap and hand out project keys.

    Args:
        remote: Directory of record holding the wrapped copies.
    """

    def __init__(self, remote: RemoteStore) -> None:
        self.remote = remote

    def key_state(self, project_id: str) -> ProjectKeyState:
        """Tell "no project key yet" apart from "key exists, not granted to me"."""
        if self.remote.get_project_key(project_id):
            return ProjectKeyState.GRANTED
        members = self.remote.list_members(project_id)
        if any(m.wrapped_key for m in members):
            return ProjectKeyState.NOT_GRANTED
        return ProjectKeyState.UNINITIALIZED

    def initialize_project_key(self, project_id: str, actor_public_key: str) -> WrappedProjectKey:
        """Generate the project key and store the initializing actor's copy.

        Args:
            project_id: Project to initialize.
            actor_public_key: Public key of the member doing the initialization.

        Returns:
            The actor's wrapped copy.

        Raises:
            ProjectKeyExists: If the project already has a key.
        """
        state = self.key_state(project_id)
        if state != ProjectKeyState.UNINITIALIZED:
            raise ProjectKeyExists(
                f"Project {project_id} already has a project key ({state.value})"
            )

        encrypted_key = wrap_project_key(generate_project_key(), actor_public_key)
        self.remote.init_project_key(project_id, encrypted_key)
        logger.info("Project key initialized for project %s", project_id)
        return WrappedProjectKey(project_id=project_id, encrypted_key=encrypted_key)

    def unwrap_project_key(self, project_id: str, private_key: str) -> bytes:
        """Fetch and unwrap the caller's copy of the project key.

        Raises:
            ProjectKeyMissing: The caller has no wrapped copy.
            DecryptionFailure: The copy does not open with ``private_key``.
        """
        encrypted_key = self.remote.get_project_key(project_id)
        if not encrypted_key:
            raise ProjectKeyMissing(
                "You have no access key for this project yet. "
                "Ask a member with access to run 'envsync grant'."
            )
        return unwrap_project_key(encrypted_key, private_key)

    def grant_access(
        self,
        project_id: str,
        target_user_id: str,
        target_public_key: Optional[str],
        project_key: bytes,
    ) -> WrappedProjectKey:
        """Wrap the project key for one member and upload it.

        Raises:
            MissingPublicKey: The target has not registered a public key.
        """
        if not target_public_key:
            raise MissingPublicKey(target_user_id)

        encrypted_key = wrap_project_key(project_key, target_public_key)
        self.remote.update_member_key(project_id, target_user_id, encrypted_key)
        logger.info("Granted project %s access to user %s", project_id, target_user_id)
        return WrappedProjectKey(
            project_id=project_id, user_id=target_user_id, encrypted_key=encrypted_key,
        )

    def grant_member(
        self, project_id: str, member: ProjectMember, project_key: bytes,
    ) -> WrappedProjectKey:
        """Look up a member's public key and grant them access."""
        public_key = member.user.public_key
        if not public_key:
            record = self.remote.lookup_user(member.email)
            public_key = record.public_key if record else None
        if not public_key:
            raise MissingPublicKey(member.email)
        return self.grant_access(project_id, member.user_id, public_key, project_key)

    def grant_many(
        self,
        project_id: str,
        members: Iterable[ProjectMember],
        project_key: bytes,
    ) -> GrantReport:
        """Grant each member independently; one failure never stops the batch."""
        report = GrantReport()
        for member in members:
            try:
                self.grant_member(project_id, member, project_key)
            except MissingPublicKey:
                logger.info("Skipping %s: no public key registered", member.email)
                report.unresolved.append(member)
            except EnvSyncError as exc:
                logger.warning("Grant to %s failed: %s", member.email, exc)
                report.failed.append((member, str(exc)))
            else:
                report.granted.append(member)
        return report
