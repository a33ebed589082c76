"""Shared test fixtures for envsync."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import pytest

from envsync.asymmetric import generate_keypair
from envsync.errors import RemoteError
from envsync.identity_store import MemoryIdentityStore
from envsync.models import (
    BatchChanges,
    BatchResult,
    EncryptedSecret,
    Environment,
    KeyPair,
    ProjectMember,
    RecoveryBackup,
    StoredIdentity,
    UserRecord,
)
from envsync.project_keys import wrap_project_key
from envsync.remote import RemoteStore
from envsync.symmetric import generate_project_key

ME = "user-me"
MY_EMAIL = "me@example.com"


class FakeRemoteStore(RemoteStore):
    """In-memory directory of record, acting as user ``ME``."""

    def __init__(self, user_id: str = ME, email: str = MY_EMAIL) -> None:
        self.user_id = user_id
        self.users: dict[str, UserRecord] = {
            user_id: UserRecord(id=user_id, email=email),
        }
        self.public_keys: dict[str, str] = {}
        self.backups: dict[str, RecoveryBackup] = {}
        self.memberships: dict[str, list[tuple[str, str]]] = {}
        self.project_keys: dict[tuple[str, str], str] = {}
        self.environments: dict[str, list[Environment]] = {}
        self.variables: dict[str, dict[str, EncryptedSecret]] = {}
        self.batches: list[tuple[str, str, BatchChanges]] = []

    # -- helpers -----------------------------------------------------------

    def add_user(self, user_id: str, email: str, public_key: Optional[str] = None) -> UserRecord:
        self.users[user_id] = UserRecord(id=user_id, email=email)
        if public_key:
            self.public_keys[user_id] = public_key
        return self.users[user_id]

    def add_member(self, project_id: str, user_id: str, role: str = "MEMBER") -> None:
        self.memberships.setdefault(project_id, []).append((user_id, role))

    def add_environment(self, project_id: str, name: str) -> Environment:
        env = Environment(id=f"env-{name}", name=name, project_id=project_id)
        self.environments.setdefault(project_id, []).append(env)
        self.variables.setdefault(env.id, {})
        return env

    # -- identity ----------------------------------------------------------

    def get_my_public_key(self) -> Optional[str]:
        return self.public_keys.get(self.user_id)

    def upload_public_key(self, public_key: str) -> None:
        self.public_keys[self.user_id] = public_key

    def download_backup(self) -> Optional[RecoveryBackup]:
        return self.backups.get(self.user_id)

    def upload_backup(self, backup: RecoveryBackup) -> None:
        self.backups[self.user_id] = backup

    def lookup_user(self, email: str) -> Optional[UserRecord]:
        for user in self.users.values():
            if user.email.lower() == email.lower():
                return user.model_copy(update={"public_key": self.public_keys.get(user.id)})
        return None

    # -- project keys ------------------------------------------------------

    def get_project_key(self, project_id: str) -> Optional[str]:
        return self.project_keys.get((project_id, self.user_id))

    def init_project_key(self, project_id: str, encrypted_key: str) -> None:
        if any(pid == project_id for pid, _ in self.project_keys):
            raise RemoteError("Project key already initialized", 409)
        self.project_keys[(project_id, self.user_id)] = encrypted_key

    def update_member_key(self, project_id: str, user_id: str, encrypted_key: str) -> None:
        self.project_keys[(project_id, user_id)] = encrypted_key

    def list_members(self, project_id: str) -> list[ProjectMember]:
        return [
            ProjectMember(
                user=self.users[user_id],
                role=role,
                wrapped_key=self.project_keys.get((project_id, user_id)),
            )
            for user_id, role in self.memberships.get(project_id, [])
        ]

    # -- environments and variables ----------------------------------------

    def list_environments(self, project_id: str) -> list[Environment]:
        return list(self.environments.get(project_id, []))

    def list_variables(self, project_id: str, env_id: str) -> list[EncryptedSecret]:
        return list(self.variables.get(env_id, {}).values())

    def push_batch(self, project_id: str, env_id: str, changes: BatchChanges) -> BatchResult:
        self.batches.append((project_id, env_id, changes))
        rows = self.variables.setdefault(env_id, {})
        for secret in changes.creates + changes.updates:
            rows[secret.key] = secret
        for key in changes.deletes:
            rows.pop(key, None)
        return BatchResult(
            created=len(changes.creates),
            updated=len(changes.updates),
            deleted=len(changes.deletes),
        )


@dataclass
class LinkedProject:
    """A project where ``ME`` holds the project key."""

    project_id: str
    key: bytes
    environments: dict[str, Environment] = field(default_factory=dict)


@pytest.fixture(scope="session")
def keypair() -> KeyPair:
    """One RSA identity for the whole session (generation is slow)."""
    return generate_keypair()


@pytest.fixture(scope="session")
def other_keypair() -> KeyPair:
    """A second, unrelated RSA identity."""
    return generate_keypair()


@pytest.fixture
def tmp_home(tmp_path: Path) -> Path:
    """Provide a temporary envsync home directory."""
    home = tmp_path / ".envsync"
    home.mkdir()
    return home


@pytest.fixture
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def identity_store() -> MemoryIdentityStore:
    return MemoryIdentityStore()


@pytest.fixture
def registered_identity(
    remote: FakeRemoteStore, identity_store: MemoryIdentityStore, keypair: KeyPair,
) -> KeyPair:
    """ME has a complete local identity and a public key on the server."""
    identity_store.save(StoredIdentity(public_key=keypair.public_key, private_key=keypair.private_key))
    remote.upload_public_key(keypair.public_key)
    return keypair


@pytest.fixture
def project(remote: FakeRemoteStore, registered_identity: KeyPair) -> LinkedProject:
    """Project ``proj-1`` with development/production and ME as owner."""
    key = generate_project_key()
    remote.add_member("proj-1", ME, role="OWNER")
    remote.update_member_key("proj-1", ME, wrap_project_key(key, registered_identity.public_key))
    linked = LinkedProject(project_id="proj-1", key=key)
    for name in ("development", "production"):
        linked.environments[name] = remote.add_environment("proj-1", name)
    return linked
