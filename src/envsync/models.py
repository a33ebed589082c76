"""
Pydantic models for every document envsync reads or writes.

Wire documents use camelCase aliases so they match the REST API
byte for byte. Local documents (identity, settings) use plain names.
"""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for documents exchanged with the remote store."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """Serialize with camelCase keys, ready for a JSON body."""
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class KeyPair(BaseModel):
    """An RSA identity keypair in PEM form."""

    public_key: str
    private_key: str


class StoredIdentity(BaseModel):
    """The local identity document. Either half may be missing."""

    public_key: Optional[str] = None
    private_key: Optional[str] = None


class RecoveryBackup(WireModel):
    """A private key encrypted under a key derived from a recovery key."""

    ciphertext: str = Field(
        validation_alias=AliasChoices("ciphertext", "encryptedPrivateKey"),
        serialization_alias="ciphertext",
    )
    iv: str
    salt: str
    auth_tag: str


# ---------------------------------------------------------------------------
# Secrets
# ---------------------------------------------------------------------------


class EncryptedPayload(WireModel):
    """Output of one AES-256-GCM encryption (all fields base64)."""

    ciphertext: str
    iv: str
    auth_tag: str


class EncryptedSecret(WireModel):
    """A variable as stored on the server. Only ``key`` is plaintext."""

    key: str
    encrypted_value: str
    iv: str
    auth_tag: str
    comment: Optional[str] = None

    @property
    def payload(self) -> EncryptedPayload:
        return EncryptedPayload(
            ciphertext=self.encrypted_value, iv=self.iv, auth_tag=self.auth_tag,
        )


class SecretEntry(BaseModel):
    """A plaintext variable, from a local file or decrypted from the server.

    ``failed`` marks the codec's sentinel for a row that could not be
    decrypted; its value is never a real secret.
    """

    value: str
    comment: Optional[str] = None
    failed: bool = False


class BatchChanges(WireModel):
    """Body of a batch variable write."""

    creates: list[EncryptedSecret] = Field(default_factory=list)
    updates: list[EncryptedSecret] = Field(default_factory=list)
    deletes: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.creates or self.updates or self.deletes)


class BatchResult(WireModel):
    """Counts acknowledged by the server after a batch write."""

    created: int = 0
    updated: int = 0
    deleted: int = 0


# ---------------------------------------------------------------------------
# Projects and members
# ---------------------------------------------------------------------------


class WrappedProjectKey(WireModel):
    """A project key encrypted under one member's public key."""

    project_id: str
    encrypted_key: str
    user_id: Optional[str] = None


class Environment(WireModel):
    """A named environment (development, staging, ...) of a project."""

    id: str
    name: str
    project_id: Optional[str] = None


class UserRecord(WireModel):
    """Public directory entry for a user."""

    id: str
    email: str
    name: Optional[str] = None
    public_key: Optional[str] = None


class ProjectMember(WireModel):
    """A project membership. No ``wrapped_key`` means a pending member."""

    user: UserRecord
    role: str = "MEMBER"
    wrapped_key: Optional[str] = None

    @property
    def user_id(self) -> str:
        return self.user.id

    @property
    def email(self) -> str:
        return self.user.email


class ProjectLink(WireModel):
    """Contents of the ``envsync.json`` file linking a directory to a project."""

    project_id: str
    project_name: str = Field(
        default="",
        validation_alias=AliasChoices("projectName", "project_name", "name"),
        serialization_alias="projectName",
    )
    linked_at: Optional[str] = None
    mapping: dict[str, str] = Field(default_factory=dict)
