"""
Reconciliation — compare a local secret set with the decrypted remote one.

Values and comments are compared after trimming whitespace on both
sides, so a trailing newline in a source file is not a change.
Comparison is plain string equality; "1" and "1.0" differ.

    diff(local, remote, prune)  -> what a push would write
    status(local, remote)       -> the same classification, read-only
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Mapping

from .models import SecretEntry


@dataclass
class SyncDiff:
    """Writes needed to make the remote match the local set.

    Attributes:
        creates: Keys present locally, absent remotely.
        updates: Keys whose trimmed value or comment differs.
        deletes: Remote-only keys (only filled when pruning).
    """

    creates: list[str] = field(default_factory=list)
    updates: list[str] = field(default_factory=list)
    deletes: list[str] = field(default_factory=list)

    @property
    def change_count(self) -> int:
        return len(self.creates) + len(self.updates) + len(self.deletes)

    @property
    def has_changes(self) -> bool:
        return self.change_count > 0


@dataclass
class SyncStatus:
    """Read-only comparison of a local file and a remote environment."""

    local_only: list[str] = field(default_factory=list)
    remote_only: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)

    @property
    def total_diff(self) -> int:
        return len(self.local_only) + len(self.remote_only) + len(self.modified)

    @property
    def is_synced(self) -> bool:
        return self.total_diff == 0


def _norm(text) -> str:
    return (text or "").strip()


def entries_differ(a: SecretEntry, b: SecretEntry) -> bool:
    """Whether two entries differ in trimmed value or trimmed comment.

    An entry that failed to decrypt differs from everything, so a push
    always overwrites it.
    """
    if a.failed or b.failed:
        return True
    return _norm(a.value) != _norm(b.value) or _norm(a.comment) != _norm(b.comment)


def diff(
    local: Mapping[str, SecretEntry],
    remote: Mapping[str, SecretEntry],
    prune_remote_only: bool = False,
) -> SyncDiff:
    """Compute the creates/updates/deletes a push would apply.

    Args:
        local: Entries parsed from the local file.
        remote: Entries decrypted from the server.
        prune_remote_only: Also delete remote keys missing locally.

    Returns:
        SyncDiff, keys in local (creates/updates) or remote (deletes) order.
    """
    result = SyncDiff()
    for key, entry in local.items():
        if key not in remote:
            result.creates.append(key)
        elif entries_differ(entry, remote[key]):
            result.updates.append(key)

    if prune_remote_only:
        result.deletes = [key for key in remote if key not in local]
    return result


def status(
    local: Mapping[str, SecretEntry],
    remote: Mapping[str, SecretEntry],
) -> SyncStatus:
    """Classify keys as local-only, remote-only or modified."""
    result = SyncStatus()
    for key, entry in remote.items():
        if key not in local:
            result.remote_only.append(key)
        elif entries_differ(local[key], entry):
            result.modified.append(key)
    result.local_only = [key for key in local if key not in remote]
    return result


def pull_changes(
    local: Mapping[str, SecretEntry],
    remote: Mapping[str, SecretEntry],
) -> int:
    """Number of local entries a pull would add or change."""
    return sum(
        1 for key, entry in remote.items()
        if key not in local or entries_differ(local[key], entry)
    )


# ═══════════════════════════════════════════════════════════════════════════
# Rendering
# ═══════════════════════════════════════════════════════════════════════════


def format_diff(result: SyncDiff, env_name: str) -> str:
    """Summarize a push diff as plain text."""
    lines = [f"Changes for {env_name}:"]
    if result.creates:
        lines.append(f"  + {len(result.creates)} new")
    if result.updates:
        lines.append(f"  ~ {len(result.updates)} updates")
    if result.deletes:
        lines.append(f"  - {len(result.deletes)} to delete")
    if not result.has_changes:
        lines.append("  Already in sync.")
    return "\n".join(lines)


def format_sync_result(result: SyncDiff) -> str:
    """One-line summary after a successful push."""
    return f"Synced: +{len(result.creates)} ~{len(result.updates)} -{len(result.deletes)}"


def format_status(result: SyncStatus, env_name: str) -> str:
    """Describe a status comparison as plain text."""
    if result.is_synced:
        return f"{env_name}: in sync"

    lines = [f"{env_name}: {result.total_diff} difference(s)"]
    for key in result.local_only:
        lines.append(f"  + {key} (local only)")
    for key in result.remote_only:
        lines.append(f"  - {key} (remote only)")
    for key in result.modified:
        lines.append(f"  ~ {key} (modified)")
    return "\n".join(lines)


def status_to_dict(result: SyncStatus) -> dict:
    return {
        **asdict(result),
        "total_diff": result.total_diff,
        "is_synced": result.is_synced,
    }
