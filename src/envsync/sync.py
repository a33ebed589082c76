"""
Secret sync — push, pull and status for one project.

    push    parse file -> fetch+decrypt remote -> diff -> encrypt -> batch write
    pull    fetch+decrypt remote -> write file
    status  parse file -> fetch+decrypt remote -> compare (no writes)

Each call owns its data for its whole duration. Status checks over
several environments run in a thread pool; results are keyed by
environment name. Multi-environment pushes report, per environment,
whether the batch was committed.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from . import codec, reconcile
from .envfile import parse_env_file, write_env_file
from .errors import EnvSyncError, InvalidVariableNames
from .models import BatchChanges, BatchResult, Environment, ProjectLink, SecretEntry
from .reconcile import SyncDiff, SyncStatus
from .remote import RemoteStore
from .validators import validate_env_keys

logger = logging.getLogger("envsync.sync")


@dataclass
class SyncTarget:
    """A local file paired with the remote environment it syncs to."""

    environment: Environment
    file_path: Path

    @property
    def env_name(self) -> str:
        return self.environment.name


@dataclass
class PushPlan:
    """What a push would do, computed before anything is written."""

    local: dict[str, SecretEntry]
    remote: dict[str, SecretEntry]
    diff: SyncDiff


@dataclass
class PushResult:
    """Outcome of pushing one file.

    Attributes:
        applied: True only if a batch was sent and acknowledged.
        repaired: Remote rows that failed to decrypt and were overwritten.
        error: Message when the push for this environment failed.
    """

    env_name: str
    diff: SyncDiff = field(default_factory=SyncDiff)
    applied: bool = False
    result: Optional[BatchResult] = None
    repaired: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class PullResult:
    """Outcome of pulling one environment into a file."""

    env_name: str
    file_path: Path
    written: int = 0
    changes: int = 0
    undecryptable: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class EnvironmentStatus:
    """Status of one linked file against its environment."""

    env_name: str
    file_path: Path
    status: Optional[SyncStatus] = None
    undecryptable: list[str] = field(default_factory=list)
    error: Optional[str] = None


def resolve_targets(
    link: ProjectLink,
    environments: Iterable[Environment],
    base_dir: Optional[Path] = None,
) -> tuple[list[SyncTarget], list[str]]:
    """Pair each mapped file with its remote environment.

    Environment names match case-insensitively.

    Returns:
        (targets, names of mapped environments that do not exist remotely)
    """
    by_name = {env.name.lower(): env for env in environments}
    base_dir = base_dir or Path.cwd()
    targets: list[SyncTarget] = []
    missing: list[str] = []
    for env_name, file_path in link.mapping.items():
        env = by_name.get(env_name.lower())
        if env is None:
            missing.append(env_name)
            continue
        targets.append(SyncTarget(environment=env, file_path=base_dir / file_path))
    return targets, missing


class SecretSync:
    """Sync engine bound to one project and its unwrapped project key.

    Args:
        remote: Directory of record.
        project_id: Project being synced.
        project_key: The unwrapped 32-byte project key.
        max_workers: Thread pool size for multi-environment status.
    """

    def __init__(
        self,
        remote: RemoteStore,
        project_id: str,
        project_key: bytes,
        max_workers: int = 4,
    ) -> None:
        self.remote = remote
        self.project_id = project_id
        self._project_key = project_key
        self.max_workers = max_workers

    def fetch_remote(self, environment: Environment) -> dict[str, SecretEntry]:
        """Download and decrypt an environment's variables."""
        rows = self.remote.list_variables(self.project_id, environment.id)
        return codec.decode_secrets(rows, self._project_key)

    # -------------------------------------------------------------------
    # Push
    # -------------------------------------------------------------------

    def plan_push(
        self,
        environment: Environment,
        file_path: Path,
        prune: bool = False,
    ) -> PushPlan:
        """Parse, fetch and diff without writing anything.

        An empty local file plans no changes, even when pruning.

        Raises:
            FileNotFoundError: The local file is missing.
            InvalidVariableNames: The file has names the server rejects.
            EnvFileError: The file is unreadable or not UTF-8.
        """
        local = parse_env_file(file_path)
        invalid = validate_env_keys(local)
        if invalid:
            raise InvalidVariableNames(invalid)
        remote = self.fetch_remote(environment)
        changes = reconcile.diff(local, remote, prune) if local else SyncDiff()
        return PushPlan(local=local, remote=remote, diff=changes)

    def build_batch(self, plan: PushPlan) -> BatchChanges:
        """Encrypt the creates and updates of a plan into a batch body."""
        return BatchChanges(
            creates=codec.encode_secrets(plan.local, plan.diff.creates, self._project_key),
            updates=codec.encode_secrets(plan.local, plan.diff.updates, self._project_key),
            deletes=list(plan.diff.deletes),
        )

    def push(
        self,
        environment: Environment,
        file_path: Path,
        prune: bool = False,
        plan: Optional[PushPlan] = None,
    ) -> PushResult:
        """Push one file to one environment.

        Args:
            environment: Target environment.
            file_path: Local .env file.
            prune: Delete remote variables missing from the file.
            plan: A plan from ``plan_push`` to apply as-is (e.g. after the
                user confirmed it); computed here when omitted.

        An empty diff sends nothing.
        """
        plan = plan or self.plan_push(environment, file_path, prune)
        result = PushResult(env_name=environment.name, diff=plan.diff)
        if not plan.diff.has_changes:
            logger.info("%s already in sync", environment.name)
            return result

        result.repaired = [k for k in codec.failed_keys(plan.remote) if k in plan.diff.updates]
        batch = self.build_batch(plan)
        result.result = self.remote.push_batch(self.project_id, environment.id, batch)
        result.applied = True
        logger.info(
            "Pushed %s: +%d ~%d -%d", environment.name,
            len(batch.creates), len(batch.updates), len(batch.deletes),
        )
        return result

    def push_many(self, targets: Iterable[SyncTarget], prune: bool = False) -> list[PushResult]:
        """Push several files, each independently; failures are recorded per target."""
        results = []
        for target in targets:
            try:
                results.append(self.push(target.environment, target.file_path, prune))
            except (EnvSyncError, OSError) as exc:
                logger.warning("Push to %s failed: %s", target.env_name, exc)
                results.append(PushResult(env_name=target.env_name, error=str(exc)))
        return results

    # -------------------------------------------------------------------
    # Pull
    # -------------------------------------------------------------------

    def pull(self, environment: Environment, file_path: Path) -> PullResult:
        """Write an environment's variables to ``file_path``.

        Rows that fail to decrypt are never written; if the file already
        has a value for such a key, that local value is kept.
        """
        remote = self.fetch_remote(environment)
        local = parse_env_file(file_path) if file_path.exists() else {}
        failed = codec.failed_keys(remote)

        merged: dict[str, SecretEntry] = {}
        for key, entry in remote.items():
            if entry.failed:
                if key in local:
                    merged[key] = local[key]
                continue
            merged[key] = entry

        result = PullResult(
            env_name=environment.name,
            file_path=file_path,
            changes=reconcile.pull_changes(local, {k: v for k, v in remote.items() if not v.failed}),
            undecryptable=failed,
        )
        write_env_file(file_path, merged)
        result.written = len(merged)
        if failed:
            logger.warning("%d variable(s) in %s could not be decrypted", len(failed), environment.name)
        return result

    def pull_many(self, targets: Iterable[SyncTarget]) -> list[PullResult]:
        results = []
        for target in targets:
            try:
                results.append(self.pull(target.environment, target.file_path))
            except (EnvSyncError, OSError) as exc:
                logger.warning("Pull of %s failed: %s", target.env_name, exc)
                results.append(PullResult(
                    env_name=target.env_name, file_path=target.file_path, error=str(exc),
                ))
        return results

    # -------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------

    def status(self, environment: Environment, file_path: Path) -> EnvironmentStatus:
        """Compare one file with its environment. Never raises for I/O problems."""
        report = EnvironmentStatus(env_name=environment.name, file_path=file_path)
        try:
            local = parse_env_file(file_path) if file_path.exists() else {}
            remote = self.fetch_remote(environment)
        except (EnvSyncError, OSError) as exc:
            report.error = str(exc)
            return report
        report.undecryptable = codec.failed_keys(remote)
        report.status = reconcile.status(local, remote)
        return report

    def status_many(self, targets: Iterable[SyncTarget]) -> dict[str, EnvironmentStatus]:
        """Check several environments concurrently."""
        targets = list(targets)
        if not targets:
            return {}
        workers = min(self.max_workers, len(targets))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            reports = pool.map(lambda t: self.status(t.environment, t.file_path), targets)
            return {report.env_name: report for report in reports}
