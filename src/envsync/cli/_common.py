"""Shared utilities for all CLI command modules.

Provides the Rich console instance, the per-invocation ``CliState``
(home directory, remote store and identity store, all injectable from
tests through ``CliRunner.invoke(obj=...)``), and helpers that turn
engine errors into a red message and exit status 1.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

import click
from rich.console import Console

from ..bootstrap import require_identity
from ..config import Settings, home_dir, load_settings
from ..errors import EnvSyncError
from ..identity_store import FileIdentityStore, IdentityStore
from ..models import ProjectLink, StoredIdentity
from ..project_keys import ProjectKeyDistributor
from ..project_link import load_project_link
from ..remote import HttpRemoteStore, RemoteStore
from ..sync import SecretSync

console = Console()
logger = logging.getLogger("envsync.cli")


@dataclass
class CliState:
    """Everything a command needs, resolved lazily.

    Attributes:
        home: envsync home directory (None means ENVSYNC_HOME or ~/.envsync).
        remote: Pre-built remote store; built from settings when None.
        store: Pre-built identity store; a FileIdentityStore when None.
        workdir: Directory holding ``envsync.json``; the cwd when None.
    """

    home: Optional[Path] = None
    remote: Optional[RemoteStore] = None
    store: Optional[IdentityStore] = None
    workdir: Optional[Path] = None

    @property
    def home_path(self) -> Path:
        return home_dir(self.home)

    @property
    def cwd(self) -> Path:
        return self.workdir or Path.cwd()

    def settings(self) -> Settings:
        return load_settings(self.home)

    def identity_store(self) -> IdentityStore:
        if self.store is None:
            self.store = FileIdentityStore(self.home_path)
        return self.store

    def remote_store(self) -> RemoteStore:
        if self.remote is None:
            settings = self.settings()
            if not settings.is_authenticated:
                fail("Not logged in. Run [cyan]envsync login --token <TOKEN>[/] first.")
            self.remote = HttpRemoteStore(
                base_url=settings.api_url,
                token=settings.token,
                timeout=settings.timeout,
            )
        return self.remote


pass_state = click.make_pass_decorator(CliState, ensure=True)


def fail(message: str) -> None:
    """Print an error in red and exit with status 1."""
    console.print(f"[bold red]Error:[/] {message}")
    sys.exit(1)


@contextmanager
def reporting_errors() -> Iterator[None]:
    """Turn engine errors into a red message and exit status 1."""
    try:
        yield
    except EnvSyncError as exc:
        logger.debug("Command failed", exc_info=True)
        hint = " [dim](safe to retry)[/]" if exc.retryable else ""
        fail(f"{exc}{hint}")


def require_link(state: CliState) -> ProjectLink:
    link = load_project_link(state.cwd)
    if link is None:
        fail("This directory is not linked. Run [cyan]envsync link PROJECT_ID NAME[/] first.")
    return link


def require_local_identity(state: CliState) -> StoredIdentity:
    return require_identity(state.identity_store())


def open_project(state: CliState, link: ProjectLink) -> SecretSync:
    """Unwrap the caller's project key and return a sync engine for the project."""
    identity = require_local_identity(state)
    remote = state.remote_store()
    project_key = ProjectKeyDistributor(remote).unwrap_project_key(
        link.project_id, identity.private_key,
    )
    return SecretSync(
        remote, link.project_id, project_key, max_workers=state.settings().max_workers,
    )
