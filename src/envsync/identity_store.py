"""
Identity store — where the local keypair lives.

The store is an explicit, injectable object: the bootstrap orchestrator
and the CLI receive one, tests hand in a ``MemoryIdentityStore``.

Storage layout:
    ~/.envsync/
    └── identity/
        └── keys.json      # {"public_key": PEM, "private_key": PEM}, mode 0600
"""

from __future__ import annotations

import json
import logging
import os
import stat
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from .errors import InconsistentIdentityState
from .models import StoredIdentity

logger = logging.getLogger("envsync.identity_store")


class IdentityStore(ABC):
    """Load/save contract for the local identity document."""

    @abstractmethod
    def load(self) -> StoredIdentity:
        """Return the stored identity (an empty one if nothing is stored)."""

    @abstractmethod
    def save(self, identity: StoredIdentity) -> None:
        """Replace the stored identity as a whole."""

    @abstractmethod
    def clear(self) -> None:
        """Forget the stored identity."""


class MemoryIdentityStore(IdentityStore):
    """Process-local store, used by tests and one-shot tooling."""

    def __init__(self, identity: Optional[StoredIdentity] = None) -> None:
        self._identity = identity.model_copy() if identity else StoredIdentity()
        self.saves = 0

    def load(self) -> StoredIdentity:
        return self._identity.model_copy()

    def save(self, identity: StoredIdentity) -> None:
        self._identity = identity.model_copy()
        self.saves += 1

    def clear(self) -> None:
        self._identity = StoredIdentity()


def write_private_text(path: Path, text: str) -> None:
    """Atomically write ``text`` to a file readable only by the owner.

    The document is written to a temporary file in the same directory
    and moved into place, so readers see either the old or the new file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        os.chmod(tmp_name, stat.S_IRUSR | stat.S_IWUSR)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def write_private_json(path: Path, data: dict) -> None:
    write_private_text(path, json.dumps(data, indent=2))


class FileIdentityStore(IdentityStore):
    """JSON file store under the envsync home directory.

    Args:
        home: envsync home directory (~/.envsync).
    """

    def __init__(self, home: Path) -> None:
        self._path = Path(home).expanduser() / "identity" / "keys.json"

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> StoredIdentity:
        if not self._path.exists():
            return StoredIdentity()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            raise InconsistentIdentityState(
                f"Identity file {self._path} is unreadable: {exc}"
            ) from exc
        return StoredIdentity.model_validate(data)

    def save(self, identity: StoredIdentity) -> None:
        write_private_json(self._path, identity.model_dump(mode="json"))
        logger.debug("Identity saved to %s", self._path)

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)
