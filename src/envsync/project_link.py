"""
Project link file — ``envsync.json`` in the working directory.

    {
      "projectId": "...",
      "projectName": "...",
      "linkedAt": "2026-10-17T09:00:00+00:00",
      "mapping": {"development": ".env", "production": ".env.production"}
    }

The file holds no secrets and is safe to commit. It is always read and
written as a whole document.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .models import ProjectLink

logger = logging.getLogger("envsync.project_link")

CONFIG_FILENAME = "envsync.json"


def link_path(directory: Optional[Path] = None) -> Path:
    return (directory or Path.cwd()) / CONFIG_FILENAME


def load_project_link(directory: Optional[Path] = None) -> Optional[ProjectLink]:
    """Load the project link, or None if the directory is not linked."""
    path = link_path(directory)
    if not path.exists():
        return None
    try:
        return ProjectLink.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (json.JSONDecodeError, ValidationError, OSError) as exc:
        logger.warning("Failed to load %s: %s", path, exc)
        return None


def save_project_link(link: ProjectLink, directory: Optional[Path] = None) -> Path:
    """Write the project link atomically."""
    path = link_path(directory)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(link.to_wire(), fh, indent=2)
            fh.write("\n")
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return path


def new_project_link(project_id: str, project_name: str) -> ProjectLink:
    return ProjectLink(
        project_id=project_id,
        project_name=project_name,
        linked_at=datetime.now(timezone.utc).isoformat(),
    )


def link_file_to_env(
    link: ProjectLink,
    env_name: str,
    file_path: str,
    directory: Optional[Path] = None,
) -> ProjectLink:
    """Map ``env_name`` to ``file_path`` and persist the link."""
    link.mapping[env_name] = file_path
    save_project_link(link, directory)
    return link


def get_linked_file(link: ProjectLink, env_name: str) -> Optional[str]:
    return link.mapping.get(env_name)


def get_linked_env(link: ProjectLink, file_path: str) -> Optional[str]:
    for env_name, mapped in link.mapping.items():
        if mapped == file_path:
            return env_name
    return None


def detect_env_files(directory: Optional[Path] = None) -> list[str]:
    """``.env*`` files in the directory, excluding ``*.example`` templates."""
    directory = directory or Path.cwd()
    try:
        return sorted(
            p.name for p in directory.iterdir()
            if p.is_file() and p.name.startswith(".env") and ".example" not in p.name
        )
    except OSError:
        return []


def get_unlinked_files(link: ProjectLink, directory: Optional[Path] = None) -> list[str]:
    """Detected .env files that no environment is mapped to."""
    directory = directory or Path.cwd()
    linked = {(directory / f).resolve() for f in link.mapping.values()}
    return [f for f in detect_env_files(directory) if (directory / f).resolve() not in linked]
