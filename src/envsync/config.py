"""
User settings and logging setup.

Settings come from ``<home>/config.yaml`` and are overridden by
environment variables:

    ENVSYNC_HOME      home directory (default ~/.envsync)
    ENVSYNC_API_URL   API root
    ENVSYNC_TOKEN     bearer token
    ENVSYNC_TIMEOUT   per-request timeout in seconds
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from . import ENVSYNC_HOME
from .identity_store import write_private_text
from .remote import DEFAULT_API_URL

logger = logging.getLogger("envsync.config")

CONFIG_FILENAME = "config.yaml"


class Settings(BaseModel):
    """Client configuration."""

    api_url: str = DEFAULT_API_URL
    token: Optional[str] = None
    timeout: float = Field(default=30.0, gt=0)
    max_workers: int = Field(default=4, ge=1)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)


def home_dir(home: Optional[Path] = None) -> Path:
    return Path(home or os.environ.get("ENVSYNC_HOME", ENVSYNC_HOME)).expanduser()


def load_settings(home: Optional[Path] = None) -> Settings:
    """Load settings from disk, then apply environment overrides.

    An unreadable or invalid config file is logged and ignored.
    """
    config_file = home_dir(home) / CONFIG_FILENAME
    data: dict = {}
    if config_file.exists():
        try:
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
        except (yaml.YAMLError, OSError) as exc:
            logger.warning("Failed to load %s: %s", config_file, exc)
            data = {}

    overrides = {
        "api_url": os.environ.get("ENVSYNC_API_URL"),
        "token": os.environ.get("ENVSYNC_TOKEN"),
        "timeout": os.environ.get("ENVSYNC_TIMEOUT"),
    }
    data.update({k: v for k, v in overrides.items() if v})

    try:
        return Settings(**data)
    except (ValidationError, TypeError) as exc:
        logger.warning("Invalid settings in %s: %s", config_file, exc)
        return Settings()


def save_settings(settings: Settings, home: Optional[Path] = None) -> Path:
    """Persist settings as YAML, readable only by the owner (it holds the token)."""
    config_file = home_dir(home) / CONFIG_FILENAME
    data = settings.model_dump(mode="json", exclude_none=True)
    write_private_text(config_file, yaml.safe_dump(data, default_flow_style=False))
    return config_file


def configure_logging(verbose: bool = False) -> None:
    """Route envsync's loggers to stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )
