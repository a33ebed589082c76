"""Name validation for variables and environments."""

from __future__ import annotations

import re
from typing import Iterable

ENV_KEY_RE = re.compile(r"^[A-Z_][A-Z0-9_]*$")
ENV_NAME_RE = re.compile(r"^[a-z0-9_-]+$")


def validate_env_keys(keys: Iterable[str]) -> list[str]:
    """Return the keys that are not UPPER_SNAKE_CASE (empty list if all valid)."""
    return [key for key in keys if not ENV_KEY_RE.match(key)]


def is_valid_env_name(name: str) -> bool:
    return bool(ENV_NAME_RE.match(name.strip().lower()))


def format_key_validation_error(invalid_keys: list[str], shown: int = 5) -> str:
    """Human-readable explanation of rejected variable names."""
    lines = [
        "Invalid key names found:",
        "Keys must be UPPERCASE (e.g., DATABASE_URL, API_KEY)",
    ]
    lines.extend(f"  - {key}" for key in invalid_keys[:shown])
    if len(invalid_keys) > shown:
        lines.append(f"  ...and {len(invalid_keys) - shown} more")
    lines.append("")
    lines.append("Please rename them in your .env file and try again.")
    return "\n".join(lines)
