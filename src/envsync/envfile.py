"""
.env file reading and writing.

Supported syntax:
    # comment line        -> becomes the comment of the next variable
    export KEY=value      -> ``export`` prefix is ignored
    KEY=value # note      -> inline comments end unquoted values
    KEY="quoted # value"  -> quotes preserved content; \\" and \\n unescaped

A blank line or an unparseable line drops a pending comment.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Mapping, Union

from .errors import EnvFileError
from .models import SecretEntry

_NEEDS_QUOTES = re.compile(r"[\s#'\"]")


def _unquote(raw: str) -> str:
    quote = raw[0]
    if len(raw) < 2 or not raw.endswith(quote):
        return raw
    inner = raw[1:-1]
    if quote == '"':
        inner = inner.replace("\\n", "\n").replace('\\"', '"')
    return inner


def parse_env(text: str) -> dict[str, SecretEntry]:
    """Parse .env content into entries keyed by variable name."""
    result: dict[str, SecretEntry] = {}
    pending_comment = None

    for line in text.splitlines():
        stripped = line.strip()
        if not stripped:
            pending_comment = None
            continue

        if stripped.startswith("#"):
            pending_comment = stripped.lstrip("#").strip()
            continue

        if stripped.startswith("export "):
            stripped = stripped[len("export "):]
        key, sep, raw_value = stripped.partition("=")
        if not sep:
            pending_comment = None
            continue

        key = key.strip()
        raw_value = raw_value.strip()
        if raw_value[:1] in ('"', "'"):
            value = _unquote(raw_value)
        else:
            value = raw_value.split("#", 1)[0].strip()

        if key:
            result[key] = SecretEntry(value=value, comment=pending_comment or None)
            pending_comment = None

    return result


def parse_env_file(path: Union[str, Path]) -> dict[str, SecretEntry]:
    """Read and parse a .env file.

    Raises:
        FileNotFoundError: If the file does not exist.
        EnvFileError: The file exists but is unreadable or not UTF-8.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise EnvFileError(path, "not valid UTF-8") from exc
    except OSError as exc:
        raise EnvFileError(path, exc.strerror or str(exc)) from exc
    return parse_env(text)


def _quote(value: str) -> str:
    if not _NEEDS_QUOTES.search(value) or value[:1] in ('"', "'"):
        return value
    escaped = value.replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def stringify_env(entries: Mapping[str, SecretEntry]) -> str:
    """Render entries as .env text, one blank line between variables."""
    out = []
    for key, entry in entries.items():
        if entry.comment:
            out.append(f"# {entry.comment}\n")
        out.append(f"{key}={_quote(entry.value)}\n\n")
    return "".join(out)


def write_env_file(path: Union[str, Path], entries: Mapping[str, SecretEntry]) -> Path:
    """Write entries to ``path``, replacing its contents."""
    path = Path(path)
    path.write_text(stringify_env(entries), encoding="utf-8")
    return path
