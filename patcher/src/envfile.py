from __future__ import annotations

import logging
from pathlib import Path

LOGGER = logging.getLogger(__name__)


class EnvFileError(Exception):
    """The env-style source could not be turned into a non-empty mapping."""


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1]
    return value


def parse_env_text(text: str, source: str = "<string>") -> dict[str, str]:
    """Parse ``KEY=VALUE`` lines into an ordered mapping.

    Blank lines and lines starting with ``#`` (after leading whitespace) are
    ignored. Each remaining line is split on the first ``=``; key and value
    are stripped, and one matching pair of single or double quotes around the
    value is removed. Lines without ``=`` are skipped with a warning. A later
    duplicate key overwrites the earlier value.

    Raises :class:`EnvFileError` when no entry survives.
    """
    data: dict[str, str] = {}
    for raw_line in text.split("\n"):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, separator, value = line.partition("=")
        if not separator:
            LOGGER.warning("Ignoring invalid line in env file %s: %s", source, line)
            continue
        data[key.strip()] = _strip_quotes(value.strip())

    if not data:
        raise EnvFileError(f"no valid entries found in environment file {source}")
    return data


def load_env_file(path: str | Path) -> dict[str, str]:
    """Read and parse the env file at *path*.

    Missing files, directories and unreadable files raise
    :class:`EnvFileError`, the same as a file with no entries.
    """
    file_path = Path(path)
    if file_path.is_dir():
        raise EnvFileError(f"config path is a directory, expected a file: {file_path}")
    try:
        text = file_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise EnvFileError(f"failed to read config file {file_path}: {exc}") from exc
    return parse_env_text(text, source=str(file_path))
