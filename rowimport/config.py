"""
rowimport/config.py

Import-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

_ALLOWED_FAILURE_POLICIES = {"skip", "abort"}

ENV_FILENAMES = (".env", ".env.local")


def load_env_files(directory: Path | None = None) -> None:
    """
    Load KEY=VALUE pairs from `.env` files in `directory` (the working directory by default).

    Variables already set in the process environment are not overwritten.
    """

    base = directory or Path.cwd()
    for filename in ENV_FILENAMES:
        env_path = base / filename
        if not env_path.is_file():
            continue

        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.removeprefix("export ").strip()
            value = value.strip().strip('"').strip("'")
            if key and key not in os.environ:
                os.environ[key] = value


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure `.env` files in the working directory are loaded once before reading import settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_failure_policy_env(name: str, default: str) -> str:
    value = _get_str_env(name, default).lower()
    if value not in _ALLOWED_FAILURE_POLICIES:
        return default
    return value


@dataclass(frozen=True)
class ImportSettings:
    """
    Runtime defaults for CSV imports.
    """

    when_invalid: str = "skip"
    csv_encoding: str = "utf-8-sig"
    csv_quote_char: str = '"'
    log_row_errors: bool = True
    max_logged_row_errors: int = 100


@lru_cache(maxsize=1)
def get_import_settings() -> ImportSettings:
    """
    Return cached import settings from environment variables.
    """

    return ImportSettings(
        when_invalid=_get_failure_policy_env("IMPORT_WHEN_INVALID", "skip"),
        csv_encoding=_get_str_env("IMPORT_CSV_ENCODING", "utf-8-sig"),
        csv_quote_char=_get_str_env("IMPORT_CSV_QUOTE_CHAR", '"')[:1],
        log_row_errors=_get_bool_env("IMPORT_LOG_ROW_ERRORS", True),
        max_logged_row_errors=max(0, _get_int_env("IMPORT_MAX_LOGGED_ROW_ERRORS", 100)),
    )


def get_log_level() -> str:
    """
    Return the configured logging level name.
    """

    return _get_str_env("LOG_LEVEL", "INFO").upper()
