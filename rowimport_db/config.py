"""
rowimport_db/config.py

Target database URL for imports run from the command line.
"""

from __future__ import annotations

import os

from rowimport.config import load_env_files

DEFAULT_DATABASE_URL = "sqlite:///rowimport.sqlite3"

# Checked in order; the first non-empty value wins.
DATABASE_URL_ENV_VARS = ("IMPORT_DATABASE_URL", "DATABASE_URL")

_DRIVER_PREFIXES = {
    "postgres://": "postgresql+psycopg://",
    "postgresql://": "postgresql+psycopg://",
}


def normalize_database_url(url: str) -> str:
    """
    Pin bare postgres URLs to the psycopg driver; other SQLAlchemy URLs pass through.
    """

    for prefix, replacement in _DRIVER_PREFIXES.items():
        if url.startswith(prefix):
            return replacement + url[len(prefix):]
    return url


def resolve_database_url(explicit: str | None = None) -> str:
    """
    Resolve the import target database URL.

    Priority:
    1) `explicit` (the CLI `--database-url` option)
    2) IMPORT_DATABASE_URL, then DATABASE_URL
    3) a SQLite file in the working directory
    """

    if explicit and explicit.strip():
        return normalize_database_url(explicit.strip())

    load_env_files()
    for name in DATABASE_URL_ENV_VARS:
        value = (os.getenv(name) or "").strip()
        if value:
            return normalize_database_url(value)
    return DEFAULT_DATABASE_URL
