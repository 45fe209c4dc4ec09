"""
Structured logging helpers for import runs.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from rowimport.config import get_log_level


def configure_logging() -> None:
    """
    Configure root logging once for command-line processes.
    """

    log_level = get_log_level()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON.
    """

    if not logger.isEnabledFor(level):
        return
    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))
