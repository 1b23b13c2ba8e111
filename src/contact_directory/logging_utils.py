from __future__ import annotations

import logging
import os
from typing import Optional

from .config_loader import SyncConfig

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def _resolve_level(level_name: str) -> int:
    """
    Convert a case-insensitive logging level string to its numeric value.

    Falls back to logging.INFO when the provided string is not a valid level.
    """
    normalized = (level_name or "INFO").upper()
    if normalized.isdigit():
        return int(normalized)
    return getattr(logging, normalized, logging.INFO)


def configure_logging(
    config: Optional[SyncConfig], level_override: Optional[str] = None
) -> None:
    """
    Configure the root logger according to precedence:

    1. ``CONTACT_DIRECTORY_LOG_LEVEL`` environment variable (if set)
    2. ``level_override`` provided by the caller (``--log-level`` or ``--verbose``)
    3. ``config.logging.level`` from the YAML config
    4. Default ``INFO`` level so run summaries are visible
    """
    env_level = os.getenv("CONTACT_DIRECTORY_LOG_LEVEL")
    config_level = config.logging.level if config is not None else None
    effective_level_name = env_level or level_override or config_level or "INFO"
    level_value = _resolve_level(effective_level_name)

    root_logger = logging.getLogger()
    if root_logger.handlers:
        root_logger.setLevel(level_value)
    else:
        logging.basicConfig(level=level_value, format=LOG_FORMAT)
