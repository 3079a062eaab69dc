# SMB LedgerSight - Financial statements engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Centralized logging configuration for the ``ledgersight`` package.

- ``configure_logging(...)`` attaches a single ``StreamHandler`` to the
  package root logger. Entry points (the CLI) call it once at startup.
- ``get_logger(name)`` returns a logger and makes sure the package root
  logger has at least a ``NullHandler`` when nothing was configured, so the
  engine stays silent when embedded in another application.

Engine modules never attach handlers themselves.
"""

import logging
import os
import sys
from typing import IO, Optional, Union

_PKG_LOGGER_NAME = "ledgersight"
_ENV_LEVEL = "LEDGERSIGHT_LOG_LEVEL"
_CONFIGURED = False


def _level_value(level: Optional[Union[int, str]]) -> Optional[int]:
    if isinstance(level, int):
        return level
    if isinstance(level, str) and level.strip():
        name = level.strip().upper()
        if name.isdigit():
            return int(name)
        numeric = getattr(logging, name, None)
        if isinstance(numeric, int):
            return numeric
    return None


def _parse_level(level: Optional[Union[int, str]]) -> int:
    """Resolve the level: LEDGERSIGHT_LOG_LEVEL, then ``level``, then WARNING."""
    for candidate in (os.getenv(_ENV_LEVEL), level):
        numeric = _level_value(candidate)
        if numeric is not None:
            return numeric
    return logging.WARNING


def configure_logging(
    level: Optional[Union[int, str]] = None,
    *,
    fmt: Optional[str] = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Configure the package root logger exactly once.

    Parameters
    ----------
    level:
        Logging level as ``int`` or level name (WARNING when ``None``).
        A valid ``LEDGERSIGHT_LOG_LEVEL`` environment variable overrides it.
    fmt:
        Optional format string.
    stream:
        Output stream of the handler (stderr by default).
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    numeric = _parse_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(numeric)
    handler.setFormatter(
        logging.Formatter(fmt or "%(asctime)s %(name)s %(levelname)s %(message)s")
    )

    logger.setLevel(numeric)
    logger.addHandler(handler)
    logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger by name with library-safe defaults."""
    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)
