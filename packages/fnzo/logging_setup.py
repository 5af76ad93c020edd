"""Central logging setup for ``fnzo``.

Library modules call ``get_logger("fnzo.<module>")`` and log compact
``operation:event key=value`` lines; they never attach handlers. Entry points
(the CLI root callback) call ``configure_logging()`` once, which installs a
single ``StreamHandler`` on the ``fnzo`` logger. Until then the package
logger only carries a ``NullHandler``.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "fnzo"
_LEVEL_ENV = "FNZO_LOG_LEVEL"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

# The handler installed by configure_logging (None until configured)
_handler: logging.Handler | None = None


def _parse_level(level: int | str | None) -> int:
    if level is None:
        level = os.getenv(_LEVEL_ENV) or logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    value = logging.getLevelName(name)
    return value if isinstance(value, int) else logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
    force: bool = False,
) -> logging.Handler:
    """Attach the package handler once and return it.

    ``level`` falls back to ``FNZO_LOG_LEVEL``, then INFO. Later calls are
    no-ops unless ``force`` replaces the handler (e.g. a new ``stream``).
    """

    global _handler
    logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _handler is not None:
        if not force:
            return _handler
        logger.removeHandler(_handler)
        _handler = None

    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = _parse_level(level)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FORMAT))
    logger.setLevel(resolved)
    logger.addHandler(handler)
    # The package handler is the only sink; root handlers would duplicate lines
    logger.propagate = False
    _handler = handler
    return handler


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name``; the package logger stays silent until configured."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _handler is None and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger"]
