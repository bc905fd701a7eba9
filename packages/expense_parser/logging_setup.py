"""Centralized logging configuration for the ``expense_parser`` package.

Entrypoints (the CLI, or a host service at startup) call
:func:`configure_logging` once; it attaches a single ``StreamHandler`` to the
``"expense_parser"`` logger. Library modules call
``get_logger("expense_parser.<module>")`` and never attach handlers of their
own. Until something is configured the package logger carries a
``NullHandler`` so embedding applications see no output.

Log lines are short ``event:key=value`` records. They never include message
text typed by end users or returned by the model.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "expense_parser"
_LEVEL_ENV = "EXPENSE_PARSER_LOG_LEVEL"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

_handler: logging.Handler | None = None


def _parse_level(level: int | str | None) -> int:
    if level is None:
        level = os.getenv(_LEVEL_ENV)
        if not level:
            return logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = logging.getLevelName(name)
    return numeric if isinstance(numeric, int) else logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
    force: bool = False,
) -> None:
    """Attach the package's single stream handler.

    Parameters
    ----------
    level:
        ``int`` or level name. When ``None`` the ``EXPENSE_PARSER_LOG_LEVEL``
        environment variable applies, then ``INFO``.
    fmt:
        Format string; ``"%(asctime)s %(name)s %(levelname)s %(message)s"``
        when omitted.
    stream:
        Destination; ``sys.stderr`` (resolved at call time) when omitted.
    force:
        Replace a handler installed by an earlier call. Without it repeated
        calls are no-ops.
    """

    global _handler
    logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _handler is not None:
        if not force:
            return
        logger.removeHandler(_handler)
        _handler = None

    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = _parse_level(level)
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(resolved)
    # The root logger must not print these a second time.
    logger.propagate = False
    _handler = handler


def get_logger(name: str) -> logging.Logger:
    """Return ``logging.getLogger(name)``, keeping the package silent until configured."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _handler is None and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)
