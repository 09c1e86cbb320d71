"""Process-wide logging setup for the DeckPilot service.

Every component logs through ``get_module_logger`` under the ``deckpilot``
namespace. This module decides where those records go: stdout for an
operator watching the terminal, and a size-capped rotating file under the
state directory so a show's worth of history survives a restart.
"""

from __future__ import annotations

import contextlib
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, List, Optional, Union

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_MAX_BYTES = 500 * 1024
LOG_FILE_BACKUPS = 2

# aiohttp logs every API request at INFO; the request middleware already does.
QUIET_LOGGERS = ("aiohttp.access", "aiohttp.server")

_configured = False


def _coerce_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level '{level}'")
    return numeric


def _build_handlers(console: bool, log_file: Optional[Path], level: int) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(
            log_file,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
            encoding="utf-8",
        ))

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def _quiet(names: Iterable[str]) -> None:
    for name in names:
        logging.getLogger(name).setLevel(logging.ERROR)


def configure_logging(
    level: Union[int, str] = logging.INFO,
    *,
    force: bool = False,
    console: bool = True,
    log_file: Optional[Union[str, Path]] = None,
    quiet_loggers: Iterable[str] = QUIET_LOGGERS,
) -> None:
    """Install the console and rotating-file handlers on the root logger.

    A second call without ``force`` only changes the level, so library code
    and tests can call this freely after the service has set up its handlers.

    Args:
        level: Level name ("info", "debug", ...) or number.
        force: Replace existing handlers even if already configured.
        console: Log to stdout.
        log_file: Rotating log file path, or None for no file.
        quiet_loggers: Third-party loggers raised to ERROR.
    """
    global _configured
    numeric_level = _coerce_level(level)
    root = logging.getLogger()

    if _configured and not force:
        root.setLevel(numeric_level)
        _quiet(quiet_loggers)
        return

    for handler in list(root.handlers):
        root.removeHandler(handler)
        with contextlib.suppress(Exception):
            handler.close()

    handlers = _build_handlers(console, Path(log_file) if log_file else None, numeric_level)
    if not handlers:
        # Nothing requested; keep warnings visible on stderr.
        handlers = [logging.StreamHandler()]
        handlers[0].setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
    for handler in handlers:
        root.addHandler(handler)

    root.setLevel(numeric_level)
    _quiet(quiet_loggers)
    _configured = True


__all__ = ["configure_logging", "LOG_FORMAT", "LOG_DATEFMT", "QUIET_LOGGERS"]
