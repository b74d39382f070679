"""Logging setup shared by the CLI, the service and worker threads."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

ROOT_LOGGER = "gamedir"

_CONSOLE_FORMAT = "[gamedir] %(levelname)s %(message)s"
# Pipelines run on "gamedir-worker_N" threads; verbose output names the worker.
_VERBOSE_CONSOLE_FORMAT = "[gamedir] %(levelname)s [%(threadName)s] %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(threadName)s]: %(message)s"

# Marks handlers installed here so reconfiguring leaves foreign handlers alone.
_OWNED = "_gamedir_owned"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``gamedir.<name>``, or the package root logger without a name."""
    if not name:
        return logging.getLogger(ROOT_LOGGER)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Install console (and optional file) handlers on the package logger.

    Safe to call repeatedly: handlers from a previous call are replaced.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.propagate = False

    for handler in _owned_handlers(logger):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setFormatter(
        logging.Formatter(_VERBOSE_CONSOLE_FORMAT if verbose else _CONSOLE_FORMAT)
    )
    _install(logger, console, level)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        _install(logger, file_handler, level)

    return logger


def _install(logger: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    setattr(handler, _OWNED, True)
    logger.addHandler(handler)


def _owned_handlers(logger: logging.Logger) -> List[logging.Handler]:
    return [handler for handler in logger.handlers if getattr(handler, _OWNED, False)]


__all__ = ["ROOT_LOGGER", "configure_logging", "get_logger"]
