"""Logging helpers shared by every Pageshift module."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = "pageshift"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "off": logging.CRITICAL + 1,
}


def get_logger(name: str) -> logging.Logger:
    """Return a logger nested under the package logger."""

    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def configure_logging(mode: str = "info", log_file: Optional[Path] = None) -> logging.Logger:
    """Install console (and optional file) handlers for the given log mode.

    ``off`` silences the package entirely, ``debug`` also emits provider
    request/response dumps. Calling this again replaces the previous handlers.
    """

    normalized = (mode or "info").strip().lower()
    level = _LEVELS.get(normalized, logging.INFO)

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)

    root.setLevel(level)
    root.propagate = False
    if normalized == "off":
        root.addHandler(logging.NullHandler())
        return root

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    return root
