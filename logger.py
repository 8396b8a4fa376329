"""
logger.py
---------
Logging setup for the converter.

Design Decisions:
    * Everything logs under one "schemaconv" logger, set up once when this
      module is first imported; modules ask for a child through
      ``get_logger(__name__)``.
    * The console handler writes to stderr so the report printed on stdout
      stays clean for piping.
    * A file handler is added only when LOG_FILE is set; it always records
      DEBUG so a quiet console run still leaves a full trace.
    * ``set_level`` changes the console level only; the file keeps DEBUG.
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path

from config import CONFIG, get_log_level

_ROOT = "schemaconv"
_CONSOLE_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s (%(filename)s:%(lineno)d): %(message)s"
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT))
    return handler


def _file_handler(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT))
    return handler


def _setup() -> logging.Logger:
    root = logging.getLogger(_ROOT)
    if root.handlers:
        return root
    level = get_log_level()
    root.setLevel(logging.DEBUG if CONFIG.conversion.log_file else level)
    root.addHandler(_console_handler(level))
    if CONFIG.conversion.log_file:
        path = Path(CONFIG.conversion.log_file)
        try:
            root.addHandler(_file_handler(path))
        except OSError as exc:
            root.warning("Cannot open log file '%s': %s", path, exc)
    return root


_setup()


def set_level(level_name: str) -> None:
    """
    Change the console level, e.g. from ``--log-level``.

    Raises:
        ValueError: If *level_name* is not a logging level name.
    """
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level '{level_name}'.")
    root = logging.getLogger(_ROOT)
    if not any(isinstance(h, logging.FileHandler) for h in root.handlers):
        root.setLevel(level)
    for handler in root.handlers:
        if not isinstance(handler, logging.FileHandler):
            handler.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """
    Child logger of "schemaconv".

    Example::

        log = get_logger(__name__)
        log.warning("Lossy mapping for %s", column)
    """
    return logging.getLogger(f"{_ROOT}.{name}")
