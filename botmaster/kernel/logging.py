"""
Logging System - Centralized logging setup.

Provides colored console logging and file logging with log rotation.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import colorlog

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Handlers installed by setup_logging, so repeated calls replace them
_installed: list[logging.Handler] = []


def _resolve_level(level: int | str) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return level


def setup_logging(
    level: int | str = logging.INFO,
    log_dir: str | Path | None = None,
) -> logging.Logger:
    """
    Configure the ``botmaster`` logger.

    Console output is colored via colorlog. When ``log_dir`` is given, a
    rotating ``botmaster.log`` is written there at DEBUG level.
    """
    root = logging.getLogger("botmaster")
    for handler in _installed:
        root.removeHandler(handler)
        handler.close()
    _installed.clear()

    console_formatter = colorlog.ColoredFormatter(
        "%(log_color)s%(asctime)s | %(levelname)-8s | %(name)s%(reset)s | %(message)s",
        datefmt=DATE_FORMAT,
        log_colors={
            "DEBUG": "green",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "red,bg_white",
        },
    )
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(console_formatter)
    console_handler.setLevel(_resolve_level(level))
    _installed.append(console_handler)

    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path / "botmaster.log",
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        file_handler.setLevel(logging.DEBUG)
        _installed.append(file_handler)

    for handler in _installed:
        root.addHandler(handler)
    root.setLevel(logging.DEBUG)
    return root


def set_level(level: int | str) -> None:
    """Set the console logging level."""
    resolved = _resolve_level(level)
    for handler in _installed:
        if not isinstance(handler, RotatingFileHandler):
            handler.setLevel(resolved)
