"""Logging setup helpers."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
}


def parse_level(level: str) -> int:
    try:
        return LEVELS[str(level).strip().lower()]
    except KeyError:
        raise ValueError(f"not a valid log level: {level!r}") from None


def setup_logging(level: str = "info", log_file: Optional[Path] = None) -> logging.Logger:
    """Configure console logging on stderr, plus a rotating file when requested.

    Stdout is reserved for the echoed input lines.
    """

    logger = logging.getLogger()
    logger.setLevel(parse_level(level))

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")

    if log_file and not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=5_000_000, backupCount=3, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if not any(isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr for h in logger.handlers):
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(formatter)
        logger.addHandler(console)

    return logger
