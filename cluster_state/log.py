"""Console logging for the cluster-state commands."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional, TextIO

LOGGER_NAME = "cluster_state"
SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(message)s"
DATE_FORMAT = "%H:%M:%S"


class ColorFormatter(logging.Formatter):
    COLORS = {
        logging.DEBUG: "\033[0;36m",
        SUCCESS: "\033[0;32m",
        logging.WARNING: "\033[1;33m",
        logging.ERROR: "\033[0;31m",
        logging.CRITICAL: "\033[0;31m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool) -> None:
        super().__init__(LOG_FORMAT, datefmt=DATE_FORMAT)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        if not self.use_color:
            return base
        color = self.COLORS.get(record.levelno, "")
        if not color:
            return base
        return f"{color}{base}{self.RESET}"


def build_logger(verbose: bool = False, log_file: Optional[Path] = None) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(ColorFormatter(sys.stderr.isatty()))
        logger.addHandler(handler)
        logger.propagate = False
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    if log_file is not None:
        attach_log_file(logger, log_file)
    return logger


def attach_log_file(logger: logging.Logger, log_file: Path) -> None:
    """Mirror log records into ``log_file`` without colour codes.

    Raises OSError when the file cannot be opened for appending.
    """
    target = str(Path(log_file).resolve())
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == target:
            return
    file_handler = logging.FileHandler(target, mode="a", encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(file_handler)


def log_success(logger: logging.Logger, message: str) -> None:
    logger.log(SUCCESS, message)


def print_separator(title: str = "", stream: Optional[TextIO] = None, width: int = 70) -> None:
    out = stream or sys.stdout
    line = "=" * width
    if title:
        out.write(f"\n{line}\n{title.center(width)}\n{line}\n")
    else:
        out.write(f"{line}\n")
    out.flush()
