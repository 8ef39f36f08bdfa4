"""
Logging configuration for the yoga admin backend.

Every module logs through ``logging.getLogger(__name__)``; this module only
wires handlers once at process start.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Union


LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_DIR = Path("logs")


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_to_file: bool = False,
    log_filename: Optional[str] = None,
    log_dir: Optional[Path] = None,
) -> None:
    """
    Route every yoga_admin logger to stdout, plus a dated file when asked.

    level accepts the log_level string from the config file. An unknown
    name falls back to INFO rather than failing start-up. Calling this again
    replaces the handlers installed by the previous call.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handlers = [logging.StreamHandler(sys.stdout)]

    if log_to_file:
        directory = log_dir or LOG_DIR
        directory.mkdir(parents=True, exist_ok=True)
        if log_filename is None:
            log_filename = f"yoga_admin_{datetime.now().strftime('%Y-%m-%d')}.log"
        handlers.append(logging.FileHandler(directory / log_filename, encoding="utf-8"))

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )

    # The Firebase SDK and its HTTP stack are chatty at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("google").setLevel(logging.WARNING)
    logging.getLogger("firebase_admin").setLevel(logging.WARNING)

    logging.getLogger("yoga_admin").info("Logging initialized")


def get_logger(name: str) -> logging.Logger:
    """Same as logging.getLogger; kept so callers outside the package have one import"""
    return logging.getLogger(name)
