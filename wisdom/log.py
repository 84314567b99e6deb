"""
Logging setup for Wisdom.

Logs go to stderr, where the external collector picks them up. An optional
rotation-tolerant file handler can be attached; its write failures never
interrupt the server.
"""

import logging
import logging.handlers
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _make_file_handler(path: str) -> logging.Handler:
    # WatchedFileHandler reopens the file when an external rotator moves it
    handler = logging.handlers.WatchedFileHandler(path, mode="a")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    original_emit = handler.emit

    def safe_emit(record):
        try:
            original_emit(record)
        except (IOError, OSError):
            # Logging failures degrade silently
            pass

    handler.emit = safe_emit
    return handler


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure root logging for the process.

    Args:
        level: Log level name (DEBUG, INFO, ...); unknown names fall back to INFO
        log_file: Optional path of an additional log file
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )

    if not log_file:
        return

    root = logging.getLogger()
    # Prevent duplicate handlers when called twice
    if any(isinstance(h, logging.handlers.WatchedFileHandler)
           and getattr(h, "baseFilename", None) == os.path.abspath(log_file)
           for h in root.handlers):
        return

    try:
        root.addHandler(_make_file_handler(log_file))
    except OSError as e:
        logging.getLogger(__name__).warning(f"Cannot open log file {log_file}: {e}")
