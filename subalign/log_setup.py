"""Logging configuration for SubAlign."""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Iterable, Optional, TextIO

from .utils import ensure_dir_exists

DEFAULT_LOG_FORMAT = '%(asctime)s - %(levelname)s - [%(name)s:%(lineno)d] - %(message)s'
DEFAULT_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

# Pulled in by Whisper/torch; chatty at DEBUG
NOISY_LOGGERS = ("numba", "urllib3", "filelock", "httpx", "httpcore")


def parse_log_level(name: str) -> int:
    """Maps 'debug', 'INFO', ... to a logging level, defaulting to INFO."""
    level = logging.getLevelName(str(name or "").upper())
    return level if isinstance(level, int) else logging.INFO


def _reset_root(root: logging.Logger) -> None:
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()


def setup_logging(
    log_level: int = logging.INFO,
    log_dir: str = "logs",
    log_file: str = "subalign.log",
    stream: Optional[TextIO] = None,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """
    Points the root logger at the console and a rotating log file.

    Safe to call more than once: the CLI calls it before the configuration is
    loaded and again with the configured log location, and each call replaces
    the handlers installed by the previous one.

    Args:
        log_level: The minimum logging level (e.g., logging.INFO, logging.DEBUG).
        log_dir: The directory to store log files.
        log_file: The name of the log file.
        stream: Console stream, stdout by default.
        quiet: Third-party loggers capped at WARNING.
    """
    root = logging.getLogger()
    _reset_root(root)
    root.setLevel(log_level)
    formatter = logging.Formatter(DEFAULT_LOG_FORMAT, datefmt=DEFAULT_DATE_FORMAT)

    console = logging.StreamHandler(stream or sys.stdout)
    console.setFormatter(formatter)
    console.setLevel(log_level)
    root.addHandler(console)

    log_path = os.path.join(log_dir, log_file)
    try:
        ensure_dir_exists(log_dir)
        file_handler = RotatingFileHandler(log_path, maxBytes=MAX_LOG_BYTES,
                                           backupCount=LOG_BACKUP_COUNT, encoding='utf-8')
    except Exception as e:
        # Console logging still works without the file handler
        root.error(f"Failed to set up file logging handler at {log_path}: {e}", exc_info=True)
    else:
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
        root.info(f"Logging initialized. Log file: {log_path}")

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logging_from_config(config: dict, log_level: int) -> None:
    """Re-initializes logging at the location named by the loaded config."""
    setup_logging(log_level=log_level,
                  log_dir=config.get('log_dir') or 'logs',
                  log_file=config.get('log_file') or 'subalign.log')
