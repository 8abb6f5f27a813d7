"""Utility functions for SubAlign."""

import json
import os
import logging
import tempfile
from datetime import datetime, timezone
from typing import Any

from .exceptions import FileSystemError

logger = logging.getLogger(__name__)

def ensure_dir_exists(dir_path: str) -> None:
    """
    Ensures that a directory exists. Creates it if it doesn't.

    Args:
        dir_path: The path to the directory.

    Raises:
        FileSystemError: If the directory cannot be created due to permissions
                         or if the path exists but is not a directory.
    """
    if not dir_path:
        raise ValueError("Directory path cannot be empty.")
    try:
        if not os.path.exists(dir_path):
            os.makedirs(dir_path)
            logger.info(f"Created directory: {dir_path}")
        elif not os.path.isdir(dir_path):
            raise FileSystemError(f"Path exists but is not a directory: {dir_path}")
    except OSError as e:
        logger.error(f"Error creating or accessing directory {dir_path}: {e}", exc_info=True)
        raise FileSystemError(f"Could not create or access directory {dir_path}: {e}") from e

def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")

def format_offset(offset_ms: int) -> str:
    """Formats an offset with an explicit sign, e.g. '+500 ms'."""
    sign = "+" if offset_ms >= 0 else ""
    return f"{sign}{offset_ms} ms"

def write_json_atomic(file_path: str, value: Any) -> None:
    """
    Writes a JSON document by writing a sibling temp file and renaming it over
    the target, so readers never observe a half-written file.

    Raises:
        FileSystemError: If the file cannot be written.
    """
    parent = os.path.dirname(os.path.abspath(file_path))
    ensure_dir_exists(parent)
    fd, tmp_path = tempfile.mkstemp(prefix=f".{os.path.basename(file_path)}.", suffix=".tmp", dir=parent)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(value, f, indent=2, ensure_ascii=False)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, file_path)
    except OSError as e:
        logger.error(f"Failed to write JSON file {file_path}: {e}", exc_info=True)
        if os.path.exists(tmp_path):
            try:
                os.remove(tmp_path)
            except OSError:
                logger.warning(f"Could not clean up temporary file: {tmp_path}")
        raise FileSystemError(f"Could not write {file_path}: {e}") from e

def read_json(file_path: str) -> Any:
    """
    Reads a JSON document.

    Raises:
        FileNotFoundError: If the file does not exist.
        FileSystemError: If the file cannot be read or is not valid JSON.
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"JSON file not found: {file_path}")
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Could not read JSON file {file_path}: {e}")
        raise FileSystemError(f"Could not read JSON file {file_path}: {e}") from e
