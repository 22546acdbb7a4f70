"""
On-disk format for the feedback store.

The store lives at <database_dir>/feedback.json:

    {"version": 1, "events": [{"type", "source", "target", "timestamp"}, ...]}

Writes go to a temp file in the same directory and are renamed over the
target, so a crash mid-write leaves the previous file intact.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from loguru import logger

from ..errors import FeedbackFileNotFoundError, PersistenceError
from .models import FeedbackEvent

FEEDBACK_FILENAME = "feedback.json"
FEEDBACK_FORMAT_VERSION = 1


def feedback_path(database_dir: Union[str, Path]) -> Path:
    return Path(database_dir) / FEEDBACK_FILENAME


def atomic_write_text(path: Path, content: str) -> None:
    """
    Write a file via temp file + rename.

    The temp file is removed on every failure path.

    Raises:
        PersistenceError: If the directory cannot be created or the write fails
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=f"{path.name}.", suffix=".tmp")
    except OSError as e:
        raise PersistenceError(f"Cannot prepare {path} for writing: {e}", path=str(path)) from e

    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        temp_path.replace(path)
    except OSError as e:
        temp_path.unlink(missing_ok=True)
        raise PersistenceError(f"Failed to write {path}: {e}", path=str(path)) from e
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


def serialize_events(events: Iterable[FeedbackEvent]) -> str:
    document = {
        "version": FEEDBACK_FORMAT_VERSION,
        "events": [event.to_dict() for event in events],
    }
    return json.dumps(document, indent=2, ensure_ascii=False)


def write_feedback_file(database_dir: Union[str, Path], events: Iterable[FeedbackEvent]) -> Path:
    """
    Persist events to <database_dir>/feedback.json.

    Returns:
        Path of the written file

    Raises:
        PersistenceError: On any write failure
    """
    path = feedback_path(database_dir)
    atomic_write_text(path, serialize_events(events))
    return path


def validate_document(data: Any, path: Path) -> Optional[list]:
    """
    Check the top-level shape of a feedback document.

    Fails closed: any version or shape mismatch returns None (and logs a
    warning) rather than attempting a partial parse.

    Returns:
        The raw events list, or None if the document must be ignored
    """
    if not isinstance(data, dict):
        logger.warning(f"FeedbackStore: Invalid format (not an object) in {path}, starting fresh")
        return None

    version = data.get("version")
    if version != FEEDBACK_FORMAT_VERSION or isinstance(version, bool):
        logger.warning(f"FeedbackStore: Unsupported version {version!r} in {path}, starting fresh")
        return None

    events = data.get("events")
    if not isinstance(events, list):
        logger.warning(
            f"FeedbackStore: Invalid format (events not an array) in {path}, starting fresh"
        )
        return None

    return events


def read_feedback_file(database_dir: Union[str, Path]) -> Optional[list]:
    """
    Read raw event entries from <database_dir>/feedback.json.

    Returns:
        Raw event entries, or None if the file is unparseable or has the
        wrong version/shape

    Raises:
        FeedbackFileNotFoundError: If the file does not exist
        PersistenceError: On any other I/O failure
    """
    path = feedback_path(database_dir)
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise FeedbackFileNotFoundError(f"No feedback file at {path}", path=str(path)) from e
    except UnicodeDecodeError as e:
        logger.warning(f"FeedbackStore: {path} is not valid UTF-8: {e}, starting fresh")
        return None
    except OSError as e:
        raise PersistenceError(f"Failed to read {path}: {e}", path=str(path)) from e

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        logger.warning(f"FeedbackStore: Could not parse {path}: {e}, starting fresh")
        return None

    return validate_document(data, path)
