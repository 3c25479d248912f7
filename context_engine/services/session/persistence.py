# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Crash-safe file helpers.

Writes go to a temporary file in the target's directory and are moved over
the target with ``os.replace``, so the previous file stays intact until the
new one is complete. Reads are tolerant: a missing or unreadable file is
reported as ``None`` rather than raising.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union

from context_engine.exceptions import PersistenceError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def atomic_write_text(path: PathLike, text: str) -> Path:
    """Atomically replace ``path`` with ``text``.

    Creates the parent directory when missing.

    Args:
        path (PathLike): Destination file.
        text (str): Content to write (UTF-8).

    Returns:
        Path: The destination path.

    Raises:
        PersistenceError: If the write or the rename fails. The temporary
            file is removed and the previous destination is left untouched.
    """
    target = Path(path)
    tmp_name: Optional[str] = None
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, target)
    except OSError as e:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
        logger.error("Failed to write %s: %s", target, e)
        raise PersistenceError(f"Failed to write {target}: {e}") from e
    return target


def read_text(path: PathLike) -> Optional[str]:
    """Read a UTF-8 text file.

    Args:
        path (PathLike): File to read.

    Returns:
        Optional[str]: File content, or ``None`` if it is missing or
            unreadable.
    """
    try:
        return Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Failed to read %s: %s", path, e)
        return None


def read_json(path: PathLike) -> Optional[Dict[str, Any]]:
    """Read a JSON object from ``path``.

    Args:
        path (PathLike): File to read.

    Returns:
        Optional[Dict[str, Any]]: Decoded object, or ``None`` if the file is
            missing, unreadable, malformed or not a JSON object.
    """
    text = read_text(path)
    if text is None:
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("Malformed JSON in %s: %s", path, e)
        return None
    if not isinstance(data, dict):
        logger.warning("Expected a JSON object in %s, got %s", path, type(data).__name__)
        return None
    return data


def validate_name(value: str, kind: str = "name") -> str:
    """Check that ``value`` is safe to use as a single file-name component.

    Args:
        value (str): Candidate name.
        kind (str): What the name identifies, used in the error message.

    Returns:
        str: ``value`` unchanged.

    Raises:
        ValueError: If ``value`` is empty, ``.``/``..`` or contains
            characters other than letters, digits, ``_``, ``-`` and ``.``.
    """
    if not value or value in (".", "..") or not all(c.isascii() and (c.isalnum() or c in "_-.") for c in value):
        raise ValueError(f"Invalid {kind}: {value!r}")
    return value
