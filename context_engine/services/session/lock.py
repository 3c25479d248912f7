# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Advisory session lock.

Prevents two processes from resuming the same session. The lock file
``<sessions_dir>/<session_id>.lock`` is held with ``fcntl.flock`` for as
long as the lock is owned and records who owns it:

    {"pid": 1234, "hostname": "dev-box", "timestamp": 1760000000.0,
     "session_id": "..."}

A lock is stale when its record is unreadable, its process is gone, or it
is older than ``SESSION_LOCK_STALE_SECONDS``. Stale locks are only removed
when acquiring with ``force=True``.

An owner unlinks the file before unlocking it, so an acquirer that wins
the flock checks that the file it locked is still the one at the lock
path and retries otherwise.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import socket
import time
from pathlib import Path
from typing import Any, Dict, IO, Optional, Union

from context_engine.config import settings
from context_engine.exceptions import SessionLockedError
from context_engine.services.session.persistence import read_json, validate_name

logger = logging.getLogger(__name__)


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class SessionLock:
    """File lock guarding a single session.

    Usable as a context manager, which acquires or raises
    ``SessionLockedError`` and releases on exit.

    Args:
        session_id (str): Session to lock.
        sessions_dir (Optional[Union[str, Path]]): Directory holding the lock
            file; defaults to ``SESSIONS_DIR``.
        timeout (float): Seconds to wait when used as a context manager.
        stale_after (Optional[float]): Age in seconds after which a lock is
            stale; defaults to ``SESSION_LOCK_STALE_SECONDS``.
    """

    def __init__(
        self,
        session_id: str,
        sessions_dir: Optional[Union[str, Path]] = None,
        timeout: float = 0.0,
        stale_after: Optional[float] = None,
    ) -> None:
        self.session_id = validate_name(session_id, "session id")
        self.sessions_dir = Path(sessions_dir or settings.SESSIONS_DIR).expanduser()
        self.lock_file = self.sessions_dir / f"{session_id}.lock"
        self.timeout = timeout
        self.stale_after = settings.SESSION_LOCK_STALE_SECONDS if stale_after is None else stale_after
        self.acquired_at: Optional[float] = None
        self._fh: Optional[IO[str]] = None

    @property
    def held(self) -> bool:
        return self._fh is not None

    def acquire(self, timeout: float = 0.0, force: bool = False) -> bool:
        """Try to take the lock.

        Args:
            timeout (float): Seconds to keep retrying; ``0`` tries once.
            force (bool): Remove a stale lock file before trying.

        Returns:
            bool: ``True`` if the lock is now held by this object.
        """
        if self._fh is not None:
            return True

        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        if force and self.lock_file.exists() and self.is_stale():
            self._remove_stale()

        deadline = time.monotonic() + max(0.0, timeout)
        while True:
            fh = open(self.lock_file, "a+", encoding="utf-8")
            try:
                fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                fh.close()
            else:
                if not self._is_current(fh):
                    # Locked a file another owner already unlinked
                    fh.close()
                    continue
                self._write_info(fh)
                self._fh = fh
                self.acquired_at = time.time()
                logger.debug("Acquired session lock %s", self.lock_file)
                return True

            if time.monotonic() >= deadline:
                logger.debug("Session %s is locked by another process", self.session_id)
                return False
            time.sleep(settings.SESSION_LOCK_POLL_INTERVAL)

    def release(self) -> None:
        """Release the lock and remove the lock file. Safe to call twice."""
        if self._fh is None:
            return
        try:
            self.lock_file.unlink(missing_ok=True)
            fcntl.flock(self._fh.fileno(), fcntl.LOCK_UN)
        finally:
            self._fh.close()
            self._fh = None
            self.acquired_at = None
        logger.debug("Released session lock %s", self.lock_file)

    def is_locked(self) -> bool:
        """Whether a live lock is held on the session by anyone.

        Returns:
            bool: ``True`` if the lock file is flocked, or present and not
                stale.
        """
        if not self.lock_file.exists():
            return False
        try:
            with open(self.lock_file, "r", encoding="utf-8") as fh:
                try:
                    fcntl.flock(fh.fileno(), fcntl.LOCK_SH | fcntl.LOCK_NB)
                except BlockingIOError:
                    return True
                fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            return False
        return not self.is_stale()

    def get_lock_info(self) -> Optional[Dict[str, Any]]:
        """The owner record stored in the lock file, if readable."""
        return read_json(self.lock_file)

    def is_stale(self) -> bool:
        """Whether the recorded owner is gone or the lock is too old."""
        info = self.get_lock_info()
        if not info:
            return True
        pid = info.get("pid")
        if info.get("hostname") in (None, socket.gethostname()):
            if not isinstance(pid, int) or not _pid_alive(pid):
                return True
        timestamp = info.get("timestamp")
        if not isinstance(timestamp, (int, float)):
            return True
        return time.time() - timestamp > self.stale_after

    def _remove_stale(self) -> None:
        """Unlink a stale lock file, but only while holding its flock."""
        try:
            fh = open(self.lock_file, "r", encoding="utf-8")
        except FileNotFoundError:
            return
        with fh:
            try:
                fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                logger.debug("Stale-looking lock %s is still held, leaving it", self.lock_file)
                return
            if self._is_current(fh):
                logger.info("Removing stale session lock %s", self.lock_file)
                self.lock_file.unlink(missing_ok=True)

    def _is_current(self, fh: IO[str]) -> bool:
        """Whether ``fh`` still refers to the file at ``lock_file``."""
        try:
            on_disk = os.stat(self.lock_file)
        except FileNotFoundError:
            return False
        held = os.fstat(fh.fileno())
        return (held.st_dev, held.st_ino) == (on_disk.st_dev, on_disk.st_ino)

    def _write_info(self, fh: IO[str]) -> None:
        info = {
            "pid": os.getpid(),
            "hostname": socket.gethostname(),
            "timestamp": time.time(),
            "session_id": self.session_id,
        }
        fh.seek(0)
        fh.truncate()
        json.dump(info, fh, indent=2)
        fh.flush()

    def __enter__(self) -> "SessionLock":
        if not self.acquire(timeout=self.timeout):
            raise SessionLockedError(f"Session {self.session_id} is locked by another process")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
