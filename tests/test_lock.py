# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Tests for the advisory session lock."""

import builtins
import fcntl
import json
import os
import socket
import time
from unittest.mock import patch

import pytest

from context_engine.exceptions import SessionLockedError
from context_engine.services.session.lock import SessionLock

DEAD_PID = 2147483647


def _write_lock(path, **info):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(info), encoding="utf-8")


@pytest.fixture
def lock(sessions_dir):
    session_lock = SessionLock("sess-1", sessions_dir)
    yield session_lock
    session_lock.release()


class TestAcquireRelease:
    """Tests for taking and giving back the lock."""

    def test_acquire_writes_owner(self, lock):
        """Verify acquiring records this process as owner."""
        assert lock.acquire() is True
        assert lock.held is True
        info = lock.get_lock_info()
        assert info["pid"] == os.getpid()
        assert info["hostname"] == socket.gethostname()
        assert info["session_id"] == "sess-1"

    def test_acquire_twice_is_noop(self, lock):
        """Verify re-acquiring an owned lock succeeds."""
        assert lock.acquire() is True
        assert lock.acquire() is True

    def test_release_removes_file(self, lock):
        """Verify releasing deletes the lock file."""
        lock.acquire()
        lock.release()
        assert lock.held is False
        assert not lock.lock_file.exists()
        lock.release()

    def test_second_owner_rejected(self, lock, sessions_dir):
        """Verify a second lock object cannot take a held lock."""
        lock.acquire()
        other = SessionLock("sess-1", sessions_dir)
        assert other.acquire() is False
        assert other.held is False

    def test_available_after_release(self, lock, sessions_dir):
        """Verify the lock can be taken once released."""
        lock.acquire()
        lock.release()
        other = SessionLock("sess-1", sessions_dir)
        try:
            assert other.acquire() is True
        finally:
            other.release()

    def test_invalid_session_id(self, sessions_dir):
        """Verify path-like session ids are rejected."""
        with pytest.raises(ValueError):
            SessionLock("../etc", sessions_dir)


class TestContextManager:
    """Tests for ``with SessionLock(...)``."""

    def test_acquires_and_releases(self, sessions_dir):
        """Verify the block runs with the lock held."""
        with SessionLock("sess-1", sessions_dir) as held:
            assert held.held is True
            assert held.lock_file.exists()
        assert not held.lock_file.exists()

    def test_raises_when_locked(self, lock, sessions_dir):
        """Verify entering a held lock raises."""
        lock.acquire()
        with pytest.raises(SessionLockedError):
            with SessionLock("sess-1", sessions_dir):
                pass


class TestIsLocked:
    """Tests for lock inspection."""

    def test_no_file(self, lock):
        """Verify a missing lock file means unlocked."""
        assert lock.is_locked() is False

    def test_held_lock(self, lock, sessions_dir):
        """Verify a held lock is reported by another observer."""
        lock.acquire()
        assert SessionLock("sess-1", sessions_dir).is_locked() is True

    def test_live_record_without_flock(self, lock):
        """Verify a fresh record for a live process counts as locked."""
        _write_lock(
            lock.lock_file,
            pid=os.getpid(),
            hostname=socket.gethostname(),
            timestamp=time.time(),
        )
        assert lock.is_locked() is True

    def test_stale_record(self, lock):
        """Verify a record for a dead process counts as unlocked."""
        _write_lock(
            lock.lock_file,
            pid=DEAD_PID,
            hostname=socket.gethostname(),
            timestamp=time.time(),
        )
        assert lock.is_locked() is False


class TestStaleness:
    """Tests for stale lock detection and forced takeover."""

    def test_dead_pid(self, lock):
        """Verify a dead owner makes the lock stale."""
        _write_lock(lock.lock_file, pid=DEAD_PID, hostname=socket.gethostname(), timestamp=time.time())
        assert lock.is_stale() is True

    def test_remote_host_not_checked_by_pid(self, lock):
        """Verify pids from another host are not checked locally."""
        _write_lock(lock.lock_file, pid=DEAD_PID, hostname="elsewhere", timestamp=time.time())
        assert lock.is_stale() is False

    def test_old_timestamp(self, sessions_dir):
        """Verify an old lock is stale even if its owner lives."""
        session_lock = SessionLock("sess-1", sessions_dir, stale_after=60)
        _write_lock(
            session_lock.lock_file,
            pid=os.getpid(),
            hostname=socket.gethostname(),
            timestamp=time.time() - 3600,
        )
        assert session_lock.is_stale() is True

    def test_malformed_record(self, lock):
        """Verify an unreadable record is stale."""
        lock.lock_file.parent.mkdir(parents=True, exist_ok=True)
        lock.lock_file.write_text("{not json", encoding="utf-8")
        assert lock.is_stale() is True

    def test_force_replaces_stale_lock(self, lock):
        """Verify force acquisition takes over a stale lock file."""
        _write_lock(lock.lock_file, pid=DEAD_PID, hostname=socket.gethostname(), timestamp=time.time())
        assert lock.acquire(force=True) is True
        assert lock.get_lock_info()["pid"] == os.getpid()


class TestStoreLock:
    """Tests for locking through the message store."""

    def test_store_lock(self, message_store, sessions_dir):
        """Verify the store hands out a lock for its own session."""
        store = message_store()
        with store.lock() as held:
            assert held.session_id == store.session_id
            assert not SessionLock(store.session_id, sessions_dir).acquire()


class TestUnlinkedLockFile:
    """Tests for acquirers that opened a lock file its owner then removed."""

    def test_retries_after_locking_removed_file(self, lock, sessions_dir):
        """Verify a flock on an unlinked file is not taken as ownership."""
        lock.acquire()
        old_handle = open(lock.lock_file, "a+", encoding="utf-8")
        lock.release()

        real_open = builtins.open
        handles = iter([old_handle])

        def _open(*args, **kwargs):
            return next(handles, None) or real_open(*args, **kwargs)

        other = SessionLock("sess-1", sessions_dir)
        try:
            with patch("context_engine.services.session.lock.open", side_effect=_open, create=True):
                assert other.acquire() is True
            assert old_handle.closed
            assert os.fstat(other._fh.fileno()).st_ino == os.stat(other.lock_file).st_ino
        finally:
            other.release()

    def test_replaced_file_does_not_grant_second_owner(self, lock, sessions_dir):
        """Verify only the owner of the file at the lock path holds the session."""
        lock.acquire()
        old_handle = open(lock.lock_file, "a+", encoding="utf-8")
        lock.release()
        current = SessionLock("sess-1", sessions_dir)
        try:
            assert current.acquire() is True
            fcntl.flock(old_handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            assert current._is_current(current._fh) is True
            assert current._is_current(old_handle) is False
        finally:
            old_handle.close()
            current.release()

    def test_force_keeps_held_lock(self, lock, sessions_dir):
        """Verify force never removes a file whose flock is held."""
        lock.acquire()
        _write_lock(lock.lock_file, pid=DEAD_PID, hostname=socket.gethostname(), timestamp=time.time())
        inode = os.stat(lock.lock_file).st_ino
        other = SessionLock("sess-1", sessions_dir)
        assert other.acquire(force=True) is False
        assert os.stat(lock.lock_file).st_ino == inode
