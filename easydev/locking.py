# File: easydev/locking.py
"""
EasyDev - Cross-Process File Lock
==================================
Exclusive advisory lock around the persisted project state.

- Unix/Linux/macOS: ``fcntl.flock``
- Windows: ``msvcrt.locking``

The lock is taken non-blocking and retried until a deadline, so a stuck
peer turns into a ``LockTimeoutError`` instead of a hang.

Usage::

    with FileLock(state_dir / "state.lock", timeout=10.0):
        ...  # read-modify-write
"""

from __future__ import annotations

import logging
import platform
import time
from pathlib import Path
from typing import IO, List, Optional

from easydev.errors import LockTimeoutError

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("easydev.locking")

_IS_WINDOWS: bool = platform.system() == "Windows"


class _LockBusy(Exception):
    """Lock held by another process (internal)."""


def _try_lock(handle: IO[str]) -> None:
    if _IS_WINDOWS:
        import msvcrt

        handle.seek(0)
        try:
            msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
        except OSError as exc:
            # errno 13 / 36: region already locked
            if exc.errno in (13, 36):
                raise _LockBusy() from exc
            raise
    else:
        import fcntl

        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as exc:
            raise _LockBusy() from exc


def _unlock(handle: IO[str]) -> None:
    if _IS_WINDOWS:
        import msvcrt

        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
    else:
        import fcntl

        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


class FileLock:
    """
    Exclusive lock on *path*, usable as a context manager.

    Args:
        path: Lock file (created if missing, never deleted).
        timeout: Seconds to keep retrying; 0 means a single attempt.
        poll_interval: Seconds between attempts.
    """

    def __init__(self, path: Path, timeout: float = 10.0, poll_interval: float = 0.05) -> None:
        self.path: Path = path
        self.timeout: float = max(0.0, timeout)
        self.poll_interval: float = poll_interval
        self._handle: Optional[IO[str]] = None

    @property
    def is_locked(self) -> bool:
        return self._handle is not None

    def acquire(self) -> None:
        """
        Block until the lock is held.

        Raises:
            LockTimeoutError: still busy after ``timeout`` seconds.
        """
        if self._handle is not None:
            raise RuntimeError(f"lock already held: {self.path}")

        self.path.parent.mkdir(parents=True, exist_ok=True)
        handle: IO[str] = open(self.path, "a+", encoding="utf-8")
        deadline: float = time.monotonic() + self.timeout
        attempts: int = 0

        while True:
            attempts += 1
            try:
                _try_lock(handle)
                break
            except _LockBusy:
                if time.monotonic() >= deadline:
                    handle.close()
                    logger.error(
                        "Lock %s still busy after %.2fs (%d attempts)",
                        self.path, self.timeout, attempts,
                    )
                    raise LockTimeoutError(str(self.path), self.timeout) from None
                time.sleep(self.poll_interval)
            except BaseException:
                handle.close()
                raise

        self._handle = handle
        logger.debug("Acquired lock on %s after %d attempt(s)", self.path, attempts)

    def release(self) -> None:
        """Release the lock; a no-op when not held."""
        handle: Optional[IO[str]] = self._handle
        if handle is None:
            return
        self._handle = None
        try:
            _unlock(handle)
        finally:
            handle.close()
        logger.debug("Released lock on %s", self.path)

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[object],
    ) -> None:
        self.release()

    def __repr__(self) -> str:
        state: str = "locked" if self.is_locked else "unlocked"
        return f"<FileLock {self.path} {state}>"


__all__: List[str] = ["FileLock"]
