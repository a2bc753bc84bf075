"""Host-wide update lock.

Two update runs on one host must never race to write the same install
path.  The lock is an advisory ``flock`` on a lock file: a second run that
finds it held raises ``LockHeldError`` at once instead of waiting.  The
kernel drops the lock if the holder dies, so a crash never leaves a stale
lock behind.
"""

from __future__ import annotations

import fcntl
import logging
import os
from pathlib import Path

from viewtube_release.core.errors import LockHeldError, ReleaseIOError

logger = logging.getLogger(__name__)


class UpdateLock:
    """Exclusive, non-blocking lock usable as a context manager.

    Parameters
    ----------
    path:
        The lock file.  Created if missing; never deleted.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._fd: int | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        if self._fd is not None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self._path, os.O_RDWR | os.O_CREAT, 0o600)
        except OSError as exc:
            raise ReleaseIOError(f"Cannot open lock file {self._path}: {exc}") from exc
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as exc:
            os.close(fd)
            raise LockHeldError(
                f"Another update run holds {self._path}; exiting"
            ) from exc
        except OSError as exc:
            os.close(fd)
            raise ReleaseIOError(f"Cannot lock {self._path}: {exc}") from exc

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode("ascii"))
        self._fd = fd
        logger.debug("Acquired update lock %s", self._path)

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
        logger.debug("Released update lock %s", self._path)

    def __enter__(self) -> UpdateLock:
        self.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()
