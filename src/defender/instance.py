"""
Single-instance guard.

At most one tray client runs per user session. The guard is an advisory
lock on a file in the user's runtime/temp directory; the operating system
drops it when the process exits, so no renewal or stale-lock cleanup is
needed.
"""

import getpass
import logging
import os
import platform
import tempfile
from pathlib import Path
from typing import IO, Optional

from .exceptions import InstanceAlreadyRunningError

logger = logging.getLogger(__name__)

DEFAULT_LOCK_NAME = "ai-defender-tray.lock"


def default_lock_path(name: str = DEFAULT_LOCK_NAME) -> Path:
    """Per-session lock location."""
    runtime_dir = os.environ.get("XDG_RUNTIME_DIR")
    if runtime_dir and Path(runtime_dir).is_dir():
        return Path(runtime_dir) / name

    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "default"
    return Path(tempfile.gettempdir()) / f"{user}-{name}"


class SingleInstanceLock:
    """
    Process-wide advisory lock.

    Usage:
        with SingleInstanceLock() as lock:
            run_client()

    Entering raises InstanceAlreadyRunningError if another process holds it.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = path or default_lock_path()
        self._handle: Optional[IO[str]] = None

    @property
    def held(self) -> bool:
        return self._handle is not None

    def acquire(self) -> bool:
        """Try to take the lock without blocking. Returns False if held elsewhere."""
        if self._handle is not None:
            return True

        self.path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.path, "a+")
        try:
            _lock_file(handle)
        except OSError:
            handle.close()
            logger.debug(f"Single-instance lock held elsewhere: {self.path}")
            return False

        handle.seek(0)
        handle.truncate()
        handle.write(str(os.getpid()))
        handle.flush()
        self._handle = handle
        logger.debug(f"Single-instance lock acquired: {self.path}")
        return True

    def release(self) -> None:
        if self._handle is None:
            return
        try:
            _unlock_file(self._handle)
        finally:
            self._handle.close()
            self._handle = None

    def __enter__(self) -> "SingleInstanceLock":
        if not self.acquire():
            raise InstanceAlreadyRunningError(self.path)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


if platform.system() == "Windows":
    import msvcrt

    def _lock_file(handle: IO[str]) -> None:
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)

    def _unlock_file(handle: IO[str]) -> None:
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)

else:
    import fcntl

    def _lock_file(handle: IO[str]) -> None:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)

    def _unlock_file(handle: IO[str]) -> None:
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
