"""Cross-process workspace lock.

Every mutating command holds an exclusive advisory lock on
.cms-mirror/workspace.lock so two processes never write one workspace at
the same time. Within one process, per-container locks in the metadata
store take over.
"""

import logging
import os
from pathlib import Path
from typing import Optional

# Import fcntl for POSIX file locking (not available on Windows)
try:
    import fcntl
    HAS_FCNTL = True
except ImportError:
    HAS_FCNTL = False

from .errors import WorkspaceLockedError

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = "workspace.lock"


class WorkspaceLock:
    """Exclusive, non-blocking lock on a workspace.

    Example:
        >>> with WorkspaceLock(Path(".cms-mirror")):
        ...     container.pull()
    """

    def __init__(self, state_dir: Path):
        self.lock_path = Path(state_dir) / LOCK_FILE_NAME
        self._lock_file = None

    @property
    def is_held(self) -> bool:
        return self._lock_file is not None

    def acquire(self) -> None:
        """Take the lock.

        Raises:
            WorkspaceLockedError: If another process holds it
        """
        if self._lock_file is not None:
            return

        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        lock_file = open(self.lock_path, 'a+')

        if not HAS_FCNTL:
            logger.warning(
                "File locking not available on this platform. "
                "Concurrent commands may corrupt the workspace."
            )
            self._lock_file = lock_file
            return

        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            lock_file.close()
            raise WorkspaceLockedError(str(self.lock_path))

        lock_file.seek(0)
        lock_file.truncate()
        lock_file.write(f"{os.getpid()}\n")
        lock_file.flush()
        self._lock_file = lock_file
        logger.debug(f"Workspace lock acquired: {self.lock_path}")

    def release(self) -> None:
        if self._lock_file is None:
            return
        try:
            if HAS_FCNTL:
                fcntl.flock(self._lock_file.fileno(), fcntl.LOCK_UN)
            logger.debug("Workspace lock released")
        except OSError as e:
            logger.warning(f"Failed to release workspace lock: {e}")
        finally:
            self._lock_file.close()
            self._lock_file = None

    def holder_pid(self) -> Optional[int]:
        """Pid recorded by the last holder, if readable."""
        try:
            text = self.lock_path.read_text().strip()
        except OSError:
            return None
        return int(text) if text.isdigit() else None

    def __enter__(self) -> "WorkspaceLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
