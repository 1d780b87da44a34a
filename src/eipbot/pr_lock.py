"""Per pull request invocation locking.

The temporary branch used to publish a commit is keyed only by pull request
number, so two invocations for the same pull request would trample each
other. This lock serializes them on one host; invocations on different hosts
(e.g. separate CI runners) are not covered.
"""

import logging
import os
import platform
import socket
from pathlib import Path
from typing import Optional

from .exceptions import PullRequestLockedError
from .models import RepositoryRef

logger = logging.getLogger(__name__)


class PullRequestLock:
    """Non-blocking exclusive file lock for one pull request.

    Example:
        >>> with PullRequestLock(RepositoryRef("ethereum", "EIPs"), 1234, Path(".locks")):
        ...     pass
    """

    def __init__(self, repository: RepositoryRef, pull_number: int, lock_dir: Path):
        self.key = f"{repository.owner}-{repository.name}-{pull_number}"
        self.lock_dir = Path(lock_dir)
        self.lock_dir.mkdir(parents=True, exist_ok=True)
        self.lock_file_path = self.lock_dir / f"{self.key}.lock"
        self._lock_fd: Optional[int] = None
        self.holder_id = f"{os.getpid()}@{socket.gethostname()}"

    def acquire(self) -> bool:
        """Acquire the lock.

        Returns:
            True if acquired, False if another invocation holds it
        """
        fd = os.open(self.lock_file_path, os.O_CREAT | os.O_RDWR)
        try:
            if platform.system() == "Windows":
                import msvcrt

                msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)
            else:
                import fcntl

                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            os.close(fd)
            logger.error(f"[LOCK] {self.key} is already being processed ({self._read_holder()})")
            return False

        os.ftruncate(fd, 0)
        os.write(fd, f"{self.holder_id}\n".encode())
        self._lock_fd = fd
        logger.debug(f"[LOCK] Acquired {self.key} ({self.holder_id})")
        return True

    def _read_holder(self) -> str:
        try:
            return self.lock_file_path.read_text().strip() or "unknown holder"
        except OSError as e:
            return f"holder unreadable: {e}"

    def release(self) -> None:
        if self._lock_fd is None:
            return
        fd, self._lock_fd = self._lock_fd, None
        try:
            if platform.system() == "Windows":
                import msvcrt

                os.lseek(fd, 0, os.SEEK_SET)
                msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
            else:
                import fcntl

                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)
        logger.debug(f"[LOCK] Released {self.key}")

    def is_locked(self) -> bool:
        """True while this instance holds the lock."""
        return self._lock_fd is not None

    def __enter__(self):
        if not self.acquire():
            raise PullRequestLockedError(
                f"Pull request {self.key} is already being processed by another invocation"
            )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False
