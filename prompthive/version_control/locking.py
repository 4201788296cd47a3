"""
Inter-process advisory locking per artifact.
"""

from pathlib import Path

from filelock import FileLock, Timeout
from loguru import logger

from .errors import LockContentionError

log = logger.bind(component="version_control")


class ArtifactLock:
    """
    Exclusive lock held around every mutating operation on an artifact.

    Readers never take it. Acquisition polls for up to ``timeout`` seconds,
    then raises ``LockContentionError``. Released on every exit path.

    Example:
        >>> with ArtifactLock(lock_path, "greeting", timeout=5.0):
        ...     graph.create_version(...)
    """

    def __init__(self, lock_path: Path, artifact: str, timeout: float = 5.0):
        self.artifact = artifact
        self.timeout = timeout
        self._lock = FileLock(str(lock_path))

    def __enter__(self) -> "ArtifactLock":
        try:
            self._lock.acquire(timeout=self.timeout)
        except Timeout as e:
            log.warning(f"Lock contention on '{self.artifact}'")
            raise LockContentionError(self.artifact, self.timeout) from e
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._lock.release()

    @property
    def is_locked(self) -> bool:
        return self._lock.is_locked
