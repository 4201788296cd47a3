"""
Storage backend for version control system.

Handles persistence of artifact indexes to disk.
"""

import os
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional
from urllib.parse import quote, unquote

from loguru import logger

from .errors import HashMismatchError, NotFoundError, VersionControlError
from .models import ArtifactIndex

log = logger.bind(component="version_control")


@contextmanager
def atomic_write(filepath: Path, mode: str = "w") -> Iterator:
    """
    Context manager for atomic file write operations.

    Writes to a temporary file in the target directory, then renames it over
    the target. Readers see either the old or the new file, never a partial one.

    Args:
        filepath: Target file path
        mode: ``"w"`` for text, ``"wb"`` for bytes

    Yields:
        File object for writing
    """
    filepath.parent.mkdir(parents=True, exist_ok=True)
    temp_fd, temp_path = tempfile.mkstemp(
        dir=filepath.parent, prefix=f".{filepath.name}.", suffix=".tmp"
    )

    try:
        with os.fdopen(temp_fd, mode) as f:
            yield f
            f.flush()
            os.fsync(f.fileno())

        os.replace(temp_path, filepath)

    except BaseException:
        try:
            os.unlink(temp_path)
        except FileNotFoundError:
            pass
        raise


def artifact_filename(artifact: str) -> str:
    """Reversible, filesystem-safe name for an artifact."""
    return quote(artifact, safe="")


class VersionStorage:
    """
    File-based storage for version indexes.

    Layout:
    - <base>/
      - versions/
        - {quoted artifact}.json   (entries, head, sync state)
        - .deleted/                (indexes removed from the name index)
      - objects/                   (content store, see ContentStore)
      - locks/                     (artifact lock files)
    """

    def __init__(self, base_dir: Path):
        """
        Initialize storage.

        Args:
            base_dir: Base directory for version control storage
        """
        self.base_dir = Path(base_dir)
        self.versions_dir = self.base_dir / "versions"
        self.deleted_dir = self.versions_dir / ".deleted"
        self.objects_dir = self.base_dir / "objects"
        self.locks_dir = self.base_dir / "locks"

        self._ensure_directories()

    def _ensure_directories(self) -> None:
        """Ensure all necessary directories exist."""
        self.versions_dir.mkdir(parents=True, exist_ok=True)
        self.objects_dir.mkdir(parents=True, exist_ok=True)
        self.locks_dir.mkdir(parents=True, exist_ok=True)

    def index_path(self, artifact: str) -> Path:
        return self.versions_dir / f"{artifact_filename(artifact)}.json"

    def has_index(self, artifact: str) -> bool:
        return self.index_path(artifact).exists()

    def load_index(self, artifact: str) -> Optional[ArtifactIndex]:
        """
        Load an artifact index, verifying every entry id.

        Returns:
            The index, or None if the artifact has no history yet

        Raises:
            HashMismatchError: If an entry's id does not match its fields
        """
        path = self.index_path(artifact)
        if not path.exists():
            return None

        try:
            index = ArtifactIndex.from_json(path.read_text(encoding="utf-8"))
        except (ValueError, KeyError) as e:
            log.error(f"Corrupted index for '{artifact}': {e}")
            raise VersionControlError(f"Corrupted index for '{artifact}': {e}") from e

        for entry in index.entries:
            expected = entry.expected_id()
            if expected != entry.id:
                log.error(f"Entry {entry.short_id} of '{artifact}' failed verification")
                raise HashMismatchError(expected, entry.id, what=f"entry {entry.short_id}")

        return index

    def save_index(self, index: ArtifactIndex) -> None:
        """Atomically replace an artifact's index."""
        with atomic_write(self.index_path(index.artifact)) as f:
            f.write(index.to_json())

    def list_artifacts(self) -> List[str]:
        """
        List all artifacts with a version history.

        Returns:
            Sorted artifact names
        """
        return sorted(unquote(f.stem) for f in self.versions_dir.glob("*.json"))

    def delete_index(self, artifact: str) -> Path:
        """
        Remove an artifact from the name index.

        The index file is moved aside; content blobs are left untouched.

        Returns:
            Where the index was moved to
        """
        path = self.index_path(artifact)
        if not path.exists():
            raise NotFoundError(f"Artifact '{artifact}' has no version history")

        self.deleted_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
        target = self.deleted_dir / f"{path.stem}.{stamp}.json"
        os.replace(path, target)
        log.info(f"Removed '{artifact}' from index (moved to {target.name})")
        return target

    def lock_path(self, artifact: str) -> Path:
        return self.locks_dir / f"{artifact_filename(artifact)}.lock"
