"""
Content-addressed blob storage.

Blobs are stored as ``objects/<digest[:2]>/<digest[2:]>`` where the digest is
the SHA-256 of the normalized content (see ``normalize_content``).
"""

from pathlib import Path
from typing import Iterator, Union

from loguru import logger

from .errors import HashMismatchError, NotFoundError
from .models import compute_digest, normalize_content
from .storage import atomic_write

log = logger.bind(component="version_control")


class ContentStore:
    """
    Git-style content-addressable blob store.

    Identical content is stored once. Intact blobs are never overwritten.
    """

    def __init__(self, objects_dir: Path):
        self.objects_dir = Path(objects_dir)
        self.objects_dir.mkdir(parents=True, exist_ok=True)

    def _path_for(self, digest: str) -> Path:
        return self.objects_dir / digest[:2] / digest[2:]

    def put(self, content: Union[str, bytes]) -> str:
        """
        Store content, returning its digest.

        Idempotent: storing identical content again returns the same digest
        and writes nothing. A stored blob whose bytes no longer match its
        digest is rewritten from ``content``.
        """
        data = normalize_content(content)
        digest = compute_digest(data)
        path = self._path_for(digest)
        if path.exists():
            if compute_digest(path.read_bytes()) == digest:
                return digest
            log.warning(f"Blob {digest[:12]} is corrupted on disk; rewriting it")

        with atomic_write(path, mode="wb") as f:
            f.write(data)

        log.debug(f"Stored blob {digest[:12]} ({len(data)} bytes)")
        return digest

    def put_verified(self, digest: str, content: Union[str, bytes]) -> str:
        """
        Store content received from elsewhere under an expected digest.

        Raises:
            HashMismatchError: If the content does not hash to ``digest``
        """
        actual = compute_digest(normalize_content(content))
        if actual != digest:
            log.error(f"Rejected blob: expected {digest[:12]}, got {actual[:12]}")
            raise HashMismatchError(digest, actual, what="blob")
        return self.put(content)

    def get(self, digest: str) -> bytes:
        """
        Load a blob, verifying it against its digest.

        Raises:
            NotFoundError: If no blob has this digest
            HashMismatchError: If the stored bytes are corrupted
        """
        path = self._path_for(digest)
        if not path.exists():
            raise NotFoundError(f"Blob {digest[:12]} not found")

        data = path.read_bytes()
        actual = compute_digest(data)
        if actual != digest:
            log.error(f"Blob {digest[:12]} is corrupted on disk")
            raise HashMismatchError(digest, actual, what="blob")
        return data

    def get_text(self, digest: str) -> str:
        return self.get(digest).decode("utf-8")

    def has(self, digest: str) -> bool:
        return self._path_for(digest).exists()

    def __iter__(self) -> Iterator[str]:
        for shard in sorted(self.objects_dir.iterdir()):
            if not shard.is_dir():
                continue
            for blob in sorted(shard.iterdir()):
                if not blob.name.startswith("."):
                    yield shard.name + blob.name

    def __len__(self) -> int:
        return sum(1 for _ in self)
