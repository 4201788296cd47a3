"""
Data model for versioned prompt artifacts.

Defines the immutable version entries that make up an artifact's history,
the per-artifact index persisted on disk, and the sync bookkeeping.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
import hashlib
import json

SHORT_ID_LENGTH = 8


def normalize_content(content) -> bytes:
    """
    Canonicalize content before hashing and storage.

    Line endings are normalized to ``\\n`` (``\\r\\n`` and lone ``\\r``); no
    other transformation is applied. ``str`` input is encoded as UTF-8.
    """
    if isinstance(content, str):
        content = content.encode("utf-8")
    return content.replace(b"\r\n", b"\n").replace(b"\r", b"\n")


def compute_digest(data: bytes) -> str:
    """SHA-256 hex digest of already-normalized bytes."""
    return hashlib.sha256(data).hexdigest()


def compute_entry_id(
    content_digest: str,
    parent_ids: Tuple[str, ...],
    timestamp: str,
    message: str,
) -> str:
    """Digest of the identifying fields of a version entry."""
    canonical = json.dumps(
        {
            "content_digest": content_digest,
            "parent_ids": list(parent_ids),
            "timestamp": timestamp,
            "message": message,
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def utc_timestamp() -> str:
    """Current UTC time as an ISO-8601 string with microseconds."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


@dataclass(frozen=True)
class VersionEntry:
    """
    A single immutable node in an artifact's version graph.

    Attributes:
        id: Digest of (content_digest, parent_ids, timestamp, message)
        content_digest: Address of the content blob
        parent_ids: Zero (root), one, or two (merge) parent entry ids
        message: Human readable description
        author: Who created the entry
        timestamp: ISO-8601 UTC creation time
        tag: Optional tag, unique within the artifact
    """

    id: str
    content_digest: str
    parent_ids: Tuple[str, ...]
    message: str
    author: str
    timestamp: str
    tag: Optional[str] = None

    @classmethod
    def create(
        cls,
        content_digest: str,
        parent_ids,
        message: str,
        author: str,
        timestamp: str,
        tag: Optional[str] = None,
    ) -> "VersionEntry":
        """Build an entry, deriving its id from its fields."""
        parents = tuple(parent_ids)
        return cls(
            id=compute_entry_id(content_digest, parents, timestamp, message),
            content_digest=content_digest,
            parent_ids=parents,
            message=message,
            author=author,
            timestamp=timestamp,
            tag=tag,
        )

    @property
    def short_id(self) -> str:
        return self.id[:SHORT_ID_LENGTH]

    @property
    def is_root(self) -> bool:
        return not self.parent_ids

    @property
    def is_merge(self) -> bool:
        return len(self.parent_ids) == 2

    def expected_id(self) -> str:
        """Recompute the id from the entry's fields."""
        return compute_entry_id(
            self.content_digest, self.parent_ids, self.timestamp, self.message
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert entry to dictionary for serialization."""
        return {
            "id": self.id,
            "content_digest": self.content_digest,
            "parent_ids": list(self.parent_ids),
            "message": self.message,
            "author": self.author,
            "timestamp": self.timestamp,
            "tag": self.tag,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VersionEntry":
        """Create entry from dictionary."""
        return cls(
            id=data["id"],
            content_digest=data["content_digest"],
            parent_ids=tuple(data.get("parent_ids", [])),
            message=data.get("message", ""),
            author=data.get("author", ""),
            timestamp=data["timestamp"],
            tag=data.get("tag"),
        )

    def to_json(self) -> str:
        """Convert entry to JSON string."""
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> "VersionEntry":
        """Create entry from JSON string."""
        return cls.from_dict(json.loads(json_str))


@dataclass
class SyncState:
    """
    Local view of an artifact's relationship with the registry.

    ``common_ancestor`` is the most recent entry known to exist in both
    histories. Only the sync coordinator mutates or persists this.
    """

    local_head: Optional[str] = None
    remote_head: Optional[str] = None
    common_ancestor: Optional[str] = None
    last_sync: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        # local_head is the index head; it is not duplicated on disk
        return {
            "remote_head": self.remote_head,
            "common_ancestor": self.common_ancestor,
            "last_sync": self.last_sync,
        }

    @classmethod
    def from_dict(
        cls, data: Optional[Dict[str, Any]], local_head: Optional[str] = None
    ) -> "SyncState":
        data = data or {}
        return cls(
            local_head=local_head,
            remote_head=data.get("remote_head"),
            common_ancestor=data.get("common_ancestor"),
            last_sync=data.get("last_sync"),
        )


@dataclass
class ArtifactIndex:
    """
    On-disk index of one artifact.

    Entries are kept in creation order. ``head`` is the id of the current
    entry, ``sync`` the last persisted sync bookkeeping.
    """

    artifact: str
    entries: List[VersionEntry] = field(default_factory=list)
    head: Optional[str] = None
    sync: SyncState = field(default_factory=SyncState)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "artifact": self.artifact,
            "head": self.head,
            "entries": [entry.to_dict() for entry in self.entries],
            "sync": self.sync.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArtifactIndex":
        head = data.get("head")
        return cls(
            artifact=data["artifact"],
            entries=[VersionEntry.from_dict(e) for e in data.get("entries", [])],
            head=head,
            sync=SyncState.from_dict(data.get("sync"), local_head=head),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> "ArtifactIndex":
        return cls.from_dict(json.loads(json_str))
