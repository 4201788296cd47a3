"""
Version control for prompt artifacts.

Provides content-addressed storage, an append-only version graph, line diffs,
three-way merge and rollback.
"""

from .errors import (
    VersionControlError,
    NotFoundError,
    AmbiguousRefError,
    DuplicateTagError,
    InvalidParentError,
    HashMismatchError,
    MergeConflictError,
    InvalidSyncStateError,
    NetworkError,
    RemoteRejectedError,
    LockContentionError,
)

from .models import (
    VersionEntry,
    SyncState,
    ArtifactIndex,
    normalize_content,
    compute_digest,
    compute_entry_id,
)

from .storage import VersionStorage, atomic_write

from .content_store import ContentStore

from .graph import VersionGraph, History

from .diff import (
    ChangeType,
    DiffFormat,
    Edit,
    EditScript,
    compute_diff,
    render_diff,
)

from .merge import (
    Conflict,
    MergeRegion,
    MergeResult,
    RegionKind,
    merge,
)

from .locking import ArtifactLock

from .rollback import RollbackController, RollbackResult

from .repository import MergeOutcome, PromptRepository, parse_ref

__all__ = [
    # Errors
    "VersionControlError",
    "NotFoundError",
    "AmbiguousRefError",
    "DuplicateTagError",
    "InvalidParentError",
    "HashMismatchError",
    "MergeConflictError",
    "InvalidSyncStateError",
    "NetworkError",
    "RemoteRejectedError",
    "LockContentionError",
    # Models
    "VersionEntry",
    "SyncState",
    "ArtifactIndex",
    "normalize_content",
    "compute_digest",
    "compute_entry_id",
    # Storage
    "VersionStorage",
    "atomic_write",
    "ContentStore",
    # Graph
    "VersionGraph",
    "History",
    # Diff
    "ChangeType",
    "DiffFormat",
    "Edit",
    "EditScript",
    "compute_diff",
    "render_diff",
    # Merge
    "Conflict",
    "MergeRegion",
    "MergeResult",
    "RegionKind",
    "merge",
    # Locking and rollback
    "ArtifactLock",
    "RollbackController",
    "RollbackResult",
    # Repository
    "MergeOutcome",
    "PromptRepository",
    "parse_ref",
]
