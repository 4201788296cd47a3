"""
Exception hierarchy for the versioning and sync engine.

Integrity and input errors abort an operation before anything is written.
Network errors are retryable; remote rejections are terminal.
"""

from typing import List, Optional, Sequence


class VersionControlError(Exception):
    """Base exception for version control errors."""

    retryable = False


class NotFoundError(VersionControlError):
    """Raised when an artifact, version, ref or blob does not exist."""

    def __init__(self, message: str, suggestions: Optional[Sequence[str]] = None):
        self.suggestions: List[str] = list(suggestions or [])
        if self.suggestions:
            message = f"{message} (did you mean: {', '.join(self.suggestions)}?)"
        super().__init__(message)


class AmbiguousRefError(VersionControlError):
    """Raised when an id prefix matches more than one version entry."""

    def __init__(self, ref: str, candidates: Sequence[str]):
        self.ref = ref
        self.candidates = list(candidates)
        shown = ", ".join(c[:12] for c in self.candidates[:5])
        super().__init__(
            f"Ref '{ref}' is ambiguous, matches {len(self.candidates)} versions: {shown}"
        )


class DuplicateTagError(VersionControlError):
    """Raised when a tag is already used by another entry of the artifact."""

    def __init__(self, artifact: str, tag: str, suggestion: Optional[str] = None):
        self.artifact = artifact
        self.tag = tag
        self.suggestion = suggestion
        message = f"Version '{tag}' already exists for '{artifact}'"
        if suggestion:
            message += f" (try '{suggestion}')"
        super().__init__(message)


class InvalidParentError(VersionControlError):
    """Raised when an entry references a parent that is not in the graph."""

    pass


class HashMismatchError(VersionControlError):
    """Raised when stored or received data does not match its digest."""

    def __init__(self, expected: str, actual: str, what: str = "content"):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Integrity check failed for {what}: expected {expected[:12]}, got {actual[:12]}"
        )


class MergeConflictError(VersionControlError):
    """Raised when a caller tries to commit a merge that still has conflicts."""

    def __init__(self, conflict):
        self.conflict = conflict
        super().__init__(
            f"Merge has {len(conflict.conflicting_regions)} unresolved conflict(s)"
        )


class InvalidSyncStateError(VersionControlError):
    """Raised when a sync operation is not valid from the current state."""

    def __init__(self, state, operation: str, hint: str = ""):
        self.state = state
        self.operation = operation
        message = f"Cannot {operation} while {getattr(state, 'value', state)}"
        if hint:
            message += f": {hint}"
        super().__init__(message)


class NetworkError(VersionControlError):
    """Transient transport failure. Safe to retry."""

    retryable = True


class RemoteRejectedError(VersionControlError):
    """The registry refused the request (e.g. expired credentials)."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Remote rejected request: {reason}")


class LockContentionError(VersionControlError):
    """Another process holds the artifact lock."""

    retryable = True

    def __init__(self, artifact: str, timeout: float):
        self.artifact = artifact
        self.timeout = timeout
        super().__init__(
            f"Artifact '{artifact}' is locked by another process (waited {timeout:.1f}s)"
        )
