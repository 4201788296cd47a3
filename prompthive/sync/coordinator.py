"""
Sync coordinator: reconciles a local artifact history with the registry.

The relationship between the two histories is classified as one of
``synced``, ``local-ahead``, ``remote-ahead`` or ``diverged`` by comparing
the local head, the remote head and their common ancestor. Fast-forwards are
pushed or pulled; divergence goes through a three-way merge.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, TypeVar

from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config import Config
from ..logging import track_operation
from ..version_control.errors import (
    InvalidSyncStateError,
    MergeConflictError,
    NetworkError,
    RemoteRejectedError,
    VersionControlError,
)
from ..version_control.graph import ancestors, is_ancestor, merge_base, missing_entries
from ..version_control.merge import Conflict, MergeResult, merge
from ..version_control.models import SyncState, VersionEntry, utc_timestamp
from ..version_control.repository import PromptRepository
from .transport import HttpRegistryTransport, PullResponse, RegistryTransport

log = logger.bind(component="sync")

T = TypeVar("T")


class SyncStateKind(str, Enum):
    """Relationship between the local and remote histories of an artifact."""

    SYNCED = "synced"
    LOCAL_AHEAD = "local-ahead"
    REMOTE_AHEAD = "remote-ahead"
    DIVERGED = "diverged"


@dataclass
class SyncStatus:
    """
    Snapshot of an artifact's sync state.

    ``local_ahead`` / ``remote_ahead`` count entries reachable from one head
    but not the other.
    """

    artifact: str
    state: SyncStateKind
    local_head: Optional[str]
    remote_head: Optional[str]
    common_ancestor: Optional[str]
    local_ahead: int = 0
    remote_ahead: int = 0
    last_sync: Optional[str] = None
    # Local entries plus whatever the registry sent; used by push/pull/reconcile
    graph: Dict[str, VersionEntry] = field(default_factory=dict, repr=False)
    fetched: PullResponse = field(default_factory=PullResponse, repr=False)

    def summary(self) -> str:
        """Human readable one-liner."""
        if self.state == SyncStateKind.SYNCED:
            return f"'{self.artifact}' is up to date"
        if self.state == SyncStateKind.LOCAL_AHEAD:
            return f"'{self.artifact}' is ahead of the registry by {self.local_ahead} version(s)"
        if self.state == SyncStateKind.REMOTE_AHEAD:
            return f"'{self.artifact}' is behind the registry by {self.remote_ahead} version(s)"
        return (
            f"'{self.artifact}' has diverged: {self.local_ahead} local and "
            f"{self.remote_ahead} remote version(s) since the common ancestor"
        )


@dataclass
class PushResult:
    artifact: str
    entries: List[VersionEntry] = field(default_factory=list)
    blob_count: int = 0

    @property
    def was_noop(self) -> bool:
        return not self.entries


@dataclass
class PullResult:
    artifact: str
    entries: List[VersionEntry] = field(default_factory=list)
    head: Optional[VersionEntry] = None

    @property
    def was_noop(self) -> bool:
        return self.head is None


@dataclass
class ReconcileResult:
    """
    Outcome of reconciling diverged histories.

    Exactly one of ``entry`` (clean merge committed) and ``conflict``
    (nothing written) is set.
    """

    artifact: str
    result: MergeResult
    entry: Optional[VersionEntry] = None
    conflict: Optional[Conflict] = None

    @property
    def has_conflicts(self) -> bool:
        return self.conflict is not None


class SyncCoordinator:
    """
    Drives push, pull and reconcile for artifacts of a local repository.

    ``SyncState`` is threaded explicitly through each call and persisted only
    here. Mutating operations hold the artifact lock; transport calls are
    retried on ``NetworkError`` with exponential backoff.

    Example:
        >>> coordinator = SyncCoordinator(repo, InMemoryRegistry())
        >>> coordinator.push("greeting")
        >>> coordinator.status("greeting").state
        <SyncStateKind.SYNCED: 'synced'>
    """

    def __init__(
        self,
        repository: PromptRepository,
        transport: Optional[RegistryTransport] = None,
        config: Optional[Config] = None,
    ):
        self.repository = repository
        self.graph = repository.graph
        self.config = config or repository.config
        registry = self.config.registry
        self.transport = transport or HttpRegistryTransport(
            registry.url, api_key=registry.api_key, timeout=registry.timeout
        )

    def _call(self, func: Callable[..., T], *args) -> T:
        registry = self.config.registry
        retrying = retry(
            retry=retry_if_exception_type(NetworkError),
            stop=stop_after_attempt(registry.max_retries),
            wait=wait_exponential(multiplier=registry.backoff_seconds, max=30),
            before_sleep=lambda retry_state: log.warning(
                f"Registry call failed (attempt {retry_state.attempt_number}): "
                f"{retry_state.outcome.exception()}. Retrying..."
            ),
            reraise=True,
        )
        return retrying(func)(*args)

    # Status

    def status(self, artifact: str) -> SyncStatus:
        """
        Classify the artifact's sync state. Read-only.

        Fetches remote entries newer than the persisted common ancestor and
        compares heads on the combined graph.
        """
        index = self.graph.load(artifact)
        persisted = index.sync
        local = {entry.id: entry for entry in index.entries}
        local_head = index.head

        fetched = self._call(self.transport.pull, artifact, persisted.common_ancestor)
        combined = dict(local)
        for entry in fetched.entries:
            combined.setdefault(entry.id, entry)
        remote_head = fetched.head
        if remote_head is not None and remote_head not in combined:
            raise VersionControlError(
                f"Registry reported head {remote_head[:8]} for '{artifact}' without its entry"
            )

        if local_head == remote_head:
            state = SyncStateKind.SYNCED
        elif remote_head is None or is_ancestor(combined, remote_head, local_head):
            state = SyncStateKind.LOCAL_AHEAD
        elif local_head is None or is_ancestor(combined, local_head, remote_head):
            state = SyncStateKind.REMOTE_AHEAD
        else:
            state = SyncStateKind.DIVERGED

        local_set = ancestors(combined, local_head)
        remote_set = ancestors(combined, remote_head)
        return SyncStatus(
            artifact=artifact,
            state=state,
            local_head=local_head,
            remote_head=remote_head,
            common_ancestor=merge_base(combined, local_head, remote_head),
            local_ahead=len(local_set - remote_set),
            remote_ahead=len(remote_set - local_set),
            last_sync=persisted.last_sync,
            graph=combined,
            fetched=fetched,
        )

    def _record_sync(self, artifact: str, remote_head: Optional[str]) -> None:
        self.graph.save_sync_state(
            artifact,
            SyncState(
                remote_head=remote_head,
                common_ancestor=remote_head,
                last_sync=utc_timestamp(),
            ),
        )

    # Fast-forwards

    @track_operation("push", component="sync")
    def push(self, artifact: str) -> PushResult:
        """
        Send local entries the registry lacks.

        Valid from ``local-ahead``; a no-op when synced.

        Raises:
            InvalidSyncStateError: If the remote has entries we do not
            NetworkError: If the registry stays unreachable after retries
            RemoteRejectedError: If the registry refuses the push
        """
        with self.repository.lock(artifact):
            status = self.status(artifact)
            if status.state == SyncStateKind.SYNCED:
                log.info(f"'{artifact}' already up to date, nothing to push")
                return PushResult(artifact)
            if status.state != SyncStateKind.LOCAL_AHEAD:
                raise InvalidSyncStateError(
                    status.state,
                    "push",
                    hint="pull first" if status.state == SyncStateKind.REMOTE_AHEAD
                    else "run 'ph sync reconcile'",
                )

            remote_known = ancestors(status.graph, status.remote_head)
            remote_digests = {status.graph[i].content_digest for i in remote_known}
            batch = missing_entries(status.graph, status.local_head, remote_known)
            blobs = {}
            for entry in batch:
                if entry.content_digest not in remote_digests:
                    blobs[entry.content_digest] = self.graph.store.get(entry.content_digest)

            response = self._call(self.transport.push, artifact, batch, blobs)
            if not response.accepted:
                raise RemoteRejectedError(response.reason)

            self._record_sync(artifact, status.local_head)
            log.bind(head=status.local_head).info(
                f"Pushed {len(batch)} entries and {len(blobs)} blobs for '{artifact}'"
            )
            return PushResult(artifact, entries=batch, blob_count=len(blobs))

    @track_operation("pull", component="sync")
    def pull(self, artifact: str) -> PullResult:
        """
        Fetch and fast-forward to the remote head.

        Valid from ``remote-ahead``; a no-op when synced or local-ahead.

        Raises:
            InvalidSyncStateError: If the histories have diverged
        """
        with self.repository.lock(artifact):
            status = self.status(artifact)
            if status.state in (SyncStateKind.SYNCED, SyncStateKind.LOCAL_AHEAD):
                log.info(f"'{artifact}' has nothing to pull")
                return PullResult(artifact)
            if status.state == SyncStateKind.DIVERGED:
                raise InvalidSyncStateError(
                    status.state, "pull", hint="run 'ph sync reconcile'"
                )

            added = self.graph.import_entries(
                artifact, status.fetched.entries, status.fetched.blobs
            )
            head = self.graph.set_head(artifact, status.remote_head)
            self.repository.prompts.write(artifact, self.graph.content(head))
            self._record_sync(artifact, status.remote_head)
            log.info(f"Pulled {len(added)} entries for '{artifact}', head {head.short_id}")
            return PullResult(artifact, entries=added, head=head)

    @track_operation("sync", component="sync")
    def synchronize(self, artifact: str) -> SyncStatus:
        """
        Status, then fast-forward in whichever direction is possible.

        Returns the status observed before acting; a diverged artifact is
        left untouched for an explicit reconcile.
        """
        status = self.status(artifact)
        if status.state == SyncStateKind.LOCAL_AHEAD:
            self.push(artifact)
        elif status.state == SyncStateKind.REMOTE_AHEAD:
            self.pull(artifact)
        return status

    # Divergence

    def _conflict(self, status: SyncStatus) -> Conflict:
        entries = status.graph
        base = entries.get(status.common_ancestor) if status.common_ancestor else None
        ours = entries[status.local_head]
        theirs = entries[status.remote_head]
        result = merge(
            self._content(status, base) if base else "",
            self._content(status, ours),
            self._content(status, theirs),
            labels=("local", "base", "remote"),
        )
        return Conflict(base=base, ours=ours, theirs=theirs, result=result)

    def _content(self, status: SyncStatus, entry: VersionEntry) -> str:
        blob = status.fetched.blobs.get(entry.content_digest)
        if blob is not None:
            return blob.decode("utf-8")
        return self.graph.content(entry)

    def _commit_merge(self, status: SyncStatus, content: str, message: str) -> VersionEntry:
        artifact = status.artifact
        self.graph.import_entries(artifact, status.fetched.entries, status.fetched.blobs)
        entry = self.graph.create_version(
            artifact,
            content,
            parents=[status.local_head, status.remote_head],
            message=message,
            author=self.repository.author,
        )
        self.repository.prompts.write(artifact, self.graph.content(entry))
        # The remote head is now an ancestor of ours: local-ahead
        self._record_sync(artifact, status.remote_head)
        return entry

    def _require_diverged(self, status: SyncStatus, operation: str) -> None:
        if status.state != SyncStateKind.DIVERGED:
            hint = {
                SyncStateKind.SYNCED: "already up to date",
                SyncStateKind.LOCAL_AHEAD: "use push",
                SyncStateKind.REMOTE_AHEAD: "use pull",
            }[status.state]
            raise InvalidSyncStateError(status.state, operation, hint=hint)

    @track_operation("reconcile", component="sync")
    def reconcile(self, artifact: str) -> ReconcileResult:
        """
        Three-way merge diverged histories.

        A clean merge is committed locally as a two-parent entry, leaving
        the artifact local-ahead (push still required). Conflicts are
        returned and nothing is written.

        Raises:
            InvalidSyncStateError: If the histories have not diverged
        """
        with self.repository.lock(artifact):
            status = self.status(artifact)
            self._require_diverged(status, "reconcile")
            conflict = self._conflict(status)

            if conflict.result.has_conflicts:
                log.warning(
                    f"Reconcile of '{artifact}' found {len(conflict.conflicting_regions)} conflict(s)"
                )
                return ReconcileResult(artifact, result=conflict.result, conflict=conflict)

            entry = self._commit_merge(
                status,
                conflict.result.content,
                message=f"merge remote {conflict.theirs.short_id}",
            )
            log.info(f"Reconciled '{artifact}' as merge {entry.short_id}")
            return ReconcileResult(artifact, result=conflict.result, entry=entry)

    @track_operation("resolve", component="sync")
    def resolve(
        self, artifact: str, strategy: str, content: Optional[str] = None
    ) -> VersionEntry:
        """
        Commit a resolution of diverged histories.

        Args:
            artifact: Artifact name
            strategy: ``ours`` / ``theirs`` settle every conflicting region for
                that side (clean regions stay merged); ``manual`` commits
                ``content`` as given
            content: Resolved text for the manual strategy

        Raises:
            InvalidSyncStateError: If the histories have not diverged
            MergeConflictError: If ``manual`` is used without content
        """
        if strategy not in ("ours", "theirs", "manual"):
            raise ValueError(f"Unknown resolution strategy '{strategy}'")

        with self.repository.lock(artifact):
            status = self.status(artifact)
            self._require_diverged(status, "resolve")
            conflict = self._conflict(status)

            if strategy == "manual":
                if content is None:
                    raise MergeConflictError(conflict)
                resolved = content
            else:
                resolved = conflict.result.resolve(strategy)

            entry = self._commit_merge(
                status,
                resolved,
                message=f"resolve merge with remote {conflict.theirs.short_id} ({strategy})",
            )
            log.info(f"Resolved '{artifact}' using {strategy} as {entry.short_id}")
            return entry
