"""
Per-artifact append-only version graph.

Entries are addressed by id and reference their parents by id, so the graph
is acyclic by construction: a new entry may only name entries that already
exist. Walks are iterative with an explicit pending heap keyed by recency.
"""

import difflib
import heapq
import re
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Set

from loguru import logger

from .content_store import ContentStore
from .errors import (
    AmbiguousRefError,
    DuplicateTagError,
    HashMismatchError,
    InvalidParentError,
    NotFoundError,
    VersionControlError,
)
from .models import ArtifactIndex, SyncState, VersionEntry, utc_timestamp
from .storage import VersionStorage

log = logger.bind(component="version_control")

_HEX_RE = re.compile(r"^[0-9a-f]+$")


def _recency_key(entry: VersionEntry):
    # Newest first when used with heapq (a min-heap)
    return (-datetime.fromisoformat(entry.timestamp).timestamp(), entry.id)


def walk(entries: Mapping[str, VersionEntry], start: Optional[str]) -> Iterator[VersionEntry]:
    """
    Yield every entry reachable from ``start``, most recent first.

    Parents missing from ``entries`` are skipped; the caller decides whether
    that is an error.
    """
    if start is None or start not in entries:
        return
    seen: Set[str] = {start}
    pending = [(_recency_key(entries[start]), start)]
    while pending:
        _, entry_id = heapq.heappop(pending)
        entry = entries[entry_id]
        yield entry
        for parent_id in entry.parent_ids:
            if parent_id not in seen and parent_id in entries:
                seen.add(parent_id)
                heapq.heappush(pending, (_recency_key(entries[parent_id]), parent_id))


def ancestors(entries: Mapping[str, VersionEntry], start: Optional[str]) -> Set[str]:
    """Ids reachable from ``start``, including ``start`` itself."""
    return {entry.id for entry in walk(entries, start)}


def is_ancestor(
    entries: Mapping[str, VersionEntry], ancestor: Optional[str], descendant: Optional[str]
) -> bool:
    """True if ``ancestor`` is reachable from ``descendant`` (or equal)."""
    if ancestor is None:
        return True
    return ancestor in ancestors(entries, descendant)


def merge_base(
    entries: Mapping[str, VersionEntry], a: Optional[str], b: Optional[str]
) -> Optional[str]:
    """Most recent entry reachable from both ``a`` and ``b``."""
    if a is None or b is None:
        return None
    reachable_from_a = ancestors(entries, a)
    for entry in walk(entries, b):
        if entry.id in reachable_from_a:
            return entry.id
    return None


def missing_entries(
    entries: Mapping[str, VersionEntry], head: Optional[str], known: Set[str]
) -> List[VersionEntry]:
    """
    Entries reachable from ``head`` but not in ``known``, oldest first.

    The result is topologically ordered: every entry comes after its parents,
    so it can be replayed onto a graph that already holds ``known``.
    """
    newest_first = []
    for entry in walk(entries, head):
        if entry.id in known:
            continue
        newest_first.append(entry)
    return _topological(newest_first)


def _topological(batch: List[VersionEntry]) -> List[VersionEntry]:
    ids = {entry.id for entry in batch}
    emitted: Set[str] = set()
    ordered: List[VersionEntry] = []
    remaining = list(reversed(batch))
    while remaining:
        progressed = []
        for entry in remaining:
            if all(p in emitted or p not in ids for p in entry.parent_ids):
                ordered.append(entry)
                emitted.add(entry.id)
            else:
                progressed.append(entry)
        if len(progressed) == len(remaining):
            raise InvalidParentError("Entry batch contains a parent cycle")
        remaining = progressed
    return ordered


class History:
    """
    Restartable view of an artifact's history, newest first.

    Each iteration re-reads the index, so the view is never exhausted and
    always reflects the current head.
    """

    def __init__(self, graph: "VersionGraph", artifact: str, start: Optional[str] = None):
        self._graph = graph
        self._artifact = artifact
        self._start = start

    def __iter__(self) -> Iterator[VersionEntry]:
        index = self._graph.load(self._artifact)
        start = self._start or index.head
        yield from walk({e.id: e for e in index.entries}, start)

    def __len__(self) -> int:
        return sum(1 for _ in self)


class VersionGraph:
    """
    Version graph operations over the on-disk indexes and content store.

    This class does no locking; mutating callers hold the artifact lock
    (see ``PromptRepository``).
    """

    def __init__(self, storage: VersionStorage, store: ContentStore):
        self.storage = storage
        self.store = store

    def load(self, artifact: str) -> ArtifactIndex:
        """Load an artifact index, or an empty one if it has no history."""
        index = self.storage.load_index(artifact)
        if index is None:
            return ArtifactIndex(artifact=artifact)
        index.sync.local_head = index.head
        return index

    def exists(self, artifact: str) -> bool:
        return self.storage.has_index(artifact)

    def list_artifacts(self) -> List[str]:
        return self.storage.list_artifacts()

    def entries(self, artifact: str) -> Dict[str, VersionEntry]:
        """All entries of the artifact keyed by id."""
        return {entry.id: entry for entry in self.load(artifact).entries}

    def create_version(
        self,
        artifact: str,
        content,
        parents: Optional[Sequence[str]] = None,
        message: str = "",
        author: str = "prompthive",
        tag: Optional[str] = None,
    ) -> VersionEntry:
        """
        Append a new version entry.

        Args:
            artifact: Artifact name
            content: New content (str or bytes)
            parents: Parent entry ids; ``None`` means the current head
                (or no parent for the first version)
            message: Description of the version
            author: Who created it
            tag: Optional tag, unique within the artifact

        Returns:
            The new entry (or the existing one if an identical entry exists)

        Raises:
            InvalidParentError: If a parent is not in the graph
            DuplicateTagError: If ``tag`` is already used
        """
        index = self.load(artifact)
        by_id = {entry.id: entry for entry in index.entries}

        if parents is None:
            parents = [index.head] if index.head else []
        parents = list(parents)
        self._validate_parents(artifact, parents, by_id)

        if tag is not None:
            self._check_tag(artifact, index, tag)

        digest = self.store.put(content)
        timestamp = self._next_timestamp(index)
        entry = VersionEntry.create(
            content_digest=digest,
            parent_ids=parents,
            message=message,
            author=author,
            timestamp=timestamp,
            tag=tag,
        )

        if entry.id in by_id:
            return by_id[entry.id]

        index.entries.append(entry)
        if index.head is None or index.head in entry.parent_ids:
            index.head = entry.id
        self.storage.save_index(index)

        label = f" [{tag}]" if tag else ""
        log.bind(
            artifact=artifact, entry_id=entry.id, parents=[p[:8] for p in parents]
        ).info(f"Created {entry.short_id}{label} for '{artifact}': {message}")
        return entry

    def import_entries(
        self,
        artifact: str,
        entries: Iterable[VersionEntry],
        blobs: Mapping[str, bytes],
    ) -> List[VersionEntry]:
        """
        Add entries created elsewhere (e.g. fetched from the registry).

        Everything is validated before anything is written. Entries already
        present are skipped. Head is not moved.

        Tags stay unique per artifact: an incoming tag already held by a
        different local entry is renamed to ``<tag>-<short id>``. The tag is
        not part of the entry id, so the renamed entry still verifies.

        Returns:
            The entries that were actually added

        Raises:
            HashMismatchError: If an entry id or blob does not verify
            InvalidParentError: If a parent is neither local nor in the batch
            NotFoundError: If a referenced blob is neither local nor supplied
        """
        index = self.load(artifact)
        by_id = {entry.id: entry for entry in index.entries}
        tags = {e.tag: e.id for e in index.entries if e.tag}

        added: List[VersionEntry] = []
        for entry in entries:
            if entry.id in by_id:
                continue
            expected = entry.expected_id()
            if expected != entry.id:
                raise HashMismatchError(expected, entry.id, what=f"entry {entry.short_id}")
            self._validate_parents(artifact, list(entry.parent_ids), by_id)
            if entry.tag and tags.get(entry.tag, entry.id) != entry.id:
                entry = self._retag(artifact, entry, tags)
            if entry.content_digest not in blobs and not self.store.has(entry.content_digest):
                raise NotFoundError(
                    f"Blob {entry.content_digest[:12]} for entry {entry.short_id} was not supplied"
                )
            by_id[entry.id] = entry
            if entry.tag:
                tags[entry.tag] = entry.id
            added.append(entry)

        needed = {entry.content_digest for entry in added}
        for digest in sorted(needed):
            if digest in blobs:
                self.store.put_verified(digest, blobs[digest])

        if added:
            index.entries.extend(added)
            self.storage.save_index(index)
            log.info(f"Imported {len(added)} entries into '{artifact}'")
        return added

    def set_head(self, artifact: str, entry_id: str) -> VersionEntry:
        """Point head at an existing entry (the only mutable pointer)."""
        index = self.load(artifact)
        by_id = {entry.id: entry for entry in index.entries}
        if entry_id not in by_id:
            raise NotFoundError(f"Version {entry_id[:12]} not found in '{artifact}'")
        index.head = entry_id
        self.storage.save_index(index)
        log.info(f"Moved head of '{artifact}' to {entry_id[:8]}")
        return by_id[entry_id]

    def save_sync_state(self, artifact: str, state: SyncState) -> None:
        """Persist sync bookkeeping. Called by the sync coordinator only."""
        index = self.load(artifact)
        index.sync = SyncState(
            local_head=index.head,
            remote_head=state.remote_head,
            common_ancestor=state.common_ancestor,
            last_sync=state.last_sync,
        )
        self.storage.save_index(index)

    def head(self, artifact: str) -> VersionEntry:
        """
        Get the current head entry.

        Raises:
            NotFoundError: If the artifact has no versions
        """
        index = self.load(artifact)
        if index.head is None:
            raise NotFoundError(
                f"No versions found for '{artifact}'",
                suggestions=self._similar_artifacts(artifact),
            )
        for entry in index.entries:
            if entry.id == index.head:
                return entry
        raise InvalidParentError(f"Head {index.head[:12]} of '{artifact}' is not in the graph")

    def head_id(self, artifact: str) -> Optional[str]:
        return self.load(artifact).head

    def history(self, artifact: str, start: Optional[str] = None) -> History:
        """History from head (or ``start``) following parent links, newest first."""
        return History(self, artifact, start)

    def get(self, artifact: str, ref: str) -> VersionEntry:
        """
        Resolve a tag or id prefix to an entry.

        Tags take precedence over id prefixes.

        Raises:
            NotFoundError: If nothing matches
            AmbiguousRefError: If an id prefix matches several entries
        """
        index = self.load(artifact)
        if not index.entries:
            raise NotFoundError(
                f"No versions found for '{artifact}'",
                suggestions=self._similar_artifacts(artifact),
            )

        for entry in index.entries:
            if entry.tag == ref:
                return entry

        prefix = ref.lower()
        matches = []
        if _HEX_RE.match(prefix):
            matches = [e for e in index.entries if e.id.startswith(prefix)]
        if len(matches) == 1:
            return matches[0]
        if len(matches) > 1:
            raise AmbiguousRefError(ref, [e.id for e in matches])

        tags = [e.tag for e in index.entries if e.tag]
        raise NotFoundError(
            f"Version '{ref}' not found for '{artifact}'",
            suggestions=difflib.get_close_matches(ref, tags, n=3),
        )

    def content(self, entry: VersionEntry) -> str:
        """Text content of an entry."""
        return self.store.get_text(entry.content_digest)

    def tags(self, artifact: str) -> Dict[str, str]:
        return {e.tag: e.id for e in self.load(artifact).entries if e.tag}

    def is_ancestor(self, artifact: str, ancestor: str, descendant: str) -> bool:
        return is_ancestor(self.entries(artifact), ancestor, descendant)

    def merge_base(self, artifact: str, a: str, b: str) -> Optional[str]:
        return merge_base(self.entries(artifact), a, b)

    def delete_artifact(self, artifact: str) -> None:
        """Drop the artifact from the name index. Blobs are kept."""
        self.storage.delete_index(artifact)

    def _validate_parents(
        self, artifact: str, parents: List[str], by_id: Mapping[str, VersionEntry]
    ) -> None:
        if len(parents) > 2:
            raise InvalidParentError(f"An entry has at most 2 parents, got {len(parents)}")
        if len(set(parents)) != len(parents):
            raise InvalidParentError("Duplicate parent ids")
        for parent_id in parents:
            if parent_id not in by_id:
                raise InvalidParentError(
                    f"Parent {parent_id[:12]} does not exist in '{artifact}'"
                )

    def _retag(
        self, artifact: str, entry: VersionEntry, tags: Mapping[str, str]
    ) -> VersionEntry:
        renamed = f"{entry.tag}-{entry.short_id}"
        n = 2
        candidate = renamed
        while candidate in tags:
            candidate = f"{renamed}-{n}"
            n += 1
        log.warning(
            f"Tag '{entry.tag}' of incoming {entry.short_id} is already used in "
            f"'{artifact}'; imported as '{candidate}'"
        )
        return replace(entry, tag=candidate)

    def _check_tag(self, artifact: str, index: ArtifactIndex, tag: str) -> None:
        if not tag or tag != tag.strip():
            raise VersionControlError(f"Invalid tag '{tag}'")
        existing = {e.tag for e in index.entries if e.tag}
        if tag in existing:
            n = 2
            while f"{tag}-{n}" in existing:
                n += 1
            raise DuplicateTagError(artifact, tag, suggestion=f"{tag}-{n}")

    def _next_timestamp(self, index: ArtifactIndex) -> str:
        now = utc_timestamp()
        if not index.entries:
            return now
        latest = max(index.entries, key=lambda e: datetime.fromisoformat(e.timestamp))
        if datetime.fromisoformat(latest.timestamp) > datetime.fromisoformat(now):
            return latest.timestamp
        return now

    def _similar_artifacts(self, artifact: str) -> List[str]:
        return difflib.get_close_matches(artifact, self.list_artifacts(), n=3)
