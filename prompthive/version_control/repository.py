"""
Local prompt repository.

Ties the content store, version graph, working-copy prompts and artifact
locks together. Every mutating operation runs under the artifact lock; reads
never lock.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple, Union

from loguru import logger

from ..config import Config, config as default_config
from ..logging import track_operation
from ..prompts import PromptLibrary
from .content_store import ContentStore
from .diff import DiffFormat, EditScript, compute_diff, render_diff
from .errors import MergeConflictError, NotFoundError, VersionControlError
from .graph import History, VersionGraph
from .locking import ArtifactLock
from .merge import Conflict, MergeResult, merge
from .models import VersionEntry
from .rollback import RollbackController, RollbackResult, backup_tag
from .storage import VersionStorage

log = logger.bind(component="version_control")


def parse_ref(ref_spec: str) -> Tuple[str, Optional[str]]:
    """
    Split ``artifact@ref`` into its parts.

    A bare ``artifact`` means its head and yields ``(artifact, None)``.
    """
    artifact, sep, ref = ref_spec.rpartition("@")
    if not sep:
        return ref_spec, None
    if not artifact or not ref:
        raise VersionControlError(f"Invalid version reference '{ref_spec}' (use artifact@ref)")
    return artifact, ref


@dataclass
class MergeOutcome:
    """
    Result of merging a side line into an artifact head.

    ``entry`` is None when nothing was committed (preview, conflicts, or
    already merged).
    """

    source: VersionEntry
    target: VersionEntry
    base: Optional[VersionEntry]
    result: MergeResult
    entry: Optional[VersionEntry] = None
    backup: Optional[VersionEntry] = None
    fast_forward: bool = False
    up_to_date: bool = False

    @property
    def conflict(self) -> Optional[Conflict]:
        if not self.result.has_conflicts:
            return None
        return Conflict(base=self.base, ours=self.target, theirs=self.source, result=self.result)


class PromptRepository:
    """
    Versioned prompt storage rooted at one base directory.

    Layout::

        <base>/prompts/    working copies
        <base>/versions/   per-artifact indexes
        <base>/objects/    content blobs
        <base>/locks/      artifact lock files

    Example:
        >>> repo = PromptRepository(Path("/tmp/hive"))
        >>> repo.create_version("greeting", "Hello\\n", tag="v1.0")
        >>> repo.head("greeting").tag
        'v1.0'
    """

    def __init__(self, base_dir: Optional[Path] = None, config: Optional[Config] = None):
        self.config = config or default_config
        self.base_dir = Path(base_dir) if base_dir else self.config.storage.base_path
        self.storage = VersionStorage(self.base_dir)
        self.store = ContentStore(self.storage.objects_dir)
        self.graph = VersionGraph(self.storage, self.store)
        self.prompts = PromptLibrary(self.base_dir / "prompts")
        self.rollbacks = RollbackController(self.graph)

    @property
    def author(self) -> str:
        return self.config.storage.author

    def lock(self, artifact: str) -> ArtifactLock:
        """Exclusive lock for mutating ``artifact``."""
        return ArtifactLock(
            self.storage.lock_path(artifact), artifact, timeout=self.config.lock.timeout
        )

    # Reads

    def list_artifacts(self) -> List[str]:
        return self.graph.list_artifacts()

    def history(self, artifact: str) -> History:
        """
        Restartable history of ``artifact``, newest first.

        Raises:
            NotFoundError: If the artifact has no versions
        """
        self.graph.head(artifact)
        return self.graph.history(artifact)

    def head(self, artifact: str) -> VersionEntry:
        return self.graph.head(artifact)

    def get(self, artifact: str, ref: Optional[str] = None) -> VersionEntry:
        """Resolve ``ref`` (tag or id prefix), or the head when omitted."""
        if ref is None:
            return self.graph.head(artifact)
        return self.graph.get(artifact, ref)

    def resolve(self, ref_spec: str) -> VersionEntry:
        """Resolve an ``artifact@ref`` or bare ``artifact`` reference."""
        artifact, ref = parse_ref(ref_spec)
        return self.get(artifact, ref)

    def content(self, entry: VersionEntry) -> str:
        return self.graph.content(entry)

    def show(self, ref_spec: str) -> str:
        """Content of the version named by ``ref_spec``."""
        return self.content(self.resolve(ref_spec))

    def compute_diff(self, ref_a: str, ref_b: str) -> EditScript:
        return compute_diff(self.show(ref_a), self.show(ref_b))

    def diff(
        self,
        ref_a: str,
        ref_b: str,
        fmt: Union[str, DiffFormat] = DiffFormat.UNIFIED,
        context: Optional[int] = None,
        width: Optional[int] = None,
    ) -> str:
        """
        Render the diff between two version references.

        Args:
            ref_a: Old side, ``artifact@ref`` or ``artifact``
            ref_b: New side
            fmt: unified, side-by-side or brief
            context: Context lines (defaults to configuration)
            width: Side-by-side column width (defaults to configuration)
        """
        script = self.compute_diff(ref_a, ref_b)
        return render_diff(
            script,
            fmt,
            context=self.config.diff.context_lines if context is None else context,
            from_label=ref_a,
            to_label=ref_b,
            width=self.config.diff.column_width if width is None else width,
        )

    # Writes

    @track_operation("create_version")
    def create_version(
        self,
        artifact: str,
        content: Optional[str] = None,
        message: str = "",
        tag: Optional[str] = None,
        parent_ref: Optional[str] = None,
        author: Optional[str] = None,
    ) -> VersionEntry:
        """
        Snapshot content as a new version.

        Args:
            artifact: Artifact name
            content: Content to store; defaults to the working-copy prompt
            message: Description of the version
            tag: Optional tag, unique within the artifact
            parent_ref: Create from this older version instead of head.
                Head only moves if the parent is the current head.
            author: Defaults to the configured author

        Raises:
            NotFoundError: If there is no content and no working copy
            DuplicateTagError: If ``tag`` is taken
        """
        if content is None:
            content = self.prompts.read(artifact)

        with self.lock(artifact):
            parents = None
            if parent_ref is not None:
                parents = [self.graph.get(artifact, parent_ref).id]
            entry = self.graph.create_version(
                artifact,
                content,
                parents=parents,
                message=message,
                author=author or self.author,
                tag=tag,
            )
            if self.graph.head_id(artifact) == entry.id:
                self.prompts.write(artifact, self.graph.content(entry))
        return entry

    @track_operation("set_head")
    def set_head(self, artifact: str, ref: str) -> VersionEntry:
        """Explicitly move head to an existing version and update the working copy."""
        with self.lock(artifact):
            entry = self.graph.set_head(artifact, self.graph.get(artifact, ref).id)
            self.prompts.write(artifact, self.graph.content(entry))
        return entry

    @track_operation("rollback")
    def rollback(self, artifact: str, ref: str, backup: bool = False) -> RollbackResult:
        """
        Restore an earlier version's content as a new head entry.

        Raises:
            NotFoundError: If ``ref`` does not resolve
            AmbiguousRefError: If ``ref`` matches several entries
        """
        with self.lock(artifact):
            result = self.rollbacks.rollback(artifact, ref, backup=backup, author=self.author)
            self.prompts.write(artifact, self.graph.content(result.entry))
        return result

    @track_operation("merge")
    def merge(
        self,
        source: str,
        target: str,
        backup: bool = False,
        preview: bool = False,
        strategy: Optional[str] = None,
        content: Optional[str] = None,
    ) -> MergeOutcome:
        """
        Merge a version (``artifact@ref``) into the head of ``target``.

        A source of the same artifact is merged three-way against the merge
        base and committed with both heads as parents. A source from another
        artifact replaces the target content: it is committed as an ordinary
        entry on top of the target head.

        Conflicts are returned without writing anything unless ``strategy``
        resolves them.

        Args:
            source: ``artifact@ref`` naming the version to merge
            target: Artifact whose head receives the merge
            backup: Tag the pre-merge head as ``backup-<ts>`` before committing
            preview: Compute only, never write
            strategy: ``ours`` / ``theirs`` settle every conflicting region for
                that side; ``manual`` commits ``content`` as given
            content: Resolved text for the manual strategy

        Raises:
            MergeConflictError: If ``manual`` is used without content
        """
        if strategy not in (None, "ours", "theirs", "manual"):
            raise ValueError(f"Unknown resolution strategy '{strategy}'")

        source_artifact, _ = parse_ref(source)
        target_artifact, target_ref = parse_ref(target)
        if target_ref is not None:
            raise VersionControlError(f"Merge target must be an artifact, got '{target}'")
        same_artifact = source_artifact == target_artifact

        with self.lock(target_artifact):
            source_entry = self.resolve(source)
            target_entry = self.graph.head(target_artifact)
            target_text = self.content(target_entry)
            source_text = self.content(source_entry)

            if same_artifact:
                base_id = self.graph.merge_base(target_artifact, source_entry.id, target_entry.id)
                base_entry = self.graph.entries(target_artifact).get(base_id) if base_id else None
                base_text = self.content(base_entry) if base_entry else ""
            else:
                # The target head acts as base, so the source content wins outright
                base_id = None
                base_entry = target_entry
                base_text = target_text

            result = merge(
                base_text,
                target_text,
                source_text,
                labels=(target_artifact, "base", source),
            )
            outcome = MergeOutcome(
                source=source_entry, target=target_entry, base=base_entry, result=result
            )

            if (same_artifact and base_id == source_entry.id) or (
                not same_artifact and source_text == target_text
            ):
                outcome.up_to_date = True
                return outcome
            if same_artifact and base_id == target_entry.id:
                outcome.fast_forward = True
            if preview:
                return outcome

            merged = result.content
            message = f"merge {source} into {target_artifact}"
            if result.has_conflicts:
                if strategy is None:
                    return outcome
                if strategy == "manual":
                    if content is None:
                        raise MergeConflictError(outcome.conflict)
                    merged = content
                else:
                    merged = result.resolve(strategy)
                message = f"resolve merge of {source} into {target_artifact}"

            if backup:
                outcome.backup = self.graph.create_version(
                    target_artifact,
                    target_text,
                    parents=[target_entry.id],
                    message="Pre-merge backup",
                    author=self.author,
                    tag=backup_tag(self.graph, target_artifact),
                )
                target_entry = outcome.backup

            if outcome.fast_forward and not backup:
                outcome.entry = self.graph.set_head(target_artifact, source_entry.id)
            else:
                parents = [target_entry.id]
                if same_artifact:
                    parents.append(source_entry.id)
                outcome.entry = self.graph.create_version(
                    target_artifact,
                    merged,
                    parents=parents,
                    message=message,
                    author=self.author,
                )
            self.prompts.write(target_artifact, self.content(outcome.entry))
            log.info(
                f"Merged {source} into '{target_artifact}' as {outcome.entry.short_id}"
            )
        return outcome

    @track_operation("delete")
    def delete(self, artifact: str) -> None:
        """Remove an artifact from the name index and its prompt file. Blobs are kept."""
        with self.lock(artifact):
            if not self.graph.exists(artifact):
                raise NotFoundError(f"Artifact '{artifact}' has no version history")
            self.graph.delete_artifact(artifact)
            self.prompts.delete(artifact)
