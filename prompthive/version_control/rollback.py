"""
Rollback of an artifact to the content of an earlier version.

A rollback never rewrites history: it appends a new entry that carries the old
content and has the current head as its parent.
"""

import time
from dataclasses import dataclass
from typing import Optional

from loguru import logger

from .graph import VersionGraph
from .models import VersionEntry

log = logger.bind(component="version_control")

BACKUP_MESSAGE = "Pre-rollback backup"


@dataclass
class RollbackResult:
    """Entries created by a rollback."""

    entry: VersionEntry
    target: VersionEntry
    backup: Optional[VersionEntry] = None


def backup_tag(graph: VersionGraph, artifact: str) -> str:
    """A free ``backup-<unix-ts>`` tag for the artifact."""
    tags = graph.tags(artifact)
    tag = f"backup-{int(time.time())}"
    n = 2
    candidate = tag
    while candidate in tags:
        candidate = f"{tag}-{n}"
        n += 1
    return candidate


class RollbackController:
    """
    Restores an artifact's head to an earlier version's content.

    The caller holds the artifact lock.
    """

    def __init__(self, graph: VersionGraph):
        self.graph = graph

    def rollback(
        self,
        artifact: str,
        ref: str,
        backup: bool = False,
        author: str = "prompthive",
    ) -> RollbackResult:
        """
        Roll ``artifact`` back to the content of ``ref``.

        Args:
            artifact: Artifact name
            ref: Tag or id prefix of the version to restore
            backup: Tag the current head content as ``backup-<ts>`` first. The
                backup entry becomes head, so it is the rollback entry's parent
            author: Author recorded on the new entries

        Returns:
            RollbackResult with the new head entry

        Raises:
            NotFoundError: If ``ref`` does not resolve
            AmbiguousRefError: If ``ref`` matches several entries
        """
        target = self.graph.get(artifact, ref)
        head = self.graph.head(artifact)
        content = self.graph.content(target)

        backup_entry = None
        if backup:
            backup_entry = self.graph.create_version(
                artifact,
                self.graph.content(head),
                parents=[head.id],
                message=BACKUP_MESSAGE,
                author=author,
                tag=backup_tag(self.graph, artifact),
            )
            head = backup_entry
            log.info(f"Backed up '{artifact}' as {backup_entry.tag} ({backup_entry.short_id})")

        entry = self.graph.create_version(
            artifact,
            content,
            parents=[head.id],
            message=f"rollback to {ref}",
            author=author,
        )
        log.info(
            f"Rolled back '{artifact}' to {ref} ({target.short_id}) as {entry.short_id}"
        )
        return RollbackResult(entry=entry, target=target, backup=backup_entry)
