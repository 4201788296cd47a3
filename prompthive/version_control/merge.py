"""
Three-way textual merge.

Both sides are diffed against the common base. Changes are clustered by the
base range they touch; a cluster changed by one side only (or identically by
both) merges cleanly, anything else is a conflict.

Conflict markers follow the diff3 convention and always include the base::

    <<<<<<< ours
    ...ours...
    ||||||| base
    ...base...
    =======
    ...theirs...
    >>>>>>> theirs

Two changes overlap when their base ranges intersect. A pure insertion at line
``p`` overlaps a change spanning ``[s, e)`` only if ``s < p < e``, and overlaps
another insertion only at the same ``p``. Changes that merely touch are applied
in base order, ours before theirs.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

from .diff import Edit, compute_diff, split_lines
from .models import VersionEntry

OURS, THEIRS = 0, 1


class RegionKind(str, Enum):
    """Outcome of merging one region of the base."""

    CLEAN = "clean"
    CONFLICTING = "conflicting"


@dataclass(frozen=True)
class MergeRegion:
    """
    One span of the merged output.

    For clean regions ``ours_text == theirs_text`` and equals the merged text.
    """

    kind: RegionKind
    base_start: int
    base_end: int
    base_text: str
    ours_text: str
    theirs_text: str

    @property
    def is_conflict(self) -> bool:
        return self.kind == RegionKind.CONFLICTING


@dataclass
class MergeResult:
    """Merged content plus the regions it was assembled from."""

    content: str
    regions: List[MergeRegion] = field(default_factory=list)

    @property
    def conflicts(self) -> List[MergeRegion]:
        return [r for r in self.regions if r.is_conflict]

    @property
    def conflicting_regions(self) -> List[MergeRegion]:
        return self.conflicts

    @property
    def has_conflicts(self) -> bool:
        return any(r.is_conflict for r in self.regions)

    def resolve(self, strategy: str) -> str:
        """
        Content with every conflict settled for one side.

        Args:
            strategy: ``"ours"`` or ``"theirs"``
        """
        if strategy not in ("ours", "theirs"):
            raise ValueError(f"Unknown resolution strategy '{strategy}'")
        parts = []
        for region in self.regions:
            if region.is_conflict and strategy == "theirs":
                parts.append(region.theirs_text)
            else:
                parts.append(region.ours_text)
        return "".join(parts)


@dataclass
class Conflict:
    """
    A merge of two versions that needs manual resolution.

    Transient: nothing is persisted until a resolution is committed as a new
    version with both ``ours`` and ``theirs`` as parents.
    """

    base: Optional[VersionEntry]
    ours: VersionEntry
    theirs: VersionEntry
    result: MergeResult

    @property
    def regions(self) -> List[MergeRegion]:
        return self.result.regions

    @property
    def conflicting_regions(self) -> List[MergeRegion]:
        return self.result.conflicts


def _overlaps(change: Edit, other: Edit) -> bool:
    c_empty = change.a_start == change.a_end
    o_empty = other.a_start == other.a_end
    if c_empty and o_empty:
        return change.a_start == other.a_start
    if c_empty:
        return other.a_start < change.a_start < other.a_end
    if o_empty:
        return change.a_start < other.a_start < change.a_end
    return change.a_start < other.a_end and other.a_start < change.a_end


def _cluster(ours: Sequence[Edit], theirs: Sequence[Edit]) -> List[List[Tuple[int, Edit]]]:
    changes = [(OURS, e) for e in ours] + [(THEIRS, e) for e in theirs]
    changes.sort(key=lambda c: (c[1].a_start, c[1].a_end, c[0]))

    clusters: List[List[Tuple[int, Edit]]] = []
    for side, edit in changes:
        if clusters and any(_overlaps(edit, other) for _, other in clusters[-1]):
            clusters[-1].append((side, edit))
        else:
            clusters.append([(side, edit)])
    return clusters


def _side_text(base: Sequence[str], lo: int, hi: int, edits: Sequence[Edit]) -> str:
    """Text of ``base[lo:hi]`` after applying one side's edits inside it."""
    parts = []
    pos = lo
    for edit in sorted(edits, key=lambda e: (e.a_start, e.a_end)):
        parts.extend(base[pos : edit.a_start])
        parts.extend(edit.new_lines)
        pos = edit.a_end
    parts.extend(base[pos:hi])
    return "".join(parts)


def _terminated(text: str) -> str:
    return text if not text or text.endswith("\n") else text + "\n"


def _render_conflict(region: MergeRegion, labels: Tuple[str, str, str]) -> str:
    ours_label, base_label, theirs_label = labels
    return (
        f"<<<<<<< {ours_label}\n"
        f"{_terminated(region.ours_text)}"
        f"||||||| {base_label}\n"
        f"{_terminated(region.base_text)}"
        "=======\n"
        f"{_terminated(region.theirs_text)}"
        f">>>>>>> {theirs_label}\n"
    )


def merge(
    base: Union[str, bytes],
    ours: Union[str, bytes],
    theirs: Union[str, bytes],
    labels: Tuple[str, str, str] = ("ours", "base", "theirs"),
) -> MergeResult:
    """
    Three-way merge of ``ours`` and ``theirs`` against ``base``.

    Args:
        base: Common ancestor content
        ours: Local content
        theirs: Incoming content
        labels: Marker labels for the ours, base and theirs sections

    Returns:
        MergeResult whose ``conflicts`` is empty iff the merge is automatic.
        Conflicting regions appear in ``content`` bracketed by markers, in
        base order.
    """
    base_lines = split_lines(base)
    ours_edits = compute_diff(base, ours).edits
    theirs_edits = compute_diff(base, theirs).edits

    regions: List[MergeRegion] = []

    def unchanged(lo: int, hi: int) -> None:
        if hi > lo:
            text = "".join(base_lines[lo:hi])
            regions.append(MergeRegion(RegionKind.CLEAN, lo, hi, text, text, text))

    pos = 0
    for cluster in _cluster(ours_edits, theirs_edits):
        lo = min(edit.a_start for _, edit in cluster)
        hi = max(edit.a_end for _, edit in cluster)
        unchanged(pos, lo)

        ours_in = [edit for side, edit in cluster if side == OURS]
        theirs_in = [edit for side, edit in cluster if side == THEIRS]
        base_text = "".join(base_lines[lo:hi])
        ours_text = _side_text(base_lines, lo, hi, ours_in)
        theirs_text = _side_text(base_lines, lo, hi, theirs_in)

        if not theirs_in or ours_text == theirs_text:
            regions.append(MergeRegion(RegionKind.CLEAN, lo, hi, base_text, ours_text, ours_text))
        elif not ours_in:
            regions.append(
                MergeRegion(RegionKind.CLEAN, lo, hi, base_text, theirs_text, theirs_text)
            )
        else:
            regions.append(
                MergeRegion(RegionKind.CONFLICTING, lo, hi, base_text, ours_text, theirs_text)
            )
        pos = hi
    unchanged(pos, len(base_lines))

    parts = []
    for region in regions:
        if region.is_conflict:
            parts.append(_render_conflict(region, labels))
        else:
            parts.append(region.ours_text)
    return MergeResult(content="".join(parts), regions=regions)
