"""
Diff computation for comparing prompt versions.

Computes a minimal line-level edit script (longest common subsequence) between
two texts and renders it as a unified, side-by-side, or brief diff.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Sequence, Tuple, Union

from .models import normalize_content

DEFAULT_CONTEXT = 3
DEFAULT_COLUMN_WIDTH = 40
NO_NEWLINE_MARKER = "\\ No newline at end of file"


class ChangeType(str, Enum):
    """Type of change in an edit script."""

    INSERT = "insert"
    DELETE = "delete"
    REPLACE = "replace"


class DiffFormat(str, Enum):
    """Presentation formats understood by ``render_diff``."""

    UNIFIED = "unified"
    SIDE_BY_SIDE = "side-by-side"
    BRIEF = "brief"

    @classmethod
    def parse(cls, value: Union[str, "DiffFormat"]) -> "DiffFormat":
        if isinstance(value, cls):
            return value
        if value == "side":
            return cls.SIDE_BY_SIDE
        try:
            return cls(value)
        except ValueError:
            supported = ", ".join(f.value for f in cls)
            raise ValueError(f"Unsupported diff format '{value}'. Supported: {supported}")


@dataclass(frozen=True)
class Edit:
    """
    One contiguous change: ``a[a_start:a_end]`` becomes ``b[b_start:b_end]``.

    Line indexes are 0-based and half-open.
    """

    change_type: ChangeType
    a_start: int
    a_end: int
    b_start: int
    b_end: int
    old_lines: Tuple[str, ...]
    new_lines: Tuple[str, ...]

    def summary(self) -> str:
        """Get a one-line summary of this change."""
        if self.change_type == ChangeType.INSERT:
            return f"+ {len(self.new_lines)} line(s) after line {self.a_start}"
        elif self.change_type == ChangeType.DELETE:
            return f"- {len(self.old_lines)} line(s) at line {self.a_start + 1}"
        return (
            f"M {len(self.old_lines)} line(s) at line {self.a_start + 1}"
            f" -> {len(self.new_lines)} line(s)"
        )


@dataclass
class EditScript:
    """
    Edit script from text ``a`` to text ``b``.

    Only changes are listed; identical inputs yield an empty script.
    """

    a_lines: Tuple[str, ...]
    b_lines: Tuple[str, ...]
    edits: List[Edit] = field(default_factory=list)

    def has_changes(self) -> bool:
        return len(self.edits) > 0

    def __len__(self) -> int:
        return len(self.edits)

    def __iter__(self):
        return iter(self.edits)

    def count_by_type(self) -> Dict[str, int]:
        """Count lines added and removed."""
        counts = {"added": 0, "removed": 0}
        for edit in self.edits:
            counts["added"] += len(edit.new_lines)
            counts["removed"] += len(edit.old_lines)
        return counts

    def summary(self) -> str:
        """Generate a summary of the diff."""
        if not self.has_changes():
            return "No changes"
        counts = self.count_by_type()
        return (
            f"{len(self.edits)} change(s): "
            f"{counts['added']} line(s) added, {counts['removed']} line(s) removed"
        )

    def apply(self, text: Union[str, bytes]) -> str:
        """
        Apply this script to ``text`` (which must equal ``a``).

        Raises:
            ValueError: If ``text`` does not match the script's source
        """
        lines = split_lines(text)
        out: List[str] = []
        pos = 0
        for edit in self.edits:
            if tuple(lines[edit.a_start : edit.a_end]) != edit.old_lines:
                raise ValueError(f"Edit at line {edit.a_start + 1} does not apply")
            out.extend(lines[pos : edit.a_start])
            out.extend(edit.new_lines)
            pos = edit.a_end
        out.extend(lines[pos:])
        return "".join(out)


def split_lines(text: Union[str, bytes]) -> List[str]:
    """Split normalized text into lines, keeping line terminators."""
    return normalize_content(text).decode("utf-8").splitlines(keepends=True)


def _lcs_pairs(a: Sequence[str], b: Sequence[str]) -> List[Tuple[int, int]]:
    """Matched (i, j) index pairs of a longest common subsequence."""
    n, m = len(a), len(b)
    # table[i][j] = LCS length of a[i:] and b[j:]
    table = [[0] * (m + 1) for _ in range(n + 1)]
    for i in range(n - 1, -1, -1):
        row, below = table[i], table[i + 1]
        ai = a[i]
        for j in range(m - 1, -1, -1):
            if ai == b[j]:
                row[j] = below[j + 1] + 1
            else:
                row[j] = below[j] if below[j] >= row[j + 1] else row[j + 1]

    pairs = []
    i = j = 0
    while i < n and j < m:
        if a[i] == b[j]:
            pairs.append((i, j))
            i += 1
            j += 1
        elif table[i + 1][j] >= table[i][j + 1]:
            i += 1
        else:
            j += 1
    return pairs


def compute_diff(a: Union[str, bytes], b: Union[str, bytes]) -> EditScript:
    """
    Compute a minimal line-level edit script from ``a`` to ``b``.

    Common prefix and suffix are stripped before the LCS table is built.

    Args:
        a: Old content
        b: New content

    Returns:
        EditScript; empty when the contents are identical
    """
    a_lines = split_lines(a)
    b_lines = split_lines(b)

    prefix = 0
    limit = min(len(a_lines), len(b_lines))
    while prefix < limit and a_lines[prefix] == b_lines[prefix]:
        prefix += 1
    suffix = 0
    while (
        suffix < limit - prefix
        and a_lines[len(a_lines) - 1 - suffix] == b_lines[len(b_lines) - 1 - suffix]
    ):
        suffix += 1

    a_mid = a_lines[prefix : len(a_lines) - suffix]
    b_mid = b_lines[prefix : len(b_lines) - suffix]
    pairs = [(i + prefix, j + prefix) for i, j in _lcs_pairs(a_mid, b_mid)]
    # Sentinel closes the final gap
    pairs.append((len(a_lines) - suffix, len(b_lines) - suffix))

    edits: List[Edit] = []
    i = j = prefix
    for mi, mj in pairs:
        if mi > i or mj > j:
            if mi > i and mj > j:
                change_type = ChangeType.REPLACE
            elif mi > i:
                change_type = ChangeType.DELETE
            else:
                change_type = ChangeType.INSERT
            edits.append(
                Edit(
                    change_type=change_type,
                    a_start=i,
                    a_end=mi,
                    b_start=j,
                    b_end=mj,
                    old_lines=tuple(a_lines[i:mi]),
                    new_lines=tuple(b_lines[j:mj]),
                )
            )
        i, j = mi + 1, mj + 1

    return EditScript(a_lines=tuple(a_lines), b_lines=tuple(b_lines), edits=edits)


def _group_hunks(script: EditScript, context: int) -> List[List[Edit]]:
    hunks: List[List[Edit]] = []
    for edit in script.edits:
        if hunks and edit.a_start - hunks[-1][-1].a_end <= 2 * context:
            hunks[-1].append(edit)
        else:
            hunks.append([edit])
    return hunks


def _hunk_bounds(script: EditScript, hunk: List[Edit], context: int) -> Tuple[int, int, int, int]:
    first, last = hunk[0], hunk[-1]
    a_lo = max(0, first.a_start - context)
    a_hi = min(len(script.a_lines), last.a_end + context)
    b_lo = first.b_start - (first.a_start - a_lo)
    b_hi = last.b_end + (a_hi - last.a_end)
    return a_lo, a_hi, b_lo, b_hi


def _unified_range(start: int, length: int) -> str:
    if length == 0:
        return f"{start},0"
    if length == 1:
        return f"{start + 1}"
    return f"{start + 1},{length}"


def _display(line: str) -> str:
    return line[:-1] if line.endswith("\n") else line


def _unified_lines(prefix: str, lines: Sequence[str]) -> List[str]:
    out = []
    for line in lines:
        out.append(prefix + _display(line))
        if not line.endswith("\n"):
            out.append(NO_NEWLINE_MARKER)
    return out


def _render_unified(script: EditScript, context: int, from_label: str, to_label: str) -> str:
    lines = [f"--- {from_label}", f"+++ {to_label}"]
    for hunk in _group_hunks(script, context):
        a_lo, a_hi, b_lo, b_hi = _hunk_bounds(script, hunk, context)
        lines.append(
            f"@@ -{_unified_range(a_lo, a_hi - a_lo)} +{_unified_range(b_lo, b_hi - b_lo)} @@"
        )
        pos = a_lo
        for edit in hunk:
            lines.extend(_unified_lines(" ", script.a_lines[pos : edit.a_start]))
            lines.extend(_unified_lines("-", edit.old_lines))
            lines.extend(_unified_lines("+", edit.new_lines))
            pos = edit.a_end
        lines.extend(_unified_lines(" ", script.a_lines[pos:a_hi]))
    return "\n".join(lines) + "\n"


def _cell(line: str, width: int) -> str:
    text = _display(line).replace("\t", "    ")
    if len(text) > width:
        text = text[: width - 2] + ".."
    return text.ljust(width)


def _render_side_by_side(
    script: EditScript, context: int, from_label: str, to_label: str, width: int
) -> str:
    rows = [f"{_cell(from_label, width)}   {to_label}", f"{'-' * width}   {'-' * width}"]

    def row(left: str, marker: str, right: str) -> str:
        return f"{_cell(left, width)} {marker} {_cell(right, width)}".rstrip()

    hunks = _group_hunks(script, context)
    for n, hunk in enumerate(hunks):
        a_lo, a_hi, _, _ = _hunk_bounds(script, hunk, context)
        if n > 0 or a_lo > 0:
            rows.append("...")
        pos = a_lo
        for edit in hunk:
            for line in script.a_lines[pos : edit.a_start]:
                rows.append(row(line, " ", line))
            paired = min(len(edit.old_lines), len(edit.new_lines))
            for k in range(paired):
                rows.append(row(edit.old_lines[k], "|", edit.new_lines[k]))
            for line in edit.old_lines[paired:]:
                rows.append(row(line, "<", ""))
            for line in edit.new_lines[paired:]:
                rows.append(row("", ">", line))
            pos = edit.a_end
        for line in script.a_lines[pos:a_hi]:
            rows.append(row(line, " ", line))
        if n == len(hunks) - 1 and a_hi < len(script.a_lines):
            rows.append("...")
    return "\n".join(rows) + "\n"


def _render_brief(script: EditScript, from_label: str, to_label: str) -> str:
    if not script.has_changes():
        return f"{from_label} and {to_label} are identical\n"
    a_text = "".join(script.a_lines)
    b_text = "".join(script.b_lines)
    return (
        f"{from_label} and {to_label} differ\n"
        f"{from_label}: {len(script.a_lines)} lines, {len(a_text)} characters\n"
        f"{to_label}: {len(script.b_lines)} lines, {len(b_text)} characters\n"
    )


def render_diff(
    script: EditScript,
    fmt: Union[str, DiffFormat] = DiffFormat.UNIFIED,
    context: int = DEFAULT_CONTEXT,
    from_label: str = "a",
    to_label: str = "b",
    width: int = DEFAULT_COLUMN_WIDTH,
) -> str:
    """
    Render an edit script for display.

    Args:
        script: Script from ``compute_diff``
        fmt: Output format
        context: Unchanged lines shown around each change
        from_label: Name of the old side
        to_label: Name of the new side
        width: Column width for side-by-side output

    Returns:
        Rendered diff; empty for unified/side-by-side when nothing changed
    """
    fmt = DiffFormat.parse(fmt)
    if context < 0:
        raise ValueError("context must be >= 0")

    if fmt == DiffFormat.BRIEF:
        return _render_brief(script, from_label, to_label)
    if not script.has_changes():
        return ""
    if fmt == DiffFormat.UNIFIED:
        return _render_unified(script, context, from_label, to_label)
    return _render_side_by_side(script, context, from_label, to_label, width)
