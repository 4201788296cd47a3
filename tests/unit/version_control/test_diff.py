"""
Unit tests for line diffs and their rendering.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from prompthive.version_control.diff import (
    ChangeType,
    DiffFormat,
    compute_diff,
    render_diff,
    split_lines,
)

lines_text = st.text(alphabet="abc\n", max_size=40)


class TestComputeDiff:
    """Tests for edit script computation."""

    def test_identical_content_is_empty(self) -> None:
        """Test diff(a, a) has no edits."""
        script = compute_diff("one\ntwo\n", "one\ntwo\n")
        assert not script.has_changes()
        assert len(script) == 0
        assert script.summary() == "No changes"

    def test_single_line_replaced(self) -> None:
        """Test a changed line is one replace edit."""
        script = compute_diff("one\ntwo\nthree\n", "one\n2\nthree\n")

        assert len(script) == 1
        edit = script.edits[0]
        assert edit.change_type == ChangeType.REPLACE
        assert edit.old_lines == ("two\n",)
        assert edit.new_lines == ("2\n",)
        assert (edit.a_start, edit.a_end) == (1, 2)

    def test_insert_and_delete(self) -> None:
        """Test pure insertions and deletions are classified."""
        inserted = compute_diff("a\nc\n", "a\nb\nc\n").edits
        assert [e.change_type for e in inserted] == [ChangeType.INSERT]
        assert inserted[0].a_start == inserted[0].a_end == 1

        deleted = compute_diff("a\nb\nc\n", "a\nc\n").edits
        assert [e.change_type for e in deleted] == [ChangeType.DELETE]

    def test_disjoint_content_replaces_everything(self) -> None:
        """Test completely different content deletes all of a and inserts all of b."""
        script = compute_diff("a\nb\n", "c\nd\n")
        assert len(script) == 1
        assert script.edits[0].old_lines == ("a\n", "b\n")
        assert script.edits[0].new_lines == ("c\n", "d\n")

    def test_minimal_edit(self) -> None:
        """Test the script keeps the longest common subsequence."""
        script = compute_diff("a\nb\nc\nd\n", "b\nc\nx\n")
        counts = script.count_by_type()
        assert counts == {"added": 1, "removed": 2}

    def test_line_endings_ignored(self) -> None:
        """Test CRLF content diffs equal to LF content."""
        assert not compute_diff("a\r\nb\r\n", "a\nb\n").has_changes()

    def test_split_lines_keeps_terminators(self) -> None:
        """Test lines keep their newline, last line may lack one."""
        assert split_lines("a\nb") == ["a\n", "b"]
        assert split_lines("") == []


class TestApply:
    """Tests for applying edit scripts."""

    def test_apply_reconstructs_target(self) -> None:
        """Test applying diff(a, b) to a gives b."""
        a = "keep\nold\nkeep\n"
        b = "keep\nnew\nkeep\nmore\n"
        assert compute_diff(a, b).apply(a) == b

    def test_apply_to_wrong_source_fails(self) -> None:
        """Test applying to different content is refused."""
        script = compute_diff("a\nb\n", "a\nc\n")
        with pytest.raises(ValueError):
            script.apply("a\nz\n")

    @given(a=lines_text, b=lines_text)
    @settings(max_examples=200, deadline=None)
    def test_round_trip(self, a: str, b: str) -> None:
        """Property: applying diff(a, b) to a reconstructs b exactly."""
        assert compute_diff(a, b).apply(a) == b

    @given(a=lines_text)
    @settings(max_examples=100, deadline=None)
    def test_self_diff_empty(self, a: str) -> None:
        """Property: diff(a, a) is empty."""
        assert not compute_diff(a, a).has_changes()


class TestRenderUnified:
    """Tests for unified output."""

    def test_unified_output(self) -> None:
        """Test a single-change unified diff."""
        script = compute_diff("one\ntwo\nthree\n", "one\n2\nthree\n")
        assert render_diff(script, DiffFormat.UNIFIED, from_label="v1", to_label="v2") == (
            "--- v1\n"
            "+++ v2\n"
            "@@ -1,3 +1,3 @@\n"
            " one\n"
            "-two\n"
            "+2\n"
            " three\n"
        )

    def test_zero_context(self) -> None:
        """Test context=0 shows changed lines only."""
        script = compute_diff("one\ntwo\nthree\n", "one\n2\nthree\n")
        text = render_diff(script, "unified", context=0)
        assert "@@ -2 +2 @@" in text
        assert " one" not in text

    def test_hunks_split_by_context(self) -> None:
        """Test distant changes form separate hunks unless context joins them."""
        a = "".join(f"line {n}\n" for n in range(1, 11))
        b = a.replace("line 2\n", "LINE 2\n").replace("line 9\n", "LINE 9\n")
        script = compute_diff(a, b)

        assert render_diff(script, context=1).count("@@ -") == 2
        assert render_diff(script, context=3).count("@@ -") == 1

    def test_insert_into_empty(self) -> None:
        """Test the hunk header for content added to an empty text."""
        text = render_diff(compute_diff("", "x\n"))
        assert "@@ -0,0 +1 @@" in text
        assert "+x" in text

    def test_missing_final_newline_marked(self) -> None:
        """Test lines without a trailing newline are flagged."""
        text = render_diff(compute_diff("x", "y"))
        assert "\\ No newline at end of file" in text

    def test_no_changes_renders_empty(self) -> None:
        """Test identical content renders nothing."""
        assert render_diff(compute_diff("a\n", "a\n")) == ""

    def test_negative_context_rejected(self) -> None:
        """Test context must be non-negative."""
        with pytest.raises(ValueError):
            render_diff(compute_diff("a\n", "b\n"), context=-1)


class TestRenderOtherFormats:
    """Tests for side-by-side and brief output."""

    def test_side_by_side_markers(self) -> None:
        """Test changed, removed and added rows are marked."""
        script = compute_diff("same\nold\ngone\n", "same\nnew\n")
        text = render_diff(script, DiffFormat.SIDE_BY_SIDE, from_label="a", to_label="b", width=20)
        lines = text.splitlines()

        assert lines[0].startswith("a")
        assert any(" | " in line and "old" in line and "new" in line for line in lines)
        assert any(line.rstrip().endswith("<") and "gone" in line for line in lines)
        assert any(line.startswith("same") for line in lines)

    def test_side_by_side_truncates_long_lines(self) -> None:
        """Test cells longer than the column width are cut with '..'."""
        script = compute_diff("x" * 50 + "\n", "y\n")
        text = render_diff(script, "side-by-side", width=10)
        assert "xxxxxxxx.." in text

    def test_side_by_side_right_column_matches_left(self) -> None:
        """Test the right cell expands tabs and is cut with '..' too."""
        script = compute_diff("a\n", "b\t" + "y" * 50 + "\n")
        text = render_diff(script, "side-by-side", width=10)

        assert "\t" not in text
        assert any(line.endswith(" | b    yyy..") for line in text.splitlines())

    def test_side_by_side_alias(self) -> None:
        """Test 'side' is accepted as a format name."""
        assert DiffFormat.parse("side") == DiffFormat.SIDE_BY_SIDE

    def test_brief(self) -> None:
        """Test brief reports identical or line/char counts."""
        same = render_diff(compute_diff("a\n", "a\n"), DiffFormat.BRIEF)
        assert "identical" in same

        differ = render_diff(compute_diff("a\n", "a\nbb\n"), DiffFormat.BRIEF, to_label="new")
        assert "differ" in differ
        assert "new: 2 lines, 5 characters" in differ

    def test_unknown_format(self) -> None:
        """Test unsupported formats raise ValueError."""
        with pytest.raises(ValueError):
            render_diff(compute_diff("a\n", "b\n"), "html")
