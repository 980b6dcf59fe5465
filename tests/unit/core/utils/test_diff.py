"""
Unit tests for the line diff utility.

Tests line interning, the Myers edit script and its rendering.
"""

import pytest

from copilot_chat.core.utils.diff import (
    ELISION_MARKER,
    Edit,
    EditKind,
    LineSequence,
    diff_texts,
    format_edit_script,
    has_changes,
    myers_diff,
    split_lines,
)

OLD_LINES = [
    "hello, this is a test",
    "and this is a Myers' Algorithm",
    "hello world",
    "Bye world",
]

NEW_LINES = [
    "bye, this is a test",
    "and this is a Myers' Algorithm",
    "hello earth",
    "bye world",
    "additional line",
]


def _text(lines):
    return "".join(f"{line}\n" for line in lines)


def _apply(old_lines, script):
    """Rebuild the new text from the old one and a script."""
    result = []
    for edit in script:
        if edit.kind is EditKind.MATCH:
            assert old_lines[edit.line_no - 1] == edit.text
            result.append(edit.text)
        elif edit.kind is EditKind.INSERT:
            result.append(edit.text)
        else:
            assert old_lines[edit.line_no - 1] == edit.text
    return result


class TestSplitLines:
    """Test splitting text into lines."""

    def test_empty_text(self):
        assert split_lines("") == []

    def test_trailing_newline_does_not_add_line(self):
        assert split_lines("a\nb\n") == ["a", "b"]

    def test_missing_trailing_newline(self):
        assert split_lines("a\nb") == ["a", "b"]

    def test_crlf_terminators(self):
        assert split_lines("a\r\nb\r\n") == ["a", "b"]

    def test_blank_lines_are_kept(self):
        assert split_lines("a\n\nb\n") == ["a", "", "b"]


class TestLineSequence:
    """Test interning of lines into shared ids."""

    def test_identical_lines_share_ids(self):
        """Test that equal lines in either text get the same id."""
        old, new = LineSequence.from_texts("a\nb\na\n", "b\nc\na\n")

        assert old.hashes == (0, 1, 0)
        assert new.hashes == (1, 2, 0)

    def test_ids_are_dense_in_first_seen_order(self):
        old, new = LineSequence.from_texts("x\ny\n", "z\n")

        assert sorted(set(old.hashes) | set(new.hashes)) == [0, 1, 2]

    def test_lines_align_with_hashes(self):
        old, _ = LineSequence.from_texts("one\ntwo\n", "")

        assert len(old) == 2
        assert old.lines == ("one", "two")
        assert old[1] == old.hashes[1]

    def test_empty_texts(self):
        old, new = LineSequence.from_texts("", "")

        assert len(old) == 0
        assert len(new) == 0


class TestMyersDiff:
    """Test the shortest edit script."""

    def test_reference_scenario(self):
        """Test the documented old/new example edit by edit."""
        script = diff_texts(_text(OLD_LINES), _text(NEW_LINES))

        assert script == (
            Edit(EditKind.DELETE, 1, "hello, this is a test"),
            Edit(EditKind.INSERT, 1, "bye, this is a test"),
            Edit(EditKind.MATCH, 2, "and this is a Myers' Algorithm"),
            Edit(EditKind.DELETE, 3, "hello world"),
            Edit(EditKind.DELETE, 4, "Bye world"),
            Edit(EditKind.INSERT, 3, "hello earth"),
            Edit(EditKind.INSERT, 4, "bye world"),
            Edit(EditKind.INSERT, 5, "additional line"),
        )

    def test_identical_texts_only_match(self):
        """Test that equal inputs produce one MATCH per line."""
        text = _text(OLD_LINES)
        script = diff_texts(text, text)

        assert len(script) == len(OLD_LINES)
        assert all(edit.kind is EditKind.MATCH for edit in script)
        assert [edit.line_no for edit in script] == [1, 2, 3, 4]
        assert not has_changes(script)

    def test_both_empty(self):
        assert diff_texts("", "") == ()

    def test_from_empty_inserts_everything(self):
        script = diff_texts("", "a\nb\n")

        assert script == (
            Edit(EditKind.INSERT, 1, "a"),
            Edit(EditKind.INSERT, 2, "b"),
        )

    def test_to_empty_deletes_everything(self):
        script = diff_texts("a\nb\n", "")

        assert script == (
            Edit(EditKind.DELETE, 1, "a"),
            Edit(EditKind.DELETE, 2, "b"),
        )

    def test_common_prefix_and_suffix(self):
        """Test that unchanged lines around a change stay matches."""
        script = diff_texts("a\nb\nc\n", "a\nx\nc\n")

        assert script == (
            Edit(EditKind.MATCH, 1, "a"),
            Edit(EditKind.DELETE, 2, "b"),
            Edit(EditKind.INSERT, 2, "x"),
            Edit(EditKind.MATCH, 3, "c"),
        )

    @pytest.mark.parametrize(
        "old_lines,new_lines",
        [
            (OLD_LINES, NEW_LINES),
            (NEW_LINES, OLD_LINES),
            (["a", "b", "c", "a", "b", "b", "a"], ["c", "b", "a", "b", "a", "c"]),
            (["x"] * 5, ["x"] * 3),
            (["a", "b"], ["b", "a"]),
        ],
    )
    def test_script_rebuilds_new_text(self, old_lines, new_lines):
        """Test that replaying a script on the old text yields the new text."""
        old, new = LineSequence.from_texts(_text(old_lines), _text(new_lines))
        script = myers_diff(old, new)

        assert _apply(old_lines, script) == new_lines

    def test_script_is_minimal(self):
        """Test the edit count of a known distance."""
        script = diff_texts("a\nb\nc\na\nb\nb\na\n", "c\nb\na\nb\na\nc\n")
        edits = [edit for edit in script if edit.kind is not EditKind.MATCH]

        assert len(edits) == 5


class TestFormatEditScript:
    """Test rendering of edit scripts."""

    def test_edit_rendering(self):
        assert str(Edit(EditKind.MATCH, 2, "same")) == "2 same"
        assert str(Edit(EditKind.INSERT, 3, "new")) == "+ 3 new"
        assert str(Edit(EditKind.DELETE, 4, "old")) == "- 4 old"

    def test_full_rendering_keeps_all_matches(self):
        script = diff_texts("a\nb\nc\n", "a\nx\nc\n")

        assert format_edit_script(script) == "1 a\n- 2 b\n+ 2 x\n3 c"

    def test_context_elides_distant_matches(self):
        """Test that runs of unchanged lines collapse into one marker."""
        old = "".join(f"line {i}\n" for i in range(1, 11))
        new = old.replace("line 5\n", "line five\n")

        rendered = format_edit_script(diff_texts(old, new), context_lines=1)

        assert rendered.split("\n") == [
            ELISION_MARKER,
            "4 line 4",
            "- 5 line 5",
            "+ 5 line five",
            "6 line 6",
            ELISION_MARKER,
        ]

    def test_zero_context_keeps_only_changes(self):
        script = diff_texts("a\nb\nc\n", "a\nx\nc\n")

        assert format_edit_script(script, context_lines=0) == (
            f"{ELISION_MARKER}\n- 2 b\n+ 2 x\n{ELISION_MARKER}"
        )
