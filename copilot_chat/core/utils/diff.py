"""
Line-level diff utility based on Myers' shortest edit script.

Both texts are interned into a shared table of small integer ids so that the
search compares integers instead of strings. The greedy forward pass records
the furthest-reaching x per diagonal for every edit distance; backtracking over
that trace rebuilds the script without recursion.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

# Replaces a run of unchanged lines dropped from a diff payload
ELISION_MARKER = "..."


class EditKind(str, Enum):
    """Type of a single edit."""

    MATCH = "match"
    INSERT = "insert"
    DELETE = "delete"


@dataclass(frozen=True)
class Edit:
    """One line of an edit script.

    ``line_no`` is 1-based: old-text numbering for MATCH and DELETE, new-text
    numbering for INSERT.
    """

    kind: EditKind
    line_no: int
    text: str

    def __str__(self) -> str:
        if self.kind is EditKind.INSERT:
            return f"+ {self.line_no} {self.text}"
        if self.kind is EditKind.DELETE:
            return f"- {self.line_no} {self.text}"
        return f"{self.line_no} {self.text}"


EditScript = Tuple[Edit, ...]


def split_lines(text: str) -> List[str]:
    """
    Split text into lines on ``\\n``.

    A trailing newline does not produce an empty last line and a ``\\r``
    before the newline is dropped.

    Args:
        text: Text to split

    Returns:
        List of lines without terminators
    """
    if not text:
        return []

    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()

    return [line[:-1] if line.endswith("\r") else line for line in lines]


@dataclass(frozen=True)
class LineSequence:
    """Ordered lines of one text together with their interned ids."""

    hashes: Tuple[int, ...]
    lines: Tuple[str, ...]

    @classmethod
    def from_texts(
        cls, old_text: str, new_text: str
    ) -> Tuple["LineSequence", "LineSequence"]:
        """
        Build the sequences for both texts with a shared id table.

        Ids are allocated in first-seen order, old text first, so identical
        lines in either text share one id.

        Args:
            old_text: Baseline text
            new_text: Current text

        Returns:
            Tuple of (old sequence, new sequence)
        """
        table: Dict[str, int] = {}

        def intern(lines: List[str]) -> "LineSequence":
            hashes = []
            for line in lines:
                line_id = table.get(line)
                if line_id is None:
                    line_id = len(table)
                    table[line] = line_id
                hashes.append(line_id)
            return cls(hashes=tuple(hashes), lines=tuple(lines))

        old_seq = intern(split_lines(old_text))
        new_seq = intern(split_lines(new_text))
        return old_seq, new_seq

    def __len__(self) -> int:
        return len(self.hashes)

    def __getitem__(self, index: int) -> int:
        return self.hashes[index]


def _takes_insertion(v: Sequence[int], k: int, d: int, offset: int) -> bool:
    # Step down from diagonal k+1 unless k+1 is off the band or k-1 reaches further
    return k == -d or (k != d and v[offset + k - 1] < v[offset + k + 1])


def myers_diff(old: LineSequence, new: LineSequence) -> EditScript:
    """
    Compute the shortest edit script transforming ``old`` into ``new``.

    Runs in O((N + M) * D) time and space where D is the edit distance.

    Args:
        old: Baseline line sequence
        new: Current line sequence

    Returns:
        Ordered tuple of edits; only MATCH edits when both are equal
    """
    n, m = len(old), len(new)
    max_d = n + m
    offset = max_d + 1

    # v[offset + k] is the furthest x reached on diagonal k
    v = [-1] * (2 * max_d + 3)
    v[offset + 1] = 0
    trace: List[List[int]] = []

    for d in range(max_d + 1):
        trace.append(list(v))

        for k in range(-d, d + 1, 2):
            if _takes_insertion(v, k, d, offset):
                x = v[offset + k + 1]
            else:
                x = v[offset + k - 1] + 1
            y = x - k

            while x < n and y < m and old.hashes[x] == new.hashes[y]:
                x += 1
                y += 1

            v[offset + k] = x

            if x >= n and y >= m:
                return _backtrack(old, new, trace, offset)

    # Unreachable: the corner is always reached with d <= n + m
    raise AssertionError("edit search exhausted without reaching the end")


def _backtrack(
    old: LineSequence, new: LineSequence, trace: List[List[int]], offset: int
) -> EditScript:
    x, y = len(old), len(new)
    edits: List[Edit] = []

    for d in range(len(trace) - 1, -1, -1):
        v = trace[d]
        k = x - y

        prev_k = k + 1 if _takes_insertion(v, k, d, offset) else k - 1
        prev_x = v[offset + prev_k]
        prev_y = prev_x - prev_k

        while x > prev_x and y > prev_y:
            edits.append(Edit(EditKind.MATCH, x, old.lines[x - 1]))
            x -= 1
            y -= 1

        if d > 0:
            if x == prev_x:
                edits.append(Edit(EditKind.INSERT, y, new.lines[y - 1]))
            else:
                edits.append(Edit(EditKind.DELETE, x, old.lines[x - 1]))

        x, y = prev_x, prev_y

    edits.reverse()
    return tuple(edits)


def diff_texts(old_text: str, new_text: str) -> EditScript:
    """
    Diff two texts line by line.

    Args:
        old_text: Baseline text
        new_text: Current text

    Returns:
        Edit script from ``old_text`` to ``new_text``
    """
    old_seq, new_seq = LineSequence.from_texts(old_text, new_text)
    return myers_diff(old_seq, new_seq)


def has_changes(script: EditScript) -> bool:
    """Whether the script contains any insertion or deletion."""
    return any(edit.kind is not EditKind.MATCH for edit in script)


def format_edit_script(script: EditScript, context_lines: Optional[int] = None) -> str:
    """
    Render an edit script, one edit per line.

    Args:
        script: Edit script to render
        context_lines: When set, keep only unchanged lines within this many
            edits of a change and collapse the rest into ``...``

    Returns:
        Rendered script
    """
    if context_lines is None:
        return "\n".join(str(edit) for edit in script)

    keep = set()
    for i, edit in enumerate(script):
        if edit.kind is not EditKind.MATCH:
            keep.update(range(i - context_lines, i + context_lines + 1))

    rendered: List[str] = []
    elided = False
    for i, edit in enumerate(script):
        if i in keep:
            rendered.append(str(edit))
            elided = False
        elif not elided:
            rendered.append(ELISION_MARKER)
            elided = True

    return "\n".join(rendered)
