"""
File reference helpers.

Parses ``path:start[-end]`` arguments, reads files from the local filesystem
and renders the text blocks that reference files in chat requests.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from copilot_chat.core.error_handlers import FileAccessError
from copilot_chat.core.utils.diff import split_lines

LOAD_ONCE_TAG = "[load-once]"


@dataclass(frozen=True)
class LineRange:
    """Selected line range of a file; ``end == 0`` means to end of file."""

    start: int = 1
    end: int = 0

    @classmethod
    def from_file_arg(cls, arg: str) -> Optional["LineRange"]:
        """
        Extract the range from a ``path:start[-end]`` argument.

        Unparseable bounds fall back to ``start=1`` and ``end=0``.

        Args:
            arg: File argument as given by the user

        Returns:
            LineRange, or None when the argument carries no range
        """
        _, sep, range_str = arg.partition(":")
        if not sep:
            return None

        start_str, _, end_str = range_str.partition("-")
        return cls(start=_parse_bound(start_str, 1), end=_parse_bound(end_str, 0))

    def __str__(self) -> str:
        if self.end == 0:
            return f":{self.start}"
        return f":{self.start}-{self.end}"


def _parse_bound(value: str, default: int) -> int:
    value = value.strip()
    if value.isdigit():
        return int(value)
    return default


def split_file_arg(arg: str) -> Tuple[str, Optional[LineRange]]:
    """
    Split a file argument into its path and optional range.

    Example:
        >>> split_file_arg("src/app.py:10-20")
        ('src/app.py', LineRange(start=10, end=20))
    """
    path, _, _ = arg.partition(":")
    return path, LineRange.from_file_arg(arg)


def parse_file_args(values: Optional[List[str]]) -> List[str]:
    """Flatten comma separated file arguments, dropping empty entries."""
    files: List[str] = []
    for value in values or []:
        files.extend(part.strip() for part in value.split(",") if part.strip())
    return files


def number_lines(content: str) -> str:
    """Prefix every line with its 1-based number; every line ends with a newline."""
    return "".join(
        f"{number}: {line}\n" for number, line in enumerate(split_lines(content), start=1)
    )


def format_load_once(path: str, content: str) -> str:
    """Full-content payload sent the first time a file is referenced."""
    return f"File: {path} {LOAD_ONCE_TAG}\n\n{number_lines(content)}"


def format_reference(path: str, line_range: Optional[LineRange] = None) -> str:
    """Lightweight marker pointing the model at an already shared file."""
    if line_range is None:
        return f"File: {path}"
    return f"File: {path}{line_range}"


def _mtime(stat_result) -> datetime:
    return datetime.fromtimestamp(stat_result.st_mtime, tz=timezone.utc)


class LocalFileReader:
    """Reads files from the local filesystem off the event loop."""

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    async def read(self, path: str) -> Tuple[str, datetime]:
        """
        Read a file's content and modification time.

        Args:
            path: File path

        Returns:
            Tuple of (content, modification time)

        Raises:
            FileAccessError: If the file cannot be read or decoded
        """
        return await asyncio.to_thread(self._read_sync, path)

    async def modified_time(self, path: str) -> datetime:
        """
        Return the file's modification time.

        Raises:
            FileAccessError: If the file cannot be stat'ed
        """
        try:
            stat_result = await asyncio.to_thread(Path(path).stat)
        except OSError as e:
            raise FileAccessError(path, str(e)) from e
        return _mtime(stat_result)

    def _read_sync(self, path: str) -> Tuple[str, datetime]:
        file_path = Path(path)
        try:
            # stat before reading: a write in between surfaces as a newer mtime next time
            stat_result = file_path.stat()
            content = file_path.read_text(encoding=self.encoding)
        except (OSError, UnicodeDecodeError) as e:
            raise FileAccessError(path, str(e)) from e
        return content, _mtime(stat_result)
