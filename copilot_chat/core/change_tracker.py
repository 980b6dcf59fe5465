"""
Change tracking for files referenced in chat requests.

The tracker keeps one baseline per path: the content and modification time
last sent to the service. A first reference sends the whole file with line
numbers, later references send only a line diff against the baseline, and an
unmodified file costs a one-line marker.
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from copilot_chat.core.error_handlers import FileAccessError
from copilot_chat.core.protocols import FileReaderProtocol
from copilot_chat.core.utils.diff import (
    EditScript,
    diff_texts,
    format_edit_script,
    has_changes,
)
from copilot_chat.core.utils.files import (
    LineRange,
    format_load_once,
    format_reference,
    split_file_arg,
)
from copilot_chat.models.chat import Message, TrackedFile

logger = logging.getLogger(__name__)


def format_diff_block(
    path: str, script: EditScript, context_lines: Optional[int] = None
) -> str:
    """Render the update block sent when a tracked file changed."""
    body = format_edit_script(script, context_lines=context_lines)
    return f"Here are the updates of the file {path}:\n\n{body}"


class ChangeTracker:
    """Decides, per referenced file, between full content, a diff, or nothing."""

    def __init__(
        self, reader: FileReaderProtocol, context_lines: Optional[int] = None
    ):
        """
        Initialize the tracker.

        Args:
            reader: File reading capability
            context_lines: Unchanged lines kept around each change in diff
                blocks; None keeps all of them
        """
        self.reader = reader
        self.context_lines = context_lines
        self._files: Dict[str, TrackedFile] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def __contains__(self, path: str) -> bool:
        return path in self._files

    def __len__(self) -> int:
        return len(self._files)

    @property
    def tracked_files(self) -> List[TrackedFile]:
        """Tracked baselines ordered by path."""
        return [self._files[path] for path in sorted(self._files)]

    def get(self, path: str) -> Optional[TrackedFile]:
        return self._files.get(path)

    def snapshot(self) -> Dict[str, TrackedFile]:
        """Capture the current baselines.

        Entries are replaced on update, never mutated, so a shallow copy is
        a consistent snapshot.
        """
        return dict(self._files)

    def restore(self, snapshot: Dict[str, TrackedFile]) -> None:
        """Reset baselines to a previous snapshot."""
        self._files = dict(snapshot)

    def load(self, tracked_files: Iterable[TrackedFile]) -> None:
        """Replace all baselines, e.g. with the ones of a saved session."""
        self._files = {tracked.path: tracked for tracked in tracked_files}

    def forget(self, path: str) -> bool:
        """Drop one baseline; the next reference sends the full file again."""
        return self._files.pop(path, None) is not None

    def clear(self) -> None:
        self._files.clear()

    async def reference(self, file_arg: str) -> List[Message]:
        """
        Produce the messages that put a file into the request context.

        Args:
            file_arg: ``path[:start[-end]]`` file argument

        Returns:
            User messages to append to the request, in order

        Raises:
            FileAccessError: If the file cannot be read; the baseline is
                left unchanged
        """
        path, line_range = split_file_arg(file_arg)
        if not path:
            raise FileAccessError(file_arg, "empty file path")

        async with self._lock_for(path):
            tracked = self._files.get(path)
            if tracked is None:
                logger.info(
                    "File not tracked, sending full content",
                    extra={"event": "file_load_once", "file_path": path},
                )
                return await self._load_once(path, line_range)

            return await self._refresh(tracked, line_range)

    async def reference_all(self, file_args: Iterable[str]) -> List[Message]:
        """Reference several files in order and concatenate their messages."""
        messages: List[Message] = []
        for file_arg in file_args:
            logger.debug("Processing file %s", file_arg)
            messages.extend(await self.reference(file_arg))
        return messages

    def _lock_for(self, path: str) -> asyncio.Lock:
        lock = self._locks.get(path)
        if lock is None:
            lock = self._locks[path] = asyncio.Lock()
        return lock

    async def _load_once(
        self, path: str, line_range: Optional[LineRange]
    ) -> List[Message]:
        content, modified_at = await self.reader.read(path)

        self._files[path] = TrackedFile(
            path=path,
            baseline_content=content,
            baseline_modified_at=modified_at,
        )

        return [
            Message.user(format_load_once(path, content)),
            Message.user(format_reference(path, line_range)),
        ]

    async def _refresh(
        self, tracked: TrackedFile, line_range: Optional[LineRange]
    ) -> List[Message]:
        path = tracked.path
        marker = Message.user(format_reference(path, line_range))

        current_modified_at = await self.reader.modified_time(path)
        if current_modified_at <= tracked.baseline_modified_at:
            logger.debug("No differences found for %s, skipping the update", path)
            return [marker]

        content, modified_at = await self.reader.read(path)

        if not tracked.has_content:
            # Restored from a saved session: there is nothing to diff against
            logger.info(
                "Tracked file has no baseline content, sending full content",
                extra={"event": "file_reload", "file_path": path},
            )
            self._replace_baseline(tracked, content, modified_at)
            return [Message.user(format_load_once(path, content)), marker]

        script = diff_texts(tracked.baseline_content, content)
        messages = [marker]
        if has_changes(script):
            logger.info(
                "Differences found, sending update",
                extra={"event": "file_diff", "file_path": path},
            )
            messages.insert(
                0, Message.user(format_diff_block(path, script, self.context_lines))
            )
        else:
            logger.debug("File %s rewritten without changes", path)

        self._replace_baseline(tracked, content, modified_at)
        return messages

    def _replace_baseline(
        self, tracked: TrackedFile, content: str, modified_at: datetime
    ) -> None:
        self._files[tracked.path] = tracked.model_copy(
            update={"baseline_content": content, "baseline_modified_at": modified_at}
        )
