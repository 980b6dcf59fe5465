"""Protocol definitions for core components.

This module defines one interface per capability (chat transport, file
reading, output) so the pipeline, tracker and chat can be exercised with
substitutable fakes.
"""

from datetime import datetime
from typing import AsyncIterator, List, Optional, Protocol, Tuple

from copilot_chat.models.chat import Message


class ProviderProtocol(Protocol):
    """Protocol for chat completion providers."""

    def request(
        self, messages: List[Message], model: Optional[str] = None
    ) -> AsyncIterator[bytes]:
        """
        Open a streamed chat completion.

        Args:
            messages: Full ordered message list of the request
            model: Model name; provider default when None

        Returns:
            Async iterator over raw response body chunks
        """
        ...

    async def list_models(self) -> List[str]:
        """Return the identifiers of the available models."""
        ...

    async def close(self) -> None:
        """Close the client and cleanup resources."""
        ...


class FileReaderProtocol(Protocol):
    """Protocol for reading referenced files."""

    async def read(self, path: str) -> Tuple[str, datetime]:
        """
        Read a file.

        Args:
            path: File path

        Returns:
            Tuple of (content, modification time)
        """
        ...

    async def modified_time(self, path: str) -> datetime:
        """Return the file's current modification time."""
        ...


class OutputSink(Protocol):
    """Protocol for the destination of streamed text."""

    async def write(self, text: str) -> None:
        """Write a text fragment."""
        ...

    async def flush(self) -> None:
        """Make everything written so far visible."""
        ...
