"""Shared fakes for the unit tests."""

import json
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Dict, List, Optional, Tuple

import pytest

from copilot_chat.core.error_handlers import FileAccessError
from copilot_chat.models.chat import Message

EPOCH = datetime(2025, 1, 1, tzinfo=timezone.utc)


def sse_event(content: str) -> bytes:
    """Encode one content delta as a stream event."""
    payload = {"choices": [{"index": 0, "delta": {"content": content}}]}
    return b"data: " + json.dumps(payload).encode("utf-8") + b"\n\n"


def sse_body(*contents: str, done: bool = True) -> bytes:
    body = b"".join(sse_event(content) for content in contents)
    if done:
        body += b"data: [DONE]\n\n"
    return body


class FakeFileReader:
    """In-memory files with a manual clock for modification times."""

    def __init__(self):
        self.files: Dict[str, Tuple[str, datetime]] = {}
        self.reads: List[str] = []
        self.failing: set = set()
        self._clock = EPOCH

    def write(self, path: str, content: str, touch: bool = True) -> None:
        if touch or path not in self.files:
            self._clock += timedelta(seconds=1)
            self.files[path] = (content, self._clock)
        else:
            self.files[path] = (content, self.files[path][1])

    async def read(self, path: str) -> Tuple[str, datetime]:
        self.reads.append(path)
        if path in self.failing or path not in self.files:
            raise FileAccessError(path, "No such file or directory")
        return self.files[path]

    async def modified_time(self, path: str) -> datetime:
        if path in self.failing or path not in self.files:
            raise FileAccessError(path, "No such file or directory")
        return self.files[path][1]


class FakeProvider:
    """Provider replaying canned response bodies and recording requests."""

    def __init__(self, bodies: Optional[List[List[bytes]]] = None):
        self.bodies = list(bodies or [])
        self.requests: List[List[Message]] = []
        self.models: List[Optional[str]] = []
        self.closed = False

    def queue(self, *chunks: bytes) -> None:
        self.bodies.append(list(chunks))

    async def request(
        self, messages: List[Message], model: Optional[str] = None
    ) -> AsyncIterator[bytes]:
        self.requests.append(list(messages))
        self.models.append(model)
        for chunk in self.bodies.pop(0):
            yield chunk

    async def list_models(self) -> List[str]:
        return ["gpt-4o", "claude-sonnet-4"]

    async def close(self) -> None:
        self.closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


@pytest.fixture
def file_reader():
    """Provide an in-memory file reader."""
    return FakeFileReader()


@pytest.fixture
def provider():
    """Provide a provider with no queued replies."""
    return FakeProvider()


@pytest.fixture
def make_body():
    """Provide the stream body builder."""
    return sse_body


@pytest.fixture
def make_event():
    """Provide the single event encoder."""
    return sse_event
