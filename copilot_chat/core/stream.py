"""
Incremental decoder for the chat completion event stream.

The service frames every event as ``data: <payload>\\n\\n``. Network chunks
split and merge events arbitrarily, so bytes are accumulated until a full
event is available; a trailing partial event stays buffered for the next feed.
The decoded deltas depend only on the total bytes fed, never on how they were
chunked.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ValidationError

from copilot_chat.config import settings
from copilot_chat.core.error_handlers import ProtocolParseError, ProviderError

logger = logging.getLogger(__name__)

EVENT_PREFIX = b"data: "
EVENT_SEPARATOR = b"\n\n"
DONE_SENTINEL = b"[DONE]"


class DeltaContent(BaseModel):
    """Partial text of the message carried by one event."""

    content: Optional[str] = None


class Choice(BaseModel):
    """One completion choice of a streamed chunk."""

    delta: Optional[DeltaContent] = None
    index: int = 0
    finish_reason: Optional[str] = None


class CompletionChunk(BaseModel):
    """Payload of a content event."""

    choices: List[Choice]


class ErrorDetail(BaseModel):
    message: str


class ErrorPayload(BaseModel):
    """Payload of a structured error event."""

    error: ErrorDetail


class DecoderState(str, Enum):
    """Lifecycle of a decoder."""

    OPEN = "open"
    TERMINATED = "terminated"
    FAILED = "failed"


@dataclass
class DecodeResult:
    """Deltas decoded by one feed and the number of buffered bytes consumed."""

    deltas: List[str] = field(default_factory=list)
    consumed: int = 0


class StreamDecoder:
    """Turns arbitrarily chunked stream bytes into ordered text deltas."""

    def __init__(self):
        self._buffer = bytearray()
        # Buffer offset below which no separator can start
        self._scan_from = 0
        self._state = DecoderState.OPEN

    @property
    def state(self) -> DecoderState:
        return self._state

    @property
    def terminated(self) -> bool:
        return self._state is DecoderState.TERMINATED

    @property
    def buffered(self) -> int:
        """Bytes received but not yet consumed."""
        return len(self._buffer)

    def feed(self, data: bytes) -> DecodeResult:
        """
        Append stream bytes and decode every complete event.

        Args:
            data: Next network chunk

        Returns:
            DecodeResult with the deltas in stream order and the byte count
            consumed from the buffer (0 when no event is complete yet)

        Raises:
            ProviderError: If an event carries a structured service error
            ProtocolParseError: If an event matches no expected shape, or the
                decoder already failed
        """
        if self._state is DecoderState.TERMINATED:
            return DecodeResult()
        if self._state is DecoderState.FAILED:
            raise ProtocolParseError("", "decoder already failed")

        self._buffer.extend(data)

        result = DecodeResult()
        start = 0
        while True:
            end = self._buffer.find(EVENT_SEPARATOR, max(start, self._scan_from))
            if end == -1:
                break

            event = bytes(self._buffer[start:end])
            start = end + len(EVENT_SEPARATOR)

            delta = self._decode_event(event)
            if delta:
                result.deltas.append(delta)
            if self._state is DecoderState.TERMINATED:
                break

        if start:
            del self._buffer[:start]
        result.consumed = start

        if self._state is DecoderState.TERMINATED:
            self._buffer.clear()
            self._scan_from = 0
        else:
            # A separator may straddle the old end of the buffer
            self._scan_from = max(len(self._buffer) - len(EVENT_SEPARATOR) + 1, 0)

        return result

    def finish(self) -> List[str]:
        """
        Decode a trailing event left without its final separator.

        Called once the stream is exhausted; whitespace-only leftovers are
        ignored.

        Returns:
            Deltas of the trailing event, if any
        """
        if self._state is not DecoderState.OPEN:
            return []

        event = bytes(self._buffer).strip()
        self._buffer.clear()
        self._scan_from = 0
        if not event:
            return []

        logger.debug("Decoding trailing event without separator")
        delta = self._decode_event(event)
        return [delta] if delta else []

    def _decode_event(self, event: bytes) -> Optional[str]:
        if not event.startswith(EVENT_PREFIX):
            if event.strip():
                logger.debug("Skipping event without data prefix: %r", event[:40])
            return None

        payload = event[len(EVENT_PREFIX) :]
        if payload.startswith(DONE_SENTINEL):
            logger.debug("DONE detected")
            self._state = DecoderState.TERMINATED
            return None

        if settings.log_sensitive_data:
            logger.debug("Stream payload: %s", payload[:500])

        try:
            chunk = CompletionChunk.model_validate_json(payload)
        except ValidationError as chunk_error:
            self._state = DecoderState.FAILED
            raise self._classify_failure(payload, chunk_error) from chunk_error

        for choice in chunk.choices:
            if choice.delta is not None and choice.delta.content:
                return choice.delta.content
        return None

    @staticmethod
    def _classify_failure(payload: bytes, chunk_error: ValidationError) -> Exception:
        try:
            error = ErrorPayload.model_validate_json(payload)
        except ValidationError:
            logger.error("Error in stream, cannot capture the error message")
            return ProtocolParseError(
                payload.decode("utf-8", errors="replace"),
                f"{chunk_error.error_count()} validation error(s), "
                f"first: {chunk_error.errors()[0]['msg']}",
            )

        logger.error("Error in stream: %s", error.error.message)
        return ProviderError(error.error.message)
