"""
Delta pipeline: decode the response stream while writing earlier deltas out.

A producer task feeds network chunks to a StreamDecoder and pushes each delta
onto a bounded FIFO queue; a consumer task drains the queue into an output
sink, flushing after every write. The queue bound is the backpressure between
the two.
"""

import asyncio
import logging
import sys
import time
from typing import AsyncIterable, Callable, List, Optional, TextIO

import httpx

from copilot_chat.config import settings
from copilot_chat.core.error_handlers import ChatException, TransportError
from copilot_chat.core.protocols import OutputSink
from copilot_chat.core.services.logging_config import log_llm_response
from copilot_chat.core.stream import StreamDecoder
from copilot_chat.models.chat import Message

logger = logging.getLogger(__name__)

# Marks the end of the channel
_CLOSED = object()


class StdoutSink:
    """Writes deltas to a text stream, standard output by default."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout

    async def write(self, text: str) -> None:
        self.stream.write(text)

    async def flush(self) -> None:
        self.stream.flush()


class BufferSink:
    """Collects deltas in memory."""

    def __init__(self):
        self.chunks: List[str] = []
        self.flushes = 0

    async def write(self, text: str) -> None:
        self.chunks.append(text)

    async def flush(self) -> None:
        self.flushes += 1

    @property
    def text(self) -> str:
        return "".join(self.chunks)


class QueueSink:
    """Forwards deltas to an unbounded asyncio queue; ``None`` marks the end."""

    def __init__(self, queue: "asyncio.Queue[Optional[str]]"):
        self.queue = queue

    async def write(self, text: str) -> None:
        await self.queue.put(text)

    async def flush(self) -> None:
        return None

    def close(self) -> None:
        self.queue.put_nowait(None)


class DeltaPipeline:
    """Runs stream decoding and output writing concurrently."""

    def __init__(
        self,
        decoder_factory: Callable[[], StreamDecoder] = StreamDecoder,
        channel_capacity: Optional[int] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            decoder_factory: Builds a fresh decoder for every run
            channel_capacity: Queue bound between producer and consumer
        """
        self.decoder_factory = decoder_factory
        if channel_capacity is None:
            channel_capacity = settings.stream_channel_capacity
        if channel_capacity < 1:
            raise ValueError("channel_capacity must be at least 1")
        self.channel_capacity = channel_capacity

    async def run(self, stream: AsyncIterable[bytes], sink: OutputSink) -> Message:
        """
        Decode ``stream`` into ``sink`` and return the aggregated reply.

        Args:
            stream: Raw response body chunks
            sink: Output sink receiving every delta in stream order

        Returns:
            Assistant message with the concatenated deltas

        Raises:
            TransportError: If reading the stream fails
            ProtocolParseError: If an event cannot be parsed
            ProviderError: If the service streams an error
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.channel_capacity)
        producer = asyncio.create_task(self._produce(stream, queue))
        consumer = asyncio.create_task(self._consume(queue, sink))

        try:
            done, _ = await asyncio.wait(
                {producer, consumer}, return_when=asyncio.FIRST_EXCEPTION
            )
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    raise task.exception()

            await consumer
            message = await producer
        finally:
            for task in (producer, consumer):
                if not task.done():
                    task.cancel()
            await asyncio.gather(producer, consumer, return_exceptions=True)

        logger.info("Message collected")
        return message

    async def _produce(
        self, stream: AsyncIterable[bytes], queue: asyncio.Queue
    ) -> Message:
        decoder = self.decoder_factory()
        parts: List[str] = []
        start_time = time.time()

        logger.debug("Opening stream")
        try:
            async for chunk in stream:
                for delta in decoder.feed(chunk).deltas:
                    await queue.put(delta)
                    parts.append(delta)
                if decoder.terminated:
                    break
        except ChatException:
            raise
        except (httpx.HTTPError, OSError) as e:
            logger.error("Error reading stream: %s", e)
            raise TransportError(str(e)) from e
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        for delta in decoder.finish():
            await queue.put(delta)
            parts.append(delta)

        await queue.put(_CLOSED)

        content = "".join(parts)
        log_llm_response(
            response_length=len(content),
            delta_count=len(parts),
            duration_ms=int((time.time() - start_time) * 1000),
        )
        return Message.assistant(content)

    async def _consume(self, queue: asyncio.Queue, sink: OutputSink) -> None:
        while True:
            item = await queue.get()
            if item is _CLOSED:
                logger.debug("End of streaming")
                return
            await sink.write(item)
            await sink.flush()
