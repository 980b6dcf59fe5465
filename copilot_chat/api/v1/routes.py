"""API routes for version 1.

The server drives a single chat. Turns are serialized: a prompt waits until
the previous reply has been fully streamed and saved.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send
from pydantic import ValidationError

from copilot_chat.api.v1.schemas import (
    ChatRequest,
    ClearResponse,
    ForgetFileResponse,
)
from copilot_chat.core.chat import Chat, MessageType
from copilot_chat.core.error_handlers import RequestBuildError
from copilot_chat.core.pipeline import QueueSink
from copilot_chat.core.session_store import SessionStore

router = APIRouter(prefix="/v1", tags=["chat"])
logger = logging.getLogger(__name__)


@dataclass
class ChatService:
    """The shared chat, its store and the lock serializing turns."""

    chat: Chat
    store: SessionStore
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


def get_chat_service(request: Request) -> ChatService:
    """Dependency returning the application's chat service."""
    return request.app.state.chat_service


class TurnStream:
    """
    Response body of one streamed turn.

    Owns the turn task and the held turn lock. ``aclose`` cancels the turn
    and releases the lock exactly once, whether or not the body was ever
    iterated.
    """

    def __init__(
        self,
        service: ChatService,
        first: str,
        queue: "asyncio.Queue[Optional[str]]",
        turn: asyncio.Task,
    ):
        self.service = service
        self.queue = queue
        self.turn = turn
        self._first: Optional[str] = first
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "TurnStream":
        return self

    async def __anext__(self) -> str:
        if self._closed:
            raise StopAsyncIteration
        try:
            if self._first is not None:
                item, self._first = self._first, None
            else:
                item = await self.queue.get()
            if item is not None:
                return item

            await self.turn
            self.service.store.save(self.service.chat.to_session())
        except BaseException:
            await self.aclose()
            raise

        await self.aclose()
        raise StopAsyncIteration

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if not self.turn.done():
                self.turn.cancel()
                await asyncio.gather(self.turn, return_exceptions=True)
        finally:
            self.service.lock.release()


class TurnResponse(StreamingResponse):
    """Plain-text streaming response that always closes its turn."""

    def __init__(self, body: TurnStream):
        super().__init__(body, media_type="text/plain")
        self.turn_stream = body

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        # Starlette does not close a body it stopped iterating on disconnect
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.turn_stream.aclose()


async def _start_turn(service: ChatService, body: ChatRequest) -> StreamingResponse:
    await service.lock.acquire()

    queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
    sink = QueueSink(queue)

    async def run_turn() -> None:
        try:
            await service.chat.send_message_with_stream(
                None,
                MessageType.code(body.prompt, body.files),
                sink,
                model=body.model,
            )
        finally:
            sink.close()

    turn = asyncio.create_task(run_turn())
    try:
        first = await queue.get()
        if first is None:
            # The turn ended without output: surface its error, if any
            await turn
            service.store.save(service.chat.to_session())
            service.lock.release()
            return StreamingResponse(iter(()), media_type="text/plain")
    except BaseException:
        if not turn.done():
            turn.cancel()
            await asyncio.gather(turn, return_exceptions=True)
        service.lock.release()
        raise

    return TurnResponse(TurnStream(service, first, queue, turn))


@router.post("/chat")
async def chat(
    body: ChatRequest, service: ChatService = Depends(get_chat_service)
) -> StreamingResponse:
    """
    Send a prompt and stream the reply as plain text.

    Errors raised before the first delta (unreadable files, rejected
    requests) are returned as JSON error responses.
    """
    return await _start_turn(service, body)


@router.post("/chat/raw")
async def chat_raw(
    request: Request, service: ChatService = Depends(get_chat_service)
) -> StreamingResponse:
    """Send a plain-text ``[file@]prompt`` body and stream the reply."""
    raw_input = (await request.body()).decode("utf-8", errors="replace")
    if not raw_input.strip():
        raise RequestBuildError("empty prompt")
    try:
        body = ChatRequest.from_raw(raw_input)
    except ValidationError as e:
        raise RequestBuildError(str(e)) from e
    return await _start_turn(service, body)


@router.delete("/chat", response_model=ClearResponse)
async def clear_chat(service: ChatService = Depends(get_chat_service)) -> ClearResponse:
    """Forget the history and file baselines, and delete the saved chat."""
    async with service.lock:
        service.chat.clear()
        cleared = service.store.remove()

    logger.info("Chat cleared", extra={"event": "chat_cleared"})
    return ClearResponse(cleared=cleared, messages=len(service.chat.messages))


@router.delete("/chat/files/{path:path}", response_model=ForgetFileResponse)
async def forget_file(
    path: str, service: ChatService = Depends(get_chat_service)
) -> ForgetFileResponse:
    """Drop one file baseline so its next reference resends the whole file."""
    async with service.lock:
        forgotten = service.chat.tracker.forget(path)
        if forgotten:
            service.store.save(service.chat.to_session())

    logger.info(
        "File forgotten",
        extra={"event": "file_forgotten", "file_path": path, "forgotten": forgotten},
    )
    return ForgetFileResponse(
        path=path, forgotten=forgotten, tracked_files=len(service.chat.tracker)
    )
