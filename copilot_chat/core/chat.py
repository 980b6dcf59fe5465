"""
Chat orchestration.

A turn builds the request from the history, the user's message and the
tracked-file context, streams the reply through the delta pipeline and only
then commits the new messages. A failed turn leaves the history and the file
baselines exactly as they were.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from copilot_chat.config import settings
from copilot_chat.core import prompts
from copilot_chat.core.change_tracker import ChangeTracker
from copilot_chat.core.pipeline import DeltaPipeline
from copilot_chat.core.protocols import FileReaderProtocol, OutputSink, ProviderProtocol
from copilot_chat.core.services.logging_config import log_llm_error, log_llm_request
from copilot_chat.core.utils.files import LocalFileReader
from copilot_chat.models.chat import ChatSession, Message

logger = logging.getLogger(__name__)


class MessageKind(str, Enum):
    """Kind of conversation, selecting the system prompt."""

    CODE = "code"
    COMMIT = "commit"
    GIT = "git"


KIND_PROMPTS = {
    MessageKind.CODE: prompts.CODE,
    MessageKind.COMMIT: prompts.COMMIT,
    MessageKind.GIT: prompts.GIT,
}


@dataclass
class MessageType:
    """What the user asks for: the kind, an optional prompt and files."""

    kind: MessageKind = MessageKind.CODE
    user_prompt: Optional[str] = None
    files: List[str] = field(default_factory=list)

    @classmethod
    def code(
        cls, user_prompt: Optional[str] = None, files: Optional[List[str]] = None
    ) -> "MessageType":
        return cls(MessageKind.CODE, user_prompt, list(files or []))

    @classmethod
    def commit(cls, user_prompt: Optional[str] = None) -> "MessageType":
        return cls(MessageKind.COMMIT, user_prompt)

    @classmethod
    def git(cls, user_prompt: Optional[str] = None) -> "MessageType":
        return cls(MessageKind.GIT, user_prompt)

    @property
    def prompt(self) -> str:
        return KIND_PROMPTS[self.kind]

    def resolve_user_prompt(self) -> Optional[Message]:
        if not self.user_prompt:
            return None
        return Message.user(self.user_prompt)


class RequestBuilder:
    """Assembles the message list of one request.

    The builder owns its list: it starts from a copy of the history and hands
    a new list back from ``build``.
    """

    def __init__(self, history: Iterable[Message] = ()):
        self._messages: List[Message] = list(history)

    def is_empty(self) -> bool:
        return not self._messages

    def with_message(self, message: Message) -> "RequestBuilder":
        self._messages.append(message)
        return self

    def with_messages(self, messages: Iterable[Message]) -> "RequestBuilder":
        self._messages.extend(messages)
        return self

    def build(self) -> List[Message]:
        return list(self._messages)


class Chat:
    """A conversation with its history and tracked files."""

    def __init__(
        self,
        provider: ProviderProtocol,
        tracker: Optional[ChangeTracker] = None,
        messages: Optional[Iterable[Message]] = None,
        pipeline: Optional[DeltaPipeline] = None,
    ):
        self.provider = provider
        if tracker is None:
            tracker = ChangeTracker(
                LocalFileReader(), context_lines=settings.diff_context_lines
            )
        self.tracker = tracker
        self.pipeline = pipeline if pipeline is not None else DeltaPipeline()
        self._messages: List[Message] = list(messages or [])

    @classmethod
    def from_session(
        cls,
        session: ChatSession,
        provider: ProviderProtocol,
        reader: Optional[FileReaderProtocol] = None,
    ) -> "Chat":
        """Rebuild a chat from its persisted form."""
        if reader is None:
            reader = LocalFileReader()
        tracker = ChangeTracker(reader, context_lines=settings.diff_context_lines)
        tracker.load(session.tracked_files)
        return cls(provider, tracker=tracker, messages=session.messages)

    def to_session(self) -> ChatSession:
        return ChatSession(
            messages=list(self._messages), tracked_files=self.tracker.tracked_files
        )

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    def add_message(self, message: Message) -> None:
        self._messages.append(message)

    def clear(self) -> None:
        """Forget the history and every file baseline."""
        self._messages = []
        self.tracker.clear()

    async def build_request(
        self, message: Optional[Message], message_type: MessageType
    ) -> List[Message]:
        """
        Build the full message list for the next request.

        Args:
            message: Extra user message, e.g. piped input
            message_type: Kind, prompt and files of the turn

        Returns:
            History followed by the messages of this turn

        Raises:
            FileAccessError: If a referenced file cannot be read
        """
        builder = RequestBuilder(self._messages)
        if builder.is_empty():
            builder.with_message(Message.system(prompts.GENERAL)).with_message(
                Message.system(message_type.prompt)
            )

        if message is not None:
            builder.with_message(message)

        user_message = message_type.resolve_user_prompt()
        if user_message is not None:
            builder.with_message(user_message)

        if message_type.kind is MessageKind.CODE and message_type.files:
            builder.with_messages(await self.tracker.reference_all(message_type.files))

        return builder.build()

    async def send_message_with_stream(
        self,
        message: Optional[Message],
        message_type: MessageType,
        sink: OutputSink,
        model: Optional[str] = None,
    ) -> Message:
        """
        Send one turn and stream the reply into ``sink``.

        Args:
            message: Extra user message, e.g. piped input
            message_type: Kind, prompt and files of the turn
            sink: Destination of the streamed text
            model: Model name; provider default when None

        Returns:
            The assistant reply, already appended to the history

        Raises:
            ChatException: Any file, transport, protocol or provider failure;
                history and baselines are left as before the call
        """
        baselines = self.tracker.snapshot()
        try:
            request = await self.build_request(message, message_type)

            log_llm_request(
                model=model or settings.llm_model,
                message_count=len(request),
                prompt_length=sum(len(m.content) for m in request),
            )

            logger.info("Collecting message")
            reply = await self.pipeline.run(self.provider.request(request, model), sink)
        except BaseException as e:
            self.tracker.restore(baselines)
            if isinstance(e, Exception):
                log_llm_error(e, retry_count=0)
            raise

        self._messages = request + [reply]
        return reply
