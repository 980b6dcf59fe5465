"""Models package for copilot-chat."""

from copilot_chat.models.chat import ChatSession, Message, Role, TrackedFile

__all__ = [
    "Role",
    "Message",
    "TrackedFile",
    "ChatSession",
]
