"""
Pydantic models for chat messages and the persisted session.

Messages are immutable once built. Tracked files keep their baseline content
in memory only: the persisted form carries the path and modification time.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """Sender of a chat message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """A single chat message."""

    role: Role = Field(..., description="Message author")
    content: str = Field(..., description="Message text")

    model_config = ConfigDict(frozen=True)

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role=Role.ASSISTANT, content=content)

    def to_request(self) -> dict:
        """Wire form used in chat completion requests."""
        return {"role": self.role.value, "content": self.content}


class TrackedFile(BaseModel):
    """Baseline snapshot of a file already shared with the service."""

    path: str = Field(..., min_length=1, description="File path as referenced")
    baseline_content: Optional[str] = Field(
        default=None,
        exclude=True,
        description="Content last sent; never persisted",
    )
    baseline_modified_at: datetime = Field(
        ..., description="Modification time of the content last sent"
    )

    @property
    def has_content(self) -> bool:
        """Whether the baseline content is held in memory."""
        return self.baseline_content is not None


class ChatSession(BaseModel):
    """Persisted chat state for one working directory."""

    messages: List[Message] = Field(default_factory=list)
    tracked_files: List[TrackedFile] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "messages": [
                    {"role": "user", "content": "Explain this function"},
                    {"role": "assistant", "content": "It parses the header."},
                ],
                "tracked_files": [
                    {
                        "path": "src/parser.py",
                        "baseline_modified_at": "2025-01-01T10:00:00+00:00",
                    }
                ],
            }
        }
    )
