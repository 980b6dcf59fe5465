"""Request and response models for the chat HTTP API."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """One prompt, optionally with files to put into context."""

    prompt: str = Field(..., min_length=1, description="User prompt")
    files: List[str] = Field(
        default_factory=list,
        description="File arguments, each `path[:start[-end]]`",
    )
    model: Optional[str] = Field(None, description="Model override")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "prompt": "Why does this loop never end?",
                "files": ["src/worker.py:40-60"],
            }
        }
    )

    @classmethod
    def from_raw(cls, raw_input: str) -> "ChatRequest":
        """
        Parse the plain-text form ``[file@]prompt``.

        Example:
            >>> ChatRequest.from_raw("src/app.py@explain this").files
            ['src/app.py']
        """
        file_arg, sep, prompt = raw_input.partition("@")
        if not sep:
            return cls(prompt=raw_input.strip())
        files = [file_arg.strip()] if file_arg.strip() else []
        return cls(prompt=prompt.strip(), files=files)


class ClearResponse(BaseModel):
    """Result of clearing the chat."""

    cleared: bool = Field(..., description="Whether a saved chat was deleted")
    messages: int = Field(..., description="Messages in the chat after clearing")


class ForgetFileResponse(BaseModel):
    """Result of dropping one file baseline."""

    path: str = Field(..., description="File path as it was referenced")
    forgotten: bool = Field(..., description="Whether the file was tracked")
    tracked_files: int = Field(..., description="Files still tracked")
