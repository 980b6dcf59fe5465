"""Configuration management for copilot-chat."""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = Field(default="copilot-chat", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")

    # HTTP front-end
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=4000, description="Server port")

    # Copilot authentication
    copilot_oauth_token: Optional[str] = Field(
        default=None,
        validation_alias="COPILOT_OAUTH_TOKEN",
        description="GitHub OAuth token; read from the Copilot apps.json when unset",
    )
    copilot_apps_file: Path = Field(
        default=Path.home() / ".config" / "github-copilot" / "apps.json",
        description="Location of the Copilot editor credentials file",
    )
    copilot_token_url: str = Field(
        default="https://api.github.com/copilot_internal/v2/token",
        description="Endpoint exchanging the OAuth token for a session token",
    )

    # LLM Configuration
    llm_base_url: str = Field(
        default="https://api.githubcopilot.com",
        validation_alias="LLM_BASE_URL",
        description="Chat completion API base URL (from LLM_BASE_URL env var)",
    )
    llm_model: str = Field(default="gpt-4o", description="Default model name")
    llm_temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    llm_max_tokens: int = Field(default=4096, ge=1)
    llm_timeout: float = Field(
        default=120.0,
        validation_alias="LLM_TIMEOUT",
        description="LLM API timeout in seconds",
    )
    llm_max_retries: int = Field(default=3, description="Maximum LLM API retries")

    # Streaming
    stream_channel_capacity: int = Field(
        default=32,
        ge=1,
        le=1024,
        description="Bounded channel size between stream decoding and output",
    )

    # File tracking
    diff_context_lines: Optional[int] = Field(
        default=None,
        ge=0,
        description=(
            "Unchanged lines kept around each change in diff payloads; "
            "None sends every unchanged line"
        ),
    )

    # Session persistence
    cache_dir: Path = Field(
        default=Path.home() / ".cache" / "copilot-chat",
        validation_alias="COPILOT_CHAT_CACHE_DIR",
        description="Directory holding one saved chat per working directory",
    )

    # Logging Configuration
    log_level: str = Field(default="WARNING", description="Logging level")
    log_format: str = Field(default="text", description="Log format (json or text)")
    log_sensitive_data: bool = Field(
        default=False,
        validation_alias="LOG_SENSITIVE_DATA",
        description="Whether to log full request messages and stream payloads",
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "populate_by_name": True,
    }


# Global settings instance
# NOTE: configuration is treated as immutable after initialization.
settings = Settings()


def get_settings() -> Settings:
    """Get the global settings instance.

    Returns:
        Settings: The global settings instance
    """
    return settings
