"""Structured logging configuration for copilot-chat."""

import json
import logging
import sys

from copilot_chat.config import settings

# Extra fields copied into JSON log entries when present on the record
STRUCTURED_FIELDS = (
    "event",
    "request_id",
    "file_path",
    "model",
    "message_count",
    "delta_count",
    "response_length",
    "duration_ms",
    "error_type",
    "error_code",
    "retry_count",
    "details",
)


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in STRUCTURED_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        # Add exception info if present
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """Custom text formatter for development."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as text."""
        request_id = getattr(record, "request_id", "")
        if request_id:
            record.request_id_str = f"[{request_id}] "
        else:
            record.request_id_str = ""

        return super().format(record)


def setup_logging() -> None:
    """Set up logging configuration.

    Logs go to stderr: stdout carries the streamed completion text.
    """

    json_formatter = JSONFormatter()
    text_formatter = TextFormatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(request_id_str)s%(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(getattr(logging, settings.log_level.upper()))

    if settings.log_format == "json":
        console_handler.setFormatter(json_formatter)
    else:
        console_handler.setFormatter(text_formatter)

    # Configure root logger
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        handlers=[console_handler],
        force=True,
    )

    # Configure specific loggers
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def log_llm_request(model: str, message_count: int, prompt_length: int) -> None:
    """Log LLM API request details."""
    logger = logging.getLogger("copilot_chat.llm")
    logger.info(
        "LLM request sent",
        extra={
            "event": "llm_request",
            "model": model,
            "message_count": message_count,
            "details": {"prompt_length": prompt_length},
        },
    )


def log_llm_response(response_length: int, delta_count: int, duration_ms: int) -> None:
    """Log completion of a streamed LLM response."""
    logger = logging.getLogger("copilot_chat.llm")
    logger.info(
        "LLM response received",
        extra={
            "event": "llm_response",
            "response_length": response_length,
            "delta_count": delta_count,
            "duration_ms": duration_ms,
        },
    )


def log_llm_error(error: Exception, retry_count: int) -> None:
    """Log LLM API error details."""
    logger = logging.getLogger("copilot_chat.llm")
    logger.error(
        "LLM request failed",
        extra={
            "event": "llm_error",
            "error_type": type(error).__name__,
            "error_code": getattr(error, "error_code", None),
            "retry_count": retry_count,
        },
    )
