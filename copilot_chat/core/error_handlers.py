"""
Custom exception classes for copilot-chat.

Provides domain-specific exceptions with error codes and structured details.
"""

from typing import Optional

# Raw payloads are cut to this many characters before landing in an error
PAYLOAD_PREVIEW_CHARS = 200


class ChatException(Exception):
    """
    Base exception for copilot-chat.

    All custom exceptions inherit from this class and include:
    - Human-readable message
    - Machine-readable error code
    - Optional details dictionary for debugging
    """

    def __init__(self, message: str, error_code: str, details: dict = None):
        """
        Initialize chat exception.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code (e.g., "PROVIDER_ERROR")
            details: Optional dictionary with additional error context
        """
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class TransportError(ChatException):
    """Raised when the network stream cannot be opened or read."""

    def __init__(self, reason: str):
        """
        Initialize transport error.

        Args:
            reason: Underlying transport failure description
        """
        super().__init__(
            message=f"Transport failure: {reason}",
            error_code="TRANSPORT_ERROR",
            details={"reason": reason},
        )


class ProtocolParseError(ChatException):
    """Raised when a streamed payload matches neither expected shape."""

    def __init__(self, payload: str, reason: str):
        """
        Initialize protocol parse error.

        Args:
            payload: The raw event payload (truncated for the message)
            reason: Parser error message
        """
        preview = (
            payload[:PAYLOAD_PREVIEW_CHARS] + "..."
            if len(payload) > PAYLOAD_PREVIEW_CHARS
            else payload
        )

        super().__init__(
            message=f"Cannot parse stream payload ({reason}): {preview}",
            error_code="PROTOCOL_PARSE_ERROR",
            details={"payload": preview, "reason": reason},
        )


class ProviderError(ChatException):
    """Raised when the service answers with a structured error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        """
        Initialize provider error.

        Args:
            message: Error message supplied by the service, kept verbatim
            status_code: HTTP status when the error arrived as a response
        """
        details = {}
        if status_code is not None:
            details["status_code"] = status_code

        super().__init__(
            message=message,
            error_code="PROVIDER_ERROR",
            details=details,
        )
        self.status_code = status_code


class FileAccessError(ChatException):
    """Raised when a referenced file cannot be read."""

    def __init__(self, path: str, reason: str):
        """
        Initialize file access error.

        Args:
            path: The file that could not be read
            reason: Operating system error message
        """
        super().__init__(
            message=f"Cannot read file '{path}': {reason}",
            error_code="FILE_ACCESS_ERROR",
            details={"path": path, "reason": reason},
        )


class PersistenceError(ChatException):
    """Raised when the session cache cannot be read or written."""

    def __init__(self, path: str, reason: str):
        """
        Initialize persistence error.

        Args:
            path: The cache file involved
            reason: I/O or serialization error message
        """
        super().__init__(
            message=f"Failed to access chat cache '{path}': {reason}",
            error_code="PERSISTENCE_ERROR",
            details={"path": path, "reason": reason},
        )


class AuthenticationError(ChatException):
    """Raised when no usable Copilot credential is available."""

    def __init__(self, reason: str):
        super().__init__(
            message=f"Authentication failed: {reason}",
            error_code="AUTH_ERROR",
            details={"reason": reason},
        )


class RequestBuildError(ChatException):
    """Raised when a chat request cannot be assembled."""

    def __init__(self, reason: str):
        super().__init__(
            message=f"Failed to build chat request: {reason}",
            error_code="REQUEST_ERROR",
            details={"reason": reason},
        )
