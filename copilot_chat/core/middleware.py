"""
FastAPI middleware and global exception handlers.

Provides:
- Request ID tracking middleware
- Exception handlers mapping chat errors to structured JSON responses
"""

import logging
import time
import uuid
from typing import Callable, Dict, Type

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from copilot_chat.core.error_handlers import (
    AuthenticationError,
    ChatException,
    FileAccessError,
    PersistenceError,
    ProtocolParseError,
    ProviderError,
    RequestBuildError,
    TransportError,
)

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

ERROR_STATUS: Dict[Type[ChatException], int] = {
    FileAccessError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    RequestBuildError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    AuthenticationError: status.HTTP_401_UNAUTHORIZED,
    ProviderError: status.HTTP_502_BAD_GATEWAY,
    ProtocolParseError: status.HTTP_502_BAD_GATEWAY,
    TransportError: status.HTTP_504_GATEWAY_TIMEOUT,
    PersistenceError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(exc: ChatException) -> int:
    """HTTP status used for a chat exception."""
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Tag every request with an ID and log its start and completion.

    A client supplied ``X-Request-ID`` header is reused so callers can match a
    streamed reply with their own logs; otherwise a UUID4 is generated. The ID
    is stored on ``request.state.request_id`` and echoed in the response.
    """

    async def dispatch(self, request: Request, call_next: Callable):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        route = {"method": request.method, "path": request.url.path}

        logger.info(
            "Request started",
            extra={"request_id": request_id, "event": "request_started", "details": route},
        )

        started = time.monotonic()
        response = await call_next(request)

        logger.info(
            "Request completed",
            extra={
                "request_id": request_id,
                "event": "request_completed",
                "duration_ms": int((time.monotonic() - started) * 1000),
                "details": {**route, "status_code": response.status_code},
            },
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all custom exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(ChatException)
    async def chat_exception_handler(
        request: Request, exc: ChatException
    ) -> JSONResponse:
        """Handle ChatException subclasses with their mapped status."""
        request_id = getattr(request.state, "request_id", "unknown")
        status_code = status_for(exc)

        log = logger.warning if status_code < 500 else logger.error
        log(
            "Chat error",
            extra={
                "request_id": request_id,
                "error_code": exc.error_code,
                "details": exc.details,
            },
        )

        return JSONResponse(
            status_code=status_code,
            content={
                "error": exc.message,
                "error_code": exc.error_code,
                "details": exc.details,
                "request_id": request_id,
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle all unhandled exceptions with 500 response."""
        request_id = getattr(request.state, "request_id", "unknown")

        logger.error(
            "Unhandled exception",
            extra={"request_id": request_id, "error_type": type(exc).__name__},
            exc_info=True,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "error_code": "INTERNAL_ERROR",
                "request_id": request_id,
            },
        )
