"""FastAPI application serving the chat over HTTP."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI

from copilot_chat.api.v1.routes import ChatService
from copilot_chat.api.v1.routes import router as api_router
from copilot_chat.config import settings
from copilot_chat.core.chat import Chat
from copilot_chat.core.llm.llm_client import create_llm_client
from copilot_chat.core.middleware import RequestIDMiddleware, register_exception_handlers
from copilot_chat.core.session_store import SessionStore

logger = logging.getLogger(__name__)


def _default_chat_service() -> ChatService:
    store = SessionStore()
    provider = create_llm_client()
    session = store.load()
    if session is not None:
        chat = Chat.from_session(session, provider)
    else:
        chat = Chat(provider)
    return ChatService(chat=chat, store=store)


def create_app(chat_service: Optional[ChatService] = None) -> FastAPI:
    """
    Build the application.

    Args:
        chat_service: Chat to serve; built from settings and the saved
            session of the working directory when None
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info(f"Starting {settings.app_name} v{settings.app_version}")
        service = chat_service
        if service is None:
            service = _default_chat_service()
        app.state.chat_service = service

        yield

        logger.info(f"Shutting down {settings.app_name}")
        try:
            service.store.save(service.chat.to_session())
        finally:
            await service.chat.provider.close()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Streaming Copilot chat with incremental file context",
        lifespan=lifespan,
    )

    register_exception_handlers(app)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    async def health_check() -> dict[str, Any]:
        """Health check with the size of the served chat."""
        service: ChatService = app.state.chat_service
        return {
            "status": "healthy",
            "version": settings.app_version,
            "messages": len(service.chat.messages),
            "tracked_files": len(service.chat.tracker),
        }

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "description": "Streaming Copilot chat with incremental file context",
        }

    app.include_router(api_router)
    return app
