from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from polaris import __version__
from polaris.agent import AgentRegistry, create_default_registry
from polaris.api.dependencies import ChatSession
from polaris.api.routers import agents, chat
from polaris.config import AppConfig, load_config
from polaris.exceptions import (
    InvalidConfiguration,
    ProviderUnavailable,
    UnknownAgentType,
    UnknownProvider,
)
from polaris.logger import configure_logging, logger
from polaris.providers import ModelManager


def _error_handler(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    return handler


def create_app(
    config: Optional[AppConfig] = None,
    model_manager: Optional[ModelManager] = None,
    agent_registry: Optional[AgentRegistry] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    One ModelManager and one AgentRegistry are created per application and
    closed when the application shuts down.
    """
    config = config or load_config()
    configure_logging(config.logging.level, config.logging.format, config.logging.file_path)

    manager = model_manager or ModelManager.from_config(config)
    registry = agent_registry or create_default_registry(config.default_agent)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Polaris API starting up")
        yield
        logger.info("Polaris API shutting down")
        await registry.close()
        await manager.close()

    app = FastAPI(
        title="Polaris API",
        description="Chat API over the Polaris agent pipeline",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.model_manager = manager
    app.state.agent_registry = registry
    app.state.chat_session = ChatSession()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(UnknownProvider, _error_handler(status.HTTP_404_NOT_FOUND))
    app.add_exception_handler(UnknownAgentType, _error_handler(status.HTTP_404_NOT_FOUND))
    app.add_exception_handler(InvalidConfiguration, _error_handler(status.HTTP_400_BAD_REQUEST))
    app.add_exception_handler(ProviderUnavailable, _error_handler(status.HTTP_503_SERVICE_UNAVAILABLE))

    app.include_router(chat.router, prefix="/api/chat", tags=["chat"])
    app.include_router(agents.router, prefix="/api/agents", tags=["agents"])

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "ok"}

    return app
