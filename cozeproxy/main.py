"""Main FastAPI application for the Coze OpenAI-compatible proxy."""

import logging
import socket
from typing import Any, Mapping, Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.errors import register_error_handlers
from .api.routes import (
    chat_completions,
    clear_conversation,
    clear_jwt,
    get_conversation_history,
    get_jwt,
    get_workflow_session,
    health,
    list_conversations,
    list_models,
    list_workflow_sessions,
    refresh_jwt,
    resume_workflow,
)
from .config_loader import load_config
from .core.registry import set_service
from .core.service import ProxyService, build_service
from .logging import log_requests, setup_logging
from .settings import ProxySettings, parse_settings

# Initialize logging
logger = setup_logging()


def _register_routes(app: FastAPI) -> None:
    app.post("/v1/chat/completions")(chat_completions)
    app.get("/v1/models")(list_models)
    app.get("/health")(health)

    app.get("/get_jwt")(get_jwt)
    app.post("/refresh_jwt")(refresh_jwt)
    app.delete("/clear_jwt")(clear_jwt)

    app.get("/v1/conversations")(list_conversations)
    app.get("/v1/conversations/{conversation_id}/history")(get_conversation_history)
    app.delete("/v1/conversations/{conversation_id}")(clear_conversation)

    app.get("/v1/workflows/sessions")(list_workflow_sessions)
    app.get("/v1/workflows/sessions/{session_id}")(get_workflow_session)
    app.post("/v1/workflows/resume")(resume_workflow)


def _log_startup(settings: ProxySettings) -> None:
    logger.info("Coze proxy server starting up...")
    logger.info("Configured bind address %s:%s", settings.host, settings.port)
    if settings.host == "0.0.0.0":
        hostname = socket.gethostname()
        logger.info("Reachable on local network at http://%s:%s", hostname, settings.port)
    logger.info("Default model type: %s", settings.default_model_type.value)
    logger.info("Coze API: %s", settings.coze.base_url)
    logger.info(
        "Credentials: %s",
        "JWT OAuth app" if settings.coze.jwt is not None
        else ("static API key" if settings.coze.api_key else "none configured"),
    )
    logger.info("Coze proxy server ready to handle requests")


def build_app(service: ProxyService) -> FastAPI:
    """Build the FastAPI application around an already wired service."""
    settings = service.settings
    set_service(service)

    app = FastAPI(title="Coze OpenAI Proxy")
    app.state.service = service

    if settings.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["x-conversation-id"],
        )
    if settings.logging_enabled:
        app.middleware("http")(log_requests)

    register_error_handlers(app)
    _register_routes(app)

    @app.on_event("startup")
    async def startup_event():
        """Handle application startup."""
        _log_startup(settings)

    return app


def create_app(
    config: Optional[Mapping[str, Any]] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Factory function to create the FastAPI application.

    Args:
        config: Parsed configuration; loaded from disk when omitted.
        transport: Optional httpx transport used for every backend call.

    Returns:
        The configured FastAPI application instance.
    """
    if config is None:
        config = load_config()
    settings = parse_settings(config)
    setup_logging(settings.log_level)
    return build_app(build_service(settings, transport=transport))


__all__ = ["build_app", "create_app"]
