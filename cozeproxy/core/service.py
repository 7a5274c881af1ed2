"""Wiring of the credential manager, backend client, stores and handlers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from ..auth.token_manager import TokenManager
from ..backend.client import CozeClient
from ..handlers import ChatHandler, ConversationHandler, HandlerSet, WorkflowHandler
from ..sessions.store import ConversationSession, SessionStore, WorkflowSession
from ..settings import ProxySettings
from ..types.chat import ModelType

logger = logging.getLogger("coze-proxy")


@dataclass
class ProxyService:
    """Everything a request needs, built once per application."""

    settings: ProxySettings
    token_manager: TokenManager
    client: CozeClient
    conversations: ConversationHandler
    workflows: WorkflowHandler
    handlers: HandlerSet


def build_service(
    settings: ProxySettings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ProxyService:
    """Build the service graph; ``transport`` replaces the network in tests."""
    token_manager = TokenManager(settings.coze, transport=transport)
    client = CozeClient(
        settings.coze,
        token_manager.get_token,
        polling=settings.polling,
        transport=transport,
    )

    conversation_store: SessionStore[ConversationSession] = SessionStore(
        "conversations",
        ttl_seconds=settings.sessions.ttl_seconds,
        max_entries=settings.sessions.max_entries,
    )
    workflow_store: SessionStore[WorkflowSession] = SessionStore(
        "workflows",
        ttl_seconds=settings.sessions.ttl_seconds,
        max_entries=settings.sessions.max_entries,
    )

    conversations = ConversationHandler(client, settings, conversation_store)
    workflows = WorkflowHandler(client, settings, workflow_store)
    handlers = HandlerSet(
        {
            ModelType.CHAT: ChatHandler(client, settings),
            ModelType.CONVERSATION: conversations,
            ModelType.WORKFLOW: workflows,
        }
    )
    logger.debug(
        f"Service built (base_url={settings.coze.base_url}, jwt={token_manager.uses_jwt})"
    )
    return ProxyService(
        settings=settings,
        token_manager=token_manager,
        client=client,
        conversations=conversations,
        workflows=workflows,
        handlers=handlers,
    )
