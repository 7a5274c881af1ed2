"""Stateful multi-turn conversations backed by backend conversation objects.

A session is keyed by the backend conversation id. The first request without
a known ``x-conversation-id`` creates the backend conversation, seeded with
every message except the final one; later requests append the final user
message and read back the newest assistant reply.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Optional

from ..backend.client import CozeClient
from ..backend.types import BackendRole
from ..core.exceptions import (
    BackendStatusError,
    ConfigurationError,
    InvalidRequestError,
    SessionNotFoundError,
    StreamingNotSupportedError,
)
from ..messages.translator import (
    build_chat_completion,
    content_to_text,
    messages_to_backend,
    to_backend,
    to_openai,
)
from ..sessions.store import ConversationSession, SessionStore
from ..settings import ProxySettings
from ..types.chat import ChatMessage, ModelType
from .base import CONVERSATION_ID_HEADER, CompletionHandler, CompletionRequest, CompletionResult

logger = logging.getLogger("coze-proxy")

NO_RESPONSE = "No response generated"


class ConversationHandler(CompletionHandler):
    model_type = ModelType.CONVERSATION

    def __init__(
        self,
        client: CozeClient,
        settings: ProxySettings,
        store: SessionStore[ConversationSession],
    ) -> None:
        self.client = client
        self.settings = settings
        self.store = store

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        if not request.bot_id:
            raise ConfigurationError("Bot ID is required for conversation completion")
        last = request.messages[-1]
        if last["role"] != "user":
            raise InvalidRequestError(
                "No user message found to respond to", code="invalid_message"
            )

        session = self.store.get(request.conversation_id)
        if session is None:
            session = await self._open_session(request.bot_id, request.messages[:-1])

        async with self.store.lock(session.id):
            created = await self.client.create_message(
                session.backend_conversation_id, to_backend(last)
            )
            session.append(last)

            listed = await self.client.list_messages(session.backend_conversation_id)
            reply = _latest_reply(listed, created.get("id"))
            session.append({"role": "assistant", "content": reply})

        logger.debug(
            f"Conversation {session.id} turn complete ({len(session.messages)} messages)"
        )
        return CompletionResult(
            body=build_chat_completion(request.model, reply),
            headers={CONVERSATION_ID_HEADER: session.id},
        )

    async def stream(self, request: CompletionRequest) -> AsyncIterator[str]:
        raise StreamingNotSupportedError(
            "Streaming is not supported for conversation mode"
        )

    async def _open_session(
        self, bot_id: str, history: list[ChatMessage]
    ) -> ConversationSession:
        conversation = await self.client.create_conversation(
            bot_id, messages_to_backend(history)
        )
        conversation_id = str(conversation.get("id") or "")
        if not conversation_id:
            raise BackendStatusError("Backend did not return a conversation id")
        session = ConversationSession(
            id=conversation_id,
            backend_conversation_id=conversation_id,
            messages=list(history),
        )
        self.store.put(session)
        logger.info(f"Created conversation session {conversation_id}")
        return session

    def list_conversations(self) -> list[dict[str, Any]]:
        return [session.summary() for session in self.store.values()]

    def _require(self, conversation_id: str) -> ConversationSession:
        session = self.store.get(conversation_id)
        if session is None:
            raise SessionNotFoundError(f"Conversation not found: {conversation_id}")
        return session

    async def get_history(self, conversation_id: str) -> list[ChatMessage]:
        """Return the backend's view of the conversation, oldest first."""
        session = self._require(conversation_id)
        listed = await self.client.list_messages(
            session.backend_conversation_id, order="asc"
        )
        return [to_openai(message) for message in listed]

    async def clear_conversation(self, conversation_id: str) -> None:
        session = self._require(conversation_id)
        async with self.store.lock(conversation_id):
            await self.client.clear_conversation(session.backend_conversation_id)
            self.store.remove(conversation_id)
        logger.info(f"Cleared conversation session {conversation_id}")


def _latest_reply(messages: list[dict[str, Any]], exclude_id: Optional[Any]) -> str:
    """Newest assistant message other than ``exclude_id``; input is newest first."""
    for message in messages:
        if message.get("role") != BackendRole.ASSISTANT.value:
            continue
        if exclude_id is not None and message.get("id") == exclude_id:
            continue
        content = content_to_text(message.get("content"))
        if content:
            return content
    return NO_RESPONSE
