"""Stateless single-turn chat against a bot (``/v3/chat``)."""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import AsyncIterator

from ..backend.client import CozeClient
from ..backend.types import BackendEvent, BackendRole, ChatEventType, ChatStatus, MessageType
from ..core.exceptions import BackendStatusError, ConfigurationError
from ..core.sse import describe_stream_error
from ..messages.stream_adapter import ChunkEmitter, terminate_stream
from ..messages.translator import (
    build_chat_completion,
    build_usage,
    messages_to_backend,
    new_completion_id,
)
from ..settings import ProxySettings
from ..types.chat import ModelType
from .base import CompletionHandler, CompletionRequest, CompletionResult

logger = logging.getLogger("coze-proxy")


class ChatHandler(CompletionHandler):
    model_type = ModelType.CHAT

    def __init__(self, client: CozeClient, settings: ProxySettings) -> None:
        self.client = client
        self.settings = settings

    def _bot_id(self, request: CompletionRequest) -> str:
        if not request.bot_id:
            raise ConfigurationError("Bot ID is required for chat completion")
        return request.bot_id

    def _user_id(self, request: CompletionRequest) -> str:
        return request.user or self.settings.coze.user_id

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        bot_id = self._bot_id(request)
        result = await self.client.create_and_poll_chat(
            bot_id, self._user_id(request), messages_to_backend(request.messages)
        )

        if result.status != ChatStatus.COMPLETED.value:
            detail = ""
            if result.chat.get("last_error"):
                detail = f": {describe_stream_error(result.chat)}"
            raise BackendStatusError(
                f"Chat completion failed with status: {result.status}{detail}",
                status=result.status,
            )

        reply = ""
        for message in result.messages:
            if (
                message.get("role") == BackendRole.ASSISTANT.value
                and message.get("type") == MessageType.ANSWER.value
            ):
                reply = str(message.get("content") or "")
                break

        chat_id = result.chat.get("id")
        return CompletionResult(
            body=build_chat_completion(
                request.model,
                reply,
                usage=build_usage(result.usage),
                completion_id=new_completion_id(str(chat_id) if chat_id else None),
            )
        )

    async def stream(self, request: CompletionRequest) -> AsyncIterator[str]:
        bot_id = self._bot_id(request)
        emitter = ChunkEmitter(request.model)
        events = self.client.stream_chat(
            bot_id, self._user_id(request), messages_to_backend(request.messages)
        )
        return terminate_stream(self._relay(events, emitter), emitter)

    async def _relay(
        self, events: AsyncIterator[BackendEvent], emitter: ChunkEmitter
    ) -> AsyncIterator[str]:
        async with aclosing(events) as stream:
            async for event in stream:
                payload = event.payload
                if event.event == ChatEventType.CHAT_CREATED.value:
                    emitter.adopt_backend_id(payload.get("id"))
                    yield emitter.role()
                elif event.event == ChatEventType.MESSAGE_DELTA.value:
                    content = payload.get("content")
                    if payload.get("type") == MessageType.ANSWER.value and content:
                        yield emitter.content(str(content))
                elif event.event == ChatEventType.CHAT_COMPLETED.value:
                    yield emitter.finish()
                    yield emitter.done()
                    return
                elif event.event == ChatEventType.CHAT_FAILED.value:
                    raise BackendStatusError(
                        f"Chat failed: {describe_stream_error(payload)}",
                        status=ChatStatus.FAILED.value,
                    )
                elif event.event == ChatEventType.ERROR.value:
                    raise BackendStatusError(
                        f"Stream error: {describe_stream_error(event.data)}"
                    )
                elif event.event == ChatEventType.DONE.value:
                    return
