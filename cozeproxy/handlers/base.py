"""Mode selection and the shared handler interface."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Mapping, Optional

from ..core.exceptions import InvalidRequestError
from ..settings import ProxySettings
from ..types.chat import ChatCompletion, ChatMessage, ModelType

logger = logging.getLogger("coze-proxy")

MODEL_TYPE_HEADER = "x-model-type"
BOT_ID_HEADER = "x-bot-id"
WORKFLOW_ID_HEADER = "x-workflow-id"
CONVERSATION_ID_HEADER = "x-conversation-id"

VALID_ROLES = {"system", "user", "assistant"}


def _pick(payload: Mapping[str, Any], headers: Mapping[str, str], key: str) -> Optional[str]:
    """Body field first, then header."""
    value = payload.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    header = headers.get(key)
    if header and header.strip():
        return header.strip()
    return None


def parse_messages(raw: Any) -> list[ChatMessage]:
    """Validate inbound OpenAI messages.

    Raises:
        InvalidRequestError: If messages is missing, empty, or malformed.
    """
    if not isinstance(raw, list) or not raw:
        raise InvalidRequestError("Messages array is required", code="missing_messages")

    messages: list[ChatMessage] = []
    for index, item in enumerate(raw):
        if not isinstance(item, Mapping):
            raise InvalidRequestError(
                f"messages[{index}] must be an object", code="invalid_message"
            )
        role = item.get("role")
        if not isinstance(role, str) or not role:
            raise InvalidRequestError(
                f"messages[{index}].role is required", code="invalid_message"
            )
        if role not in VALID_ROLES:
            logger.debug(f"Unrecognised role {role!r} in messages[{index}], passing through")
        content = item.get("content")
        if content is None:
            content = ""
        if not isinstance(content, (str, list)):
            content = str(content)
        message: ChatMessage = {"role": role, "content": content}
        if isinstance(item.get("name"), str):
            message["name"] = item["name"]
        messages.append(message)
    return messages


@dataclass
class CompletionRequest:
    """An inbound chat-completions request with its mode resolved."""

    model: str
    messages: list[ChatMessage]
    model_type: ModelType
    stream: bool = False
    bot_id: Optional[str] = None
    workflow_id: Optional[str] = None
    conversation_id: Optional[str] = None
    user: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(
        cls,
        payload: Mapping[str, Any],
        headers: Mapping[str, str],
        settings: ProxySettings,
    ) -> "CompletionRequest":
        """Resolve mode and routing ids: body field, then header, then config.

        Raises:
            InvalidRequestError: On a malformed body or an unknown model type.
        """
        messages = parse_messages(payload.get("messages"))

        raw_type = _pick(payload, headers, MODEL_TYPE_HEADER)
        if raw_type is None:
            model_type = settings.default_model_type
        else:
            try:
                model_type = ModelType(raw_type.lower())
            except ValueError as exc:
                raise InvalidRequestError(
                    f"Invalid model type: {raw_type}", code="invalid_model_type"
                ) from exc

        model = payload.get("model")
        user = payload.get("user")
        known = {"model", "messages", "stream", "user", MODEL_TYPE_HEADER,
                 BOT_ID_HEADER, WORKFLOW_ID_HEADER, CONVERSATION_ID_HEADER}
        return cls(
            model=model if isinstance(model, str) and model else "coze",
            messages=messages,
            model_type=model_type,
            stream=bool(payload.get("stream")),
            bot_id=_pick(payload, headers, BOT_ID_HEADER) or settings.coze.bot_id,
            workflow_id=_pick(payload, headers, WORKFLOW_ID_HEADER) or settings.coze.workflow_id,
            conversation_id=_pick(payload, headers, CONVERSATION_ID_HEADER),
            user=user if isinstance(user, str) and user else None,
            extra={k: v for k, v in payload.items() if k not in known},
        )


@dataclass
class CompletionResult:
    """A buffered completion plus response headers the route should set."""

    body: ChatCompletion
    headers: dict[str, str] = field(default_factory=dict)


class CompletionHandler:
    """One implementation per ModelType."""

    model_type: ModelType

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        raise NotImplementedError

    async def stream(self, request: CompletionRequest) -> AsyncIterator[str]:
        """Validate the request and return an iterator of SSE frames.

        Validation errors raise here, before any frame (or backend call) is
        produced, so the route can still answer with an error envelope.
        """
        raise NotImplementedError


class HandlerSet:
    """Maps each ModelType to its handler."""

    def __init__(self, handlers: Mapping[ModelType, CompletionHandler]) -> None:
        missing = [mode.value for mode in ModelType if mode not in handlers]
        if missing:
            raise ValueError(f"No handler registered for model types: {', '.join(missing)}")
        self._handlers = dict(handlers)

    def __getitem__(self, model_type: ModelType) -> CompletionHandler:
        return self._handlers[model_type]

    def for_request(self, request: CompletionRequest) -> CompletionHandler:
        return self._handlers[request.model_type]
