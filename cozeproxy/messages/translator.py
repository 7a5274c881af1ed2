"""OpenAI <-> Coze message translation.

Translates between OpenAI Chat Completions messages and Coze messages, and
builds the OpenAI-shaped responses and SSE frames the proxy returns.

Key mappings:
- OpenAI system/assistant -> Coze assistant (Coze has no system role; lossy)
- OpenAI user (and anything unrecognised) -> Coze user
- OpenAI string content -> Coze content_type "text"
- OpenAI content parts -> Coze content_type "object_string" (JSON array)

All functions here are pure. Malformed content never raises; it degrades to
text.

Reference:
- Coze message object: https://www.coze.com/docs/developer_guides/message_list
- OpenAI Chat Completions: https://platform.openai.com/docs/api-reference/chat
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any, Mapping, Optional

from ..backend.types import BackendContentPart, BackendMessage, BackendRole, ContentType
from ..types.chat import ChatCompletion, ChatCompletionChunk, ChatMessage, ContentPart, Usage

logger = logging.getLogger("coze-proxy")

SSE_DONE = "data: [DONE]\n\n"

_TO_BACKEND_ROLES = {
    "system": BackendRole.ASSISTANT,
    "assistant": BackendRole.ASSISTANT,
    "user": BackendRole.USER,
}

_TO_OPENAI_ROLES = {
    BackendRole.ASSISTANT.value: "assistant",
    BackendRole.USER.value: "user",
}


def _image_url_of(part: Mapping[str, Any]) -> str:
    """Pick the image URL from either an embedded url object or a flat field."""
    image_url = part.get("image_url")
    if isinstance(image_url, Mapping):
        url = image_url.get("url")
        if url:
            return str(url)
    elif isinstance(image_url, str) and image_url:
        return image_url
    return str(part.get("file_url") or part.get("url") or "")


def _part_to_backend(part: Any) -> BackendContentPart:
    if not isinstance(part, Mapping):
        if isinstance(part, str):
            return {"type": "text", "text": part}
        return {"type": "text", "text": ""}

    part_type = part.get("type")
    if part_type == "text":
        text = part.get("text")
        return {"type": "text", "text": text if isinstance(text, str) else ""}
    if part_type in ("image", "image_url"):
        return {"type": "image", "file_url": _image_url_of(part)}
    if part_type == "file":
        converted: BackendContentPart = {"type": "file"}
        if part.get("file_id"):
            converted["file_id"] = str(part["file_id"])
        if part.get("file_url") or part.get("url"):
            converted["file_url"] = str(part.get("file_url") or part.get("url"))
        return converted

    logger.debug(f"Unknown content part type {part_type!r}, degrading to empty text")
    return {"type": "text", "text": ""}


def to_backend(message: Mapping[str, Any]) -> BackendMessage:
    """Convert an OpenAI message to a Coze message. Never fails."""
    role = _TO_BACKEND_ROLES.get(str(message.get("role") or ""), BackendRole.USER)
    content = message.get("content")

    if isinstance(content, str):
        return {
            "role": role.value,
            "content": content,
            "content_type": ContentType.TEXT.value,
        }

    if isinstance(content, list):
        parts = [_part_to_backend(part) for part in content]
        return {
            "role": role.value,
            "content": json.dumps(parts, ensure_ascii=False),
            "content_type": ContentType.OBJECT_STRING.value,
        }

    return {
        "role": role.value,
        "content": "" if content is None else str(content),
        "content_type": ContentType.TEXT.value,
    }


def _part_to_openai(part: Any) -> ContentPart:
    if not isinstance(part, Mapping):
        return {"type": "text", "text": "" if part is None else str(part)}
    part_type = part.get("type")
    if part_type == "text":
        return {"type": "text", "text": str(part.get("text") or "")}
    if part_type == "image":
        return {"type": "image_url", "image_url": {"url": str(part.get("file_url") or "")}}
    if part_type == "file":
        converted: ContentPart = {"type": "file"}
        if part.get("file_id"):
            converted["file_id"] = str(part["file_id"])
        if part.get("file_url"):
            converted["file_url"] = str(part["file_url"])
        return converted
    return {"type": "text", "text": ""}


def to_openai(message: Mapping[str, Any]) -> ChatMessage:
    """Convert a Coze message to an OpenAI message. Never raises."""
    role = _TO_OPENAI_ROLES.get(str(message.get("role") or ""), "assistant")
    content = message.get("content")
    if content is None:
        content = ""

    if message.get("content_type") == ContentType.OBJECT_STRING.value and isinstance(content, str):
        try:
            parsed = json.loads(content)
        except (json.JSONDecodeError, ValueError):
            logger.debug("object_string content is not valid JSON, keeping it as text")
        else:
            if isinstance(parsed, list):
                return {"role": role, "content": [_part_to_openai(p) for p in parsed]}

    return {"role": role, "content": content if isinstance(content, str) else str(content)}


def messages_to_backend(messages: list[Mapping[str, Any]]) -> list[BackendMessage]:
    return [to_backend(message) for message in messages]


def content_to_text(content: Any) -> str:
    """Flatten message content to a string; multimodal content is JSON-serialised."""
    if isinstance(content, str):
        return content
    if content is None:
        return ""
    return json.dumps(content, ensure_ascii=False)


def new_completion_id(backend_id: Optional[str] = None) -> str:
    if backend_id:
        return f"chatcmpl-{backend_id}"
    return f"chatcmpl-{uuid.uuid4()}"


def build_usage(raw: Optional[Mapping[str, Any]]) -> Optional[Usage]:
    """Map Coze usage counters to OpenAI usage; None when nothing was reported."""
    if not raw:
        return None
    return {
        "prompt_tokens": int(raw.get("input_count") or 0),
        "completion_tokens": int(raw.get("output_count") or 0),
        "total_tokens": int(raw.get("token_count") or 0),
    }


def build_chat_completion(
    model: str,
    content: str,
    usage: Optional[Usage] = None,
    completion_id: Optional[str] = None,
) -> ChatCompletion:
    """Build a buffered chat completion. Usage is omitted when unknown."""
    response: ChatCompletion = {
        "id": completion_id or new_completion_id(),
        "object": "chat.completion",
        "created": int(time.time()),
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }
    if usage is not None:
        response["usage"] = usage
    return response


def build_stream_chunk(
    model: str,
    content: Optional[str] = None,
    *,
    chunk_id: str,
    role: Optional[str] = None,
    finish_reason: Optional[str] = None,
) -> ChatCompletionChunk:
    """Build one streaming chunk.

    A chunk with a ``finish_reason`` is terminal and always has an empty delta.
    """
    delta: dict[str, str] = {}
    if finish_reason is None:
        if role is not None:
            delta["role"] = role
        if content is not None:
            delta["content"] = content
    return {
        "id": chunk_id,
        "object": "chat.completion.chunk",
        "created": int(time.time()),
        "model": model,
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }


def format_sse(data: Any) -> str:
    """Frame a JSON payload as one SSE data event."""
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"
