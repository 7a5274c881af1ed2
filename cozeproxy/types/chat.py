"""Types for the OpenAI side of the proxy.

The OpenAI-compatible shapes below are what clients send to and receive from
``/v1/chat/completions``. Backend (Coze) shapes live in
``cozeproxy.backend.types``.
"""

from enum import Enum
from typing import Any, Literal, Optional, Union

from typing_extensions import NotRequired, TypedDict


class ModelType(str, Enum):
    """Backend invocation mode, selected once per request."""

    CHAT = "chat"
    CONVERSATION = "conversation"
    WORKFLOW = "workflow"


# =============================================================================
# OpenAI-Compatible Types
# =============================================================================


class ImageURL(TypedDict, total=False):
    url: str
    detail: str


class ContentPart(TypedDict, total=False):
    """A content part for multi-modal messages (OpenAI format).

    Attributes:
        type: "text", "image_url" (or "image"), or "file".
        text: Text content (for "text" type).
        image_url: Image URL object, or a bare URL string (for "image_url").
        file_url: Flat URL field accepted for "image" and "file" parts.
        file_id: Backend file id (for "file" type).
    """
    type: str
    text: str
    image_url: Union[ImageURL, str]
    url: str
    file_url: str
    file_id: str


class ChatMessage(TypedDict):
    """A message in a chat conversation (OpenAI format).

    ``role`` is one of "system", "user" or "assistant" and is never empty;
    ``content`` is a string or a list of content parts and is never None.
    """
    role: str
    content: Union[str, list[ContentPart]]
    name: NotRequired[str]


class Usage(TypedDict):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class Choice(TypedDict):
    index: int
    message: ChatMessage
    finish_reason: Optional[str]


class ChatCompletion(TypedDict):
    """A buffered chat completion response (OpenAI format)."""
    id: str
    object: Literal["chat.completion"]
    created: int
    model: str
    choices: list[Choice]
    usage: NotRequired[Usage]


class Delta(TypedDict, total=False):
    """A streamed delta of a choice; empty on the terminal chunk."""
    role: str
    content: str


class ChunkChoice(TypedDict):
    index: int
    delta: Delta
    finish_reason: Optional[str]


class ChatCompletionChunk(TypedDict):
    """A streaming chunk (OpenAI format)."""
    id: str
    object: Literal["chat.completion.chunk"]
    created: int
    model: str
    choices: list[ChunkChoice]


class ErrorBody(TypedDict):
    message: str
    type: str
    code: str


class ErrorEnvelope(TypedDict):
    error: ErrorBody


JSONObject = dict[str, Any]
