"""Types for the OpenAI-compatible side of the proxy."""

from .chat import (
    ChatCompletion,
    ChatCompletionChunk,
    ChatMessage,
    ChunkChoice,
    Choice,
    ContentPart,
    Delta,
    ErrorEnvelope,
    ModelType,
    Usage,
)

__all__ = [
    "ChatCompletion",
    "ChatCompletionChunk",
    "ChatMessage",
    "ChunkChoice",
    "Choice",
    "ContentPart",
    "Delta",
    "ErrorEnvelope",
    "ModelType",
    "Usage",
]
