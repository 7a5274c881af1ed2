"""OpenAI <-> Coze message translation helpers."""

from .stream_adapter import ChunkEmitter, terminate_stream
from .translator import (
    SSE_DONE,
    build_chat_completion,
    build_stream_chunk,
    build_usage,
    content_to_text,
    format_sse,
    messages_to_backend,
    new_completion_id,
    to_backend,
    to_openai,
)

__all__ = [
    "SSE_DONE",
    "ChunkEmitter",
    "build_chat_completion",
    "build_stream_chunk",
    "build_usage",
    "content_to_text",
    "format_sse",
    "messages_to_backend",
    "new_completion_id",
    "terminate_stream",
    "to_backend",
    "to_openai",
]
