"""Coze backend transport and wire types."""

from .client import CozeClient, TokenProvider, format_httpx_error
from .types import (
    BackendContentPart,
    BackendEvent,
    BackendMessage,
    BackendRole,
    ChatEventType,
    ChatResult,
    ChatStatus,
    ContentType,
    ExecuteStatus,
    MessageType,
    WorkflowEventType,
    WorkflowRunResult,
)

__all__ = [
    "BackendContentPart",
    "BackendEvent",
    "BackendMessage",
    "BackendRole",
    "ChatEventType",
    "ChatResult",
    "ChatStatus",
    "ContentType",
    "CozeClient",
    "ExecuteStatus",
    "MessageType",
    "TokenProvider",
    "WorkflowEventType",
    "WorkflowRunResult",
    "format_httpx_error",
]
