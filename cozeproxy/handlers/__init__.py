from .base import (
    BOT_ID_HEADER,
    CONVERSATION_ID_HEADER,
    MODEL_TYPE_HEADER,
    WORKFLOW_ID_HEADER,
    CompletionHandler,
    CompletionRequest,
    CompletionResult,
    HandlerSet,
    parse_messages,
)
from .chat import ChatHandler
from .conversation import ConversationHandler
from .workflow import WorkflowHandler

__all__ = [
    "BOT_ID_HEADER",
    "CONVERSATION_ID_HEADER",
    "ChatHandler",
    "CompletionHandler",
    "CompletionRequest",
    "CompletionResult",
    "ConversationHandler",
    "HandlerSet",
    "MODEL_TYPE_HEADER",
    "WORKFLOW_ID_HEADER",
    "WorkflowHandler",
    "parse_messages",
]
