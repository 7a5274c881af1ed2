"""API routes for the proxy."""

from .chat import chat_completions
from .conversations import clear_conversation, get_conversation_history, list_conversations
from .health import health
from .jwt import clear_jwt, get_jwt, refresh_jwt
from .models import list_models
from .workflows import get_workflow_session, list_workflow_sessions, resume_workflow

__all__ = [
    "chat_completions",
    "clear_conversation",
    "clear_jwt",
    "get_conversation_history",
    "get_jwt",
    "get_workflow_session",
    "health",
    "list_conversations",
    "list_models",
    "list_workflow_sessions",
    "refresh_jwt",
    "resume_workflow",
]
