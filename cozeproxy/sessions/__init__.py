"""Session stores for the stateful proxy modes."""

from .store import ConversationSession, SessionStore, WorkflowSession

__all__ = [
    "ConversationSession",
    "SessionStore",
    "WorkflowSession",
]
