"""In-memory session stores for conversation and workflow modes.

Sessions live in an LRU-ordered map with two eviction rules: entries idle for
longer than ``ttl_seconds`` are dropped on access, and the least recently
used entry is dropped once ``max_entries`` is exceeded.

Insert and lookup are atomic with respect to the event loop (no awaits
inside). Callers that mutate a session across awaits hold ``lock(key)`` so two
requests for the same session id run one after the other.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Generic, Optional, TypeVar

from ..types.chat import ChatMessage

logger = logging.getLogger("coze-proxy")

# Minimum step between two updated_at values of the same session
_MONOTONIC_STEP = 1e-6


@dataclass
class ConversationSession:
    """A conversation-mode session bound to one backend conversation."""

    id: str
    backend_conversation_id: str
    messages: list[ChatMessage] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    updated_at: float = 0.0

    def __post_init__(self) -> None:
        if not self.updated_at:
            self.updated_at = self.created_at

    def touch(self, now: Optional[float] = None) -> None:
        """Refresh updated_at; it strictly increases across calls."""
        now = time.time() if now is None else now
        self.updated_at = max(now, self.updated_at + _MONOTONIC_STEP)

    def append(self, message: ChatMessage) -> None:
        self.messages.append(message)
        self.touch()

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "conversation_id": self.backend_conversation_id,
            "message_count": len(self.messages),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def to_dict(self) -> dict[str, Any]:
        data = self.summary()
        data["messages"] = list(self.messages)
        return data


@dataclass(frozen=True)
class WorkflowSession:
    """Record of one workflow execution; never mutated after creation."""

    id: str
    workflow_id: str
    parameters: dict[str, Any]
    created_at: float = field(default_factory=time.time)

    @property
    def updated_at(self) -> float:
        return self.created_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "parameters": dict(self.parameters),
            "created_at": self.created_at,
        }


SessionT = TypeVar("SessionT", ConversationSession, WorkflowSession)


class SessionStore(Generic[SessionT]):
    """LRU + TTL keyed store with per-key asyncio locks."""

    def __init__(
        self,
        name: str,
        *,
        ttl_seconds: Optional[float] = None,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.name = name
        self.ttl_seconds = ttl_seconds
        self.max_entries = max(1, max_entries)
        self._clock = clock
        self._entries: OrderedDict[str, SessionT] = OrderedDict()
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        self._evict_expired()
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    def _is_expired(self, session: SessionT) -> bool:
        if not self.ttl_seconds:
            return False
        return self._clock() - session.updated_at > self.ttl_seconds

    def _evict_expired(self) -> None:
        if not self.ttl_seconds:
            return
        expired = [key for key, session in self._entries.items() if self._is_expired(session)]
        for key in expired:
            self._drop(key)
            logger.debug(f"{self.name}: evicted expired session {key}")

    def _drop(self, key: str) -> Optional[SessionT]:
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            self._locks.pop(key, None)
        return self._entries.pop(key, None)

    def get(self, key: Optional[str]) -> Optional[SessionT]:
        if not key:
            return None
        session = self._entries.get(key)
        if session is None:
            return None
        if self._is_expired(session):
            self._drop(key)
            logger.debug(f"{self.name}: session {key} expired")
            return None
        self._entries.move_to_end(key)
        return session

    def put(self, session: SessionT) -> SessionT:
        self._entries[session.id] = session
        self._entries.move_to_end(session.id)
        while len(self._entries) > self.max_entries:
            evicted_id, _ = self._entries.popitem(last=False)
            self._locks.pop(evicted_id, None)
            logger.info(f"{self.name}: evicted least recently used session {evicted_id}")
        return session

    def remove(self, key: str) -> Optional[SessionT]:
        return self._drop(key)

    def values(self) -> list[SessionT]:
        self._evict_expired()
        return list(self._entries.values())

    def clear(self) -> None:
        self._entries.clear()
        self._locks.clear()

    @asynccontextmanager
    async def lock(self, key: Optional[str]) -> AsyncIterator[None]:
        """Serialise work on one session id; a falsy key is not locked."""
        if not key:
            yield
            return
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            yield
