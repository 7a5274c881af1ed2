"""Wire types for the Coze backend.

Protocol fields (roles, statuses, event names) are strict enumerations; the
payload dictionaries themselves are passed through loosely because the backend
adds fields freely.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from typing_extensions import NotRequired, TypedDict


class BackendRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ContentType(str, Enum):
    TEXT = "text"
    OBJECT_STRING = "object_string"


class MessageType(str, Enum):
    QUESTION = "question"
    ANSWER = "answer"
    FUNCTION_CALL = "function_call"
    TOOL_OUTPUT = "tool_output"
    TOOL_RESPONSE = "tool_response"
    FOLLOW_UP = "follow_up"
    VERBOSE = "verbose"


class ChatStatus(str, Enum):
    CREATED = "created"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    REQUIRES_ACTION = "requires_action"
    CANCELED = "canceled"

    @property
    def is_running(self) -> bool:
        return self in (ChatStatus.CREATED, ChatStatus.IN_PROGRESS)


class ChatEventType(str, Enum):
    CHAT_CREATED = "conversation.chat.created"
    CHAT_IN_PROGRESS = "conversation.chat.in_progress"
    CHAT_COMPLETED = "conversation.chat.completed"
    CHAT_FAILED = "conversation.chat.failed"
    CHAT_REQUIRES_ACTION = "conversation.chat.requires_action"
    MESSAGE_DELTA = "conversation.message.delta"
    MESSAGE_COMPLETED = "conversation.message.completed"
    AUDIO_DELTA = "conversation.audio.delta"
    ERROR = "error"
    DONE = "done"


class WorkflowEventType(str, Enum):
    MESSAGE = "Message"
    ERROR = "Error"
    DONE = "Done"
    INTERRUPT = "Interrupt"
    PING = "PING"


class ExecuteStatus(str, Enum):
    SUCCESS = "Success"
    RUNNING = "Running"
    FAIL = "Fail"


class BackendContentPart(TypedDict):
    """One element of an ``object_string`` message body."""
    type: str
    text: NotRequired[str]
    file_url: NotRequired[str]
    file_id: NotRequired[str]


class BackendMessage(TypedDict):
    role: str
    content: str
    content_type: str


@dataclass
class BackendEvent:
    """A decoded event from a backend event stream."""

    event: str
    data: Any = None

    @property
    def payload(self) -> dict[str, Any]:
        return self.data if isinstance(self.data, dict) else {}


@dataclass
class ChatResult:
    """Outcome of a polled (non-streaming) chat."""

    chat: dict[str, Any]
    messages: list[dict[str, Any]] = field(default_factory=list)

    @property
    def status(self) -> str:
        return str(self.chat.get("status", ""))

    @property
    def usage(self) -> Optional[dict[str, Any]]:
        usage = self.chat.get("usage")
        return usage if isinstance(usage, dict) and usage else None


@dataclass
class WorkflowRunResult:
    """Outcome (or current state) of a workflow execution."""

    execute_id: str
    status: str
    output: Any = None
    error_message: Optional[str] = None
    debug_url: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self.status == ExecuteStatus.RUNNING.value

