"""SSE (Server-Sent Events) decoding for backend event streams."""

import codecs
import json
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class SSEEvent:
    """A single decoded SSE event."""

    event: Optional[str]
    data: Optional[str]
    other_lines: list[str] = field(default_factory=list)

    def json(self) -> Any:
        """Parse the data payload as JSON, falling back to the raw string."""
        if self.data is None:
            return None
        try:
            return json.loads(self.data)
        except json.JSONDecodeError:
            return self.data

    def encode(self) -> bytes:
        lines: list[str] = []
        if self.event is not None:
            lines.append(f"event: {self.event}")
        lines.extend(self.other_lines)
        if self.data is not None:
            for item in self.data.split("\n"):
                if item:
                    lines.append(f"data: {item}")
                else:
                    lines.append("data:")
        text = "\n".join(lines) + "\n\n"
        return text.encode("utf-8")


class SSEDecoder:
    """Incremental decoder; feed raw bytes, get complete events back."""

    def __init__(self) -> None:
        self._buffer = ""
        # Reads can end inside a multi-byte character or between \r and \n
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending_cr = False

    def _normalise(self, text: str) -> str:
        if self._pending_cr:
            text = "\r" + text
            self._pending_cr = False
        if text.endswith("\r"):
            text = text[:-1]
            self._pending_cr = True
        return text.replace("\r\n", "\n").replace("\r", "\n")

    def feed(self, chunk: bytes) -> list[SSEEvent]:
        if not chunk:
            return []
        self._buffer += self._normalise(self._decoder.decode(chunk))
        events: list[SSEEvent] = []

        while True:
            sep_index = self._buffer.find("\n\n")
            if sep_index == -1:
                break
            raw_event = self._buffer[:sep_index]
            self._buffer = self._buffer[sep_index + 2:]
            event = self._parse_event(raw_event)
            if event is not None:
                events.append(event)

        return events

    def flush(self) -> list[SSEEvent]:
        """Decode whatever is left in the buffer once the stream closed."""
        leftover = self._buffer + ("\n" if self._pending_cr else "")
        leftover += self._decoder.decode(b"", final=True)
        self._buffer = ""
        self._pending_cr = False
        self._decoder.reset()
        leftover = leftover.replace("\r\n", "\n").replace("\r", "\n")
        events: list[SSEEvent] = []
        for raw_event in leftover.split("\n\n"):
            event = self._parse_event(raw_event.strip("\n"))
            if event is not None:
                events.append(event)
        return events

    @staticmethod
    def _parse_event(raw: str) -> Optional[SSEEvent]:
        """Parse one block; comment-only or blank blocks give None."""
        if not raw.strip():
            return None
        event_name: Optional[str] = None
        data_lines: list[str] = []
        other_lines: list[str] = []
        for line in raw.split("\n"):
            if line.startswith("data:"):
                data_lines.append(line[5:].lstrip())
            elif line.startswith("event:"):
                event_name = line[6:].strip()
            elif line.startswith(":"):
                # comment / keep-alive
                continue
            else:
                other_lines.append(line)
        data = "\n".join(data_lines) if data_lines else None
        if event_name is None and data is None:
            return None
        return SSEEvent(event=event_name, data=data, other_lines=other_lines)


def describe_stream_error(payload: Any) -> str:
    """Render a backend error event payload as a readable message.

    Handles the shapes the backend uses for error events:
    - {"code": 4000, "msg": "..."}
    - {"error_code": 4000, "error_message": "..."}
    - {"last_error": {"code": ..., "msg": "..."}} on failed chats
    """
    if isinstance(payload, dict):
        last_error = payload.get("last_error")
        if isinstance(last_error, dict) and (last_error.get("msg") or last_error.get("code")):
            payload = last_error
        message = (
            payload.get("msg")
            or payload.get("error_message")
            or payload.get("message")
        )
        code = payload.get("code", payload.get("error_code"))
        if message and code not in (None, 0):
            return f"{message} (code={code})"
        if message:
            return str(message)
        return json.dumps(payload, ensure_ascii=False)
    if payload is None:
        return "unknown error"
    return str(payload)
