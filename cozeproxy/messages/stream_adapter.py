"""OpenAI chunk emission for backend event streams.

Every stream the proxy returns follows the same framing:

    data: {"choices":[{"delta":{"role":"assistant","content":""},"finish_reason":null}]}
    data: {"choices":[{"delta":{"content":"Hello"},"finish_reason":null}]}
    data: {"choices":[{"delta":{},"finish_reason":"stop"}]}
    data: [DONE]

``ChunkEmitter`` tracks where a stream is in that sequence so the terminal
chunk and the ``[DONE]`` sentinel are each written exactly once, and
``terminate_stream`` guarantees both are written even when the backend
stream fails part way.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

from .translator import SSE_DONE, build_stream_chunk, format_sse, new_completion_id

logger = logging.getLogger("coze-proxy")


class ChunkEmitter:
    """Builds SSE frames for a single outgoing stream."""

    def __init__(self, model: str, chunk_id: Optional[str] = None) -> None:
        self.model = model
        self.chunk_id = chunk_id or new_completion_id()
        self.accumulated = ""
        self.role_sent = False
        self.finished = False
        self.done_sent = False

    def adopt_backend_id(self, backend_id: Optional[str]) -> None:
        """Use the backend's id for the remaining chunks of this stream."""
        if backend_id:
            self.chunk_id = new_completion_id(backend_id)

    def role(self) -> str:
        self.role_sent = True
        return format_sse(
            build_stream_chunk(self.model, "", chunk_id=self.chunk_id, role="assistant")
        )

    def content(self, text: str) -> str:
        self.accumulated += text
        if not self.role_sent:
            self.role_sent = True
            chunk = build_stream_chunk(
                self.model, text, chunk_id=self.chunk_id, role="assistant"
            )
        else:
            chunk = build_stream_chunk(self.model, text, chunk_id=self.chunk_id)
        return format_sse(chunk)

    def finish(self, finish_reason: str = "stop") -> str:
        self.finished = True
        return format_sse(
            build_stream_chunk(
                self.model, chunk_id=self.chunk_id, finish_reason=finish_reason
            )
        )

    def done(self) -> str:
        self.done_sent = True
        return SSE_DONE


async def terminate_stream(
    frames: AsyncIterator[str], emitter: ChunkEmitter
) -> AsyncIterator[str]:
    """Relay frames and always close the stream with terminal chunk + [DONE].

    Exceptions from ``frames`` become an ``Error: ...`` content chunk followed
    by the terminal chunk, so clients never see a stream without termination
    framing. Cancellation (client disconnect) propagates untouched.
    """
    try:
        async for frame in frames:
            yield frame
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        message = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
        logger.error(f"Stream failed for model {emitter.model}: {message}")
        if not emitter.finished:
            yield emitter.content(f"Error: {message}")

    if not emitter.finished:
        yield emitter.finish()
    if not emitter.done_sent:
        yield emitter.done()
