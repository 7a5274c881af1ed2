"""Testing utilities for in-process proxy simulations."""

from .assertions import (
    assert_openai_chat_valid,
    assert_stream_terminated,
    parse_sse_frames,
    stream_text,
)
from .fake_backend import CozeResponse, FakeCoze, StreamError, envelope
from .harness import FAKE_BASE_URL, ProxyHarness, make_config

__all__ = [
    # Core simulation classes
    "CozeResponse",
    "FAKE_BASE_URL",
    "FakeCoze",
    "ProxyHarness",
    "StreamError",
    "envelope",
    "make_config",
    # Assertions
    "assert_openai_chat_valid",
    "assert_stream_terminated",
    "parse_sse_frames",
    "stream_text",
]
