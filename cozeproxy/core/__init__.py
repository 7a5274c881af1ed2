"""Core module initialization."""

from .exceptions import (
    BackendStatusError,
    ConfigurationError,
    CredentialRefreshError,
    InvalidRequestError,
    PollingTimeoutError,
    ProxyError,
    SessionNotFoundError,
    StreamingNotSupportedError,
)
from .registry import get_service, set_service
from .sse import SSEDecoder, SSEEvent, describe_stream_error

__all__ = [
    "BackendStatusError",
    "ConfigurationError",
    "CredentialRefreshError",
    "InvalidRequestError",
    "PollingTimeoutError",
    "ProxyError",
    "SSEDecoder",
    "SSEEvent",
    "SessionNotFoundError",
    "StreamingNotSupportedError",
    "describe_stream_error",
    "get_service",
    "set_service",
]
