"""Core exceptions for the proxy."""

from typing import Optional


class ProxyError(Exception):
    """Base exception for proxy errors."""

    status_code = 500
    error_type = "server_error"
    default_code = "internal_error"

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ConfigurationError(ProxyError):
    """Raised when a required id or credential is not configured."""

    default_code = "configuration_error"


class InvalidRequestError(ProxyError):
    """Raised when an incoming request is invalid."""

    status_code = 400
    error_type = "invalid_request_error"
    default_code = "invalid_request"


class StreamingNotSupportedError(InvalidRequestError):
    """Raised when a streaming request targets a mode without streaming."""

    default_code = "streaming_not_supported"


class SessionNotFoundError(ProxyError):
    """Raised when a conversation or workflow session id is unknown."""

    status_code = 404
    error_type = "invalid_request_error"
    default_code = "session_not_found"


class BackendStatusError(ProxyError):
    """The backend reported a non-success status or an error payload."""

    default_code = "backend_error"

    def __init__(
        self,
        message: str,
        status: Optional[str] = None,
        code: Optional[str] = None,
        http_status: Optional[int] = None,
    ) -> None:
        super().__init__(message, code)
        self.status = status
        self.http_status = http_status


class CredentialRefreshError(ProxyError):
    """The signed-assertion token exchange failed."""

    default_code = "credential_refresh_failed"


class PollingTimeoutError(ProxyError):
    """An asynchronous backend run did not finish within the poll budget."""

    default_code = "polling_timeout"

    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts
