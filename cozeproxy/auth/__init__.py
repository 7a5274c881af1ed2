"""Backend credential management."""

from .token_manager import TOKEN_EXPIRY_BUFFER_MS, CachedToken, TokenManager

__all__ = [
    "CachedToken",
    "TOKEN_EXPIRY_BUFFER_MS",
    "TokenManager",
]
