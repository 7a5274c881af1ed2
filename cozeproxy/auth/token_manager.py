"""Bearer-token lifecycle for backend calls.

When an OAuth JWT app is configured, a signed RS256 assertion is exchanged at
the backend's token endpoint for a short-lived access token. The token is
cached process-wide and refreshed shortly before it expires. Without a JWT
app the static API key is handed out instead.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx
import jwt

from ..core.exceptions import ConfigurationError, CredentialRefreshError
from ..settings import CozeSettings

logger = logging.getLogger("coze-proxy")

TOKEN_PATH = "/api/permission/oauth2/token"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_TTL_SECONDS = 3600
# Safety margin so a token cannot expire while a request is in flight
TOKEN_EXPIRY_BUFFER_MS = 5000


@dataclass(frozen=True)
class CachedToken:
    """Bearer token returned by the exchange; ``expires_at`` is epoch seconds."""

    access_token: str
    expires_at: int
    token_type: str = "Bearer"

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "expires_in": self.expires_at,
            "token_type": self.token_type,
        }


def _retrieve_refresh_error(task: "asyncio.Future[CachedToken]") -> None:
    # Every waiter may have been cancelled before the shared refresh failed
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug(f"Shared token refresh ended with {exc.__class__.__name__}: {exc}")


class TokenManager:
    """Holds the cached bearer token and coalesces concurrent refreshes."""

    def __init__(
        self,
        settings: CozeSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self._transport = transport
        self._clock = clock
        self._token: Optional[CachedToken] = None
        self._refresh_task: Optional[asyncio.Task[CachedToken]] = None

    @property
    def uses_jwt(self) -> bool:
        return self.settings.jwt is not None

    @property
    def cached_token(self) -> Optional[CachedToken]:
        return self._token

    def is_token_valid(self, token: Optional[CachedToken] = None) -> bool:
        token = token if token is not None else self._token
        if token is None:
            return False
        now_ms = self._clock() * 1000
        return token.expires_at * 1000 > now_ms + TOKEN_EXPIRY_BUFFER_MS

    async def get_token(self) -> str:
        """Return a usable bearer token, refreshing at most once if needed.

        Raises:
            ConfigurationError: If neither a JWT app nor an API key is configured.
            CredentialRefreshError: If the token exchange fails.
        """
        if not self.uses_jwt:
            if self.settings.api_key:
                return self.settings.api_key
            raise ConfigurationError("Neither JWT configuration nor API key provided")

        token = self._token
        if token is not None and self.is_token_valid(token):
            return token.access_token

        refreshed = await self._shared_refresh()
        return refreshed.access_token

    async def refresh_token(self) -> CachedToken:
        """Force a token exchange (joins one already in flight)."""
        if not self.uses_jwt:
            raise ConfigurationError("JWT configuration not provided")
        return await self._shared_refresh()

    def clear_token(self) -> None:
        """Drop the cached token so the next get_token() refreshes."""
        self._token = None
        logger.info("Cached access token cleared")

    def token_info(self) -> dict[str, Any]:
        info: dict[str, Any] = {
            "has_token": self._token is not None,
            "is_valid": self.is_token_valid(),
        }
        if self._token is not None:
            info["expires_in"] = self._token.expires_at
        return info

    async def _shared_refresh(self) -> CachedToken:
        task = self._refresh_task
        if task is None or task.done():
            task = asyncio.ensure_future(self._refresh())
            task.add_done_callback(_retrieve_refresh_error)
            self._refresh_task = task
        # Shielded: a caller going away must not cancel the refresh others await
        return await asyncio.shield(task)

    async def _refresh(self) -> CachedToken:
        jwt_settings = self.settings.jwt
        if jwt_settings is None:
            raise ConfigurationError("JWT configuration not provided")

        try:
            assertion = self._sign_assertion()
        except (jwt.PyJWTError, NotImplementedError, ValueError, TypeError) as exc:
            logger.error(f"Failed to sign JWT assertion: {exc}")
            raise CredentialRefreshError(f"JWT token refresh failed: {exc}") from exc

        url = f"{self.settings.base_url}{TOKEN_PATH}"
        body = {
            "grant_type": JWT_BEARER_GRANT,
            "duration_seconds": jwt_settings.duration_seconds,
        }
        headers = {
            "Authorization": f"Bearer {assertion}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.settings.timeout, transport=self._transport
            ) as client:
                resp = await client.post(url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            logger.error(f"Token exchange request failed: {exc!r}")
            raise CredentialRefreshError(
                f"JWT token refresh failed: {exc.__class__.__name__}: {exc}"
            ) from exc

        try:
            payload = resp.json()
        except ValueError:
            payload = {}

        if resp.status_code >= 400 or not isinstance(payload, dict) or not payload.get("access_token"):
            detail = ""
            if isinstance(payload, dict):
                detail = str(
                    payload.get("error_message")
                    or payload.get("msg")
                    or payload.get("error")
                    or ""
                )
            detail = detail or resp.text[:200] or "no access_token in response"
            logger.error(f"Token exchange rejected (HTTP {resp.status_code}): {detail}")
            raise CredentialRefreshError(
                f"JWT token refresh failed: HTTP {resp.status_code}: {detail}"
            )

        token = CachedToken(
            access_token=str(payload["access_token"]),
            expires_at=int(payload.get("expires_in") or 0),
            token_type=str(payload.get("token_type") or "Bearer"),
        )
        self._token = token
        logger.info(
            "JWT token refreshed successfully (expires_in=%s, token_type=%s)",
            token.expires_at,
            token.token_type,
        )
        return token

    def _sign_assertion(self) -> str:
        jwt_settings = self.settings.jwt
        if jwt_settings is None:
            raise ConfigurationError("JWT configuration not provided")
        now = int(self._clock())
        claims = {
            "iss": jwt_settings.app_id,
            "aud": jwt_settings.aud,
            "iat": now,
            "exp": now + ASSERTION_TTL_SECONDS,
            "jti": uuid.uuid4().hex,
            "session_name": jwt_settings.session_name,
        }
        return jwt.encode(
            claims,
            jwt_settings.private_key,
            algorithm="RS256",
            headers={"kid": jwt_settings.key_id},
        )
