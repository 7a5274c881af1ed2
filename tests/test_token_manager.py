"""Tests for the bearer-token lifecycle."""

import asyncio

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from cozeproxy.auth import CachedToken, TokenManager
from cozeproxy.core.exceptions import ConfigurationError, CredentialRefreshError
from cozeproxy.settings import CozeSettings, JWTSettings
from cozeproxy.testing import FAKE_BASE_URL, CozeResponse, FakeCoze

TOKEN_PATH = "/api/permission/oauth2/token"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture(scope="module")
def private_key_pem() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def jwt_settings(private_key_pem: str) -> CozeSettings:
    return CozeSettings(
        base_url=FAKE_BASE_URL,
        jwt=JWTSettings(
            app_id="app-1",
            key_id="kid-1",
            aud="api.coze.com",
            private_key=private_key_pem,
            duration_seconds=600,
        ),
    )


@pytest.fixture
def manager(jwt_settings, backend: FakeCoze, clock: FakeClock) -> TokenManager:
    return TokenManager(
        jwt_settings, transport=httpx.ASGITransport(app=backend.app), clock=clock
    )


class TestStaticKey:
    """Behaviour without a JWT app."""

    @pytest.mark.asyncio
    async def test_returns_api_key(self):
        manager = TokenManager(CozeSettings(api_key="static-key"))
        assert await manager.get_token() == "static-key"
        assert not manager.uses_jwt

    @pytest.mark.asyncio
    async def test_no_credentials_raises(self):
        manager = TokenManager(CozeSettings())
        with pytest.raises(ConfigurationError):
            await manager.get_token()

    @pytest.mark.asyncio
    async def test_refresh_without_jwt_raises(self):
        manager = TokenManager(CozeSettings(api_key="k"))
        with pytest.raises(ConfigurationError):
            await manager.refresh_token()


class TestValidity:
    """The 5 second expiry buffer."""

    def test_expiring_within_buffer_is_invalid(self, manager: TokenManager, clock: FakeClock):
        token = CachedToken("t", expires_at=int(clock.now) + 4)
        assert not manager.is_token_valid(token)

    def test_expiring_after_buffer_is_valid(self, manager: TokenManager, clock: FakeClock):
        token = CachedToken("t", expires_at=int(clock.now) + 6)
        assert manager.is_token_valid(token)

    def test_no_token_is_invalid(self, manager: TokenManager):
        assert not manager.is_token_valid()


class TestRefresh:
    """Signed assertion exchange."""

    @pytest.mark.asyncio
    async def test_get_token_exchanges_assertion(self, manager, backend, clock, private_key_pem):
        backend.enqueue_token("access-1", int(clock.now) + 900)

        assert await manager.get_token() == "access-1"

        [request] = backend.requests_to(TOKEN_PATH)
        assert request["json"] == {
            "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
            "duration_seconds": 600,
        }
        assertion = request["headers"]["authorization"].removeprefix("Bearer ")
        assert jwt.get_unverified_header(assertion)["kid"] == "kid-1"
        claims = jwt.decode(assertion, options={"verify_signature": False})
        assert claims["iss"] == "app-1"
        assert claims["aud"] == "api.coze.com"
        assert claims["exp"] - claims["iat"] == 3600
        assert claims["session_name"] == "openai-proxy"
        assert claims["jti"]

    @pytest.mark.asyncio
    async def test_get_token_is_idempotent_inside_buffer(self, manager, backend, clock):
        backend.enqueue_token("access-1", int(clock.now) + 900)

        first = await manager.get_token()
        clock.now += 100
        second = await manager.get_token()

        assert first == second == "access-1"
        assert len(backend.requests_to(TOKEN_PATH)) == 1

    @pytest.mark.asyncio
    async def test_refreshes_near_expiry(self, manager, backend, clock):
        backend.enqueue_token("access-1", int(clock.now) + 10)
        backend.enqueue_token("access-2", int(clock.now) + 900)

        assert await manager.get_token() == "access-1"
        clock.now += 6
        assert await manager.get_token() == "access-2"

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self, manager, backend, clock):
        backend.enqueue_token("access-1", int(clock.now) + 900)

        tokens = await asyncio.gather(*(manager.get_token() for _ in range(5)))

        assert tokens == ["access-1"] * 5
        assert len(backend.requests_to(TOKEN_PATH)) == 1

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_token(self, manager, backend, clock):
        backend.enqueue_token("access-1", int(clock.now) + 10)
        await manager.get_token()

        backend.enqueue(
            TOKEN_PATH,
            CozeResponse(
                status_code=401, json_body={"error_message": "invalid assertion"}
            ),
        )
        clock.now += 8
        with pytest.raises(CredentialRefreshError) as excinfo:
            await manager.get_token()

        assert "invalid assertion" in str(excinfo.value)
        assert manager.cached_token is not None
        assert manager.cached_token.access_token == "access-1"

    @pytest.mark.asyncio
    async def test_response_without_access_token_fails(self, manager, backend):
        backend.enqueue_json(TOKEN_PATH, code=4100, msg="app disabled")
        with pytest.raises(CredentialRefreshError):
            await manager.refresh_token()
        assert manager.cached_token is None

    @pytest.mark.asyncio
    async def test_bad_private_key_fails_without_network(self, backend, clock):
        settings = CozeSettings(
            base_url=FAKE_BASE_URL,
            jwt=JWTSettings(app_id="a", key_id="k", aud="x", private_key="not a key"),
        )
        manager = TokenManager(
            settings, transport=httpx.ASGITransport(app=backend.app), clock=clock
        )
        with pytest.raises(CredentialRefreshError):
            await manager.get_token()
        assert backend.received == []

    @pytest.mark.asyncio
    async def test_clear_forces_refresh(self, manager, backend, clock):
        backend.enqueue_token("access-1", int(clock.now) + 900)
        backend.enqueue_token("access-2", int(clock.now) + 900)

        await manager.get_token()
        manager.clear_token()
        assert manager.token_info() == {"has_token": False, "is_valid": False}
        assert await manager.get_token() == "access-2"

    @pytest.mark.asyncio
    async def test_token_info_after_refresh(self, manager, backend, clock):
        expires_at = int(clock.now) + 900
        backend.enqueue_token("access-1", expires_at)

        token = await manager.refresh_token()

        assert token.to_dict() == {
            "access_token": "access-1",
            "expires_in": expires_at,
            "token_type": "Bearer",
        }
        assert manager.token_info() == {
            "has_token": True,
            "is_valid": True,
            "expires_in": expires_at,
        }


class TestRefreshFailures:
    """Shared refresh errors never go unobserved."""

    @pytest.mark.asyncio
    async def test_failure_after_all_waiters_cancelled_is_retrieved(
        self, manager, monkeypatch, caplog
    ):
        release = asyncio.Event()

        async def failing_refresh():
            await release.wait()
            raise CredentialRefreshError("exchange down")

        monkeypatch.setattr(manager, "_refresh", failing_refresh)
        waiter = asyncio.ensure_future(manager.refresh_token())
        await asyncio.sleep(0)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        shared = manager._refresh_task
        with caplog.at_level("DEBUG", logger="coze-proxy"):
            release.set()
            await asyncio.wait({shared})

        assert not shared.cancelled()
        assert "exchange down" in caplog.text

    def test_signing_without_jwt_config_raises(self):
        manager = TokenManager(CozeSettings(api_key="k"))
        with pytest.raises(ConfigurationError):
            manager._sign_assertion()
