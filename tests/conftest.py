"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

from typing import Any, Callable, Generator

import httpx
import pytest

from cozeproxy.backend import CozeClient
from cozeproxy.sessions import SessionStore
from cozeproxy.settings import ProxySettings, parse_settings
from cozeproxy.testing import FakeCoze, ProxyHarness, make_config


# =============================================================================
# Backend Fixtures
# =============================================================================


@pytest.fixture
def backend() -> FakeCoze:
    """A fresh fake Coze backend with nothing queued."""
    return FakeCoze()


@pytest.fixture
def settings() -> ProxySettings:
    return parse_settings(make_config())


@pytest.fixture
def make_client(backend: FakeCoze) -> Callable[[ProxySettings], CozeClient]:
    """Factory for a CozeClient talking to the fake backend with a fixed token."""

    async def token_provider() -> str:
        return "test-token"

    def factory(proxy_settings: ProxySettings) -> CozeClient:
        return CozeClient(
            proxy_settings.coze,
            token_provider,
            polling=proxy_settings.polling,
            transport=httpx.ASGITransport(app=backend.app),
        )

    return factory


@pytest.fixture
def client(make_client, settings: ProxySettings) -> CozeClient:
    return make_client(settings)


@pytest.fixture
def make_store() -> Callable[..., SessionStore]:
    def factory(name: str = "test", **kwargs: Any) -> SessionStore:
        return SessionStore(name, **kwargs)

    return factory


# =============================================================================
# Harness Fixtures
# =============================================================================


@pytest.fixture
def harness_factory(
    backend: FakeCoze,
) -> Generator[Callable[..., ProxyHarness], None, None]:
    """Create harnesses sharing the ``backend`` fixture.

    Usage:
        def test_something(backend, harness_factory):
            proxy = harness_factory(proxy_settings={"default_model_type": "workflow"})
    """
    created: list[ProxyHarness] = []

    def factory(**overrides: Any) -> ProxyHarness:
        harness = ProxyHarness(make_config(**overrides), backend=backend)
        created.append(harness)
        return harness

    try:
        yield factory
    finally:
        for harness in reversed(created):
            harness.close()


@pytest.fixture
def proxy(harness_factory) -> ProxyHarness:
    """A harness with the default test config (chat mode, static API key)."""
    return harness_factory()
