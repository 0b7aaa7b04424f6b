"""Pytest fixtures and shared test configuration.

Provides reusable fixtures for unit and integration tests.

Fixtures:
    - relay_config: Backend settings pointing at a fake Ollama host
    - backend: Scriptable stand-in for the Ollama chat service
    - relay_client: RelayClient wired to the fake backend
    - async_client: HTTPX client for API testing against the ASGI app
    - storage: Empty mapping used as client-side persistence

The fake backend is an httpx.MockTransport, so the relay runs its real
HTTP code path without any network access.
"""

import json
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from newton_chat.api import app
from newton_chat.relay.client import RelayClient, get_relay_client
from newton_chat.relay.config import RelayConfig

BackendHandler = Callable[[httpx.Request], httpx.Response | Awaitable[httpx.Response]]

TEST_MODEL = "test-model"
TEST_OLLAMA_URL = "http://ollama.test"


def ndjson_body(*fragments: str) -> bytes:
    """Build an Ollama-style streamed chat body carrying the given fragments."""
    lines = [
        json.dumps(
            {"model": TEST_MODEL, "message": {"role": "assistant", "content": fragment}, "done": False}
        )
        for fragment in fragments
    ]
    lines.append(
        json.dumps({"model": TEST_MODEL, "message": {"role": "assistant", "content": ""}, "done": True})
    )
    return ("\n".join(lines) + "\n").encode()


class FakeBackend:
    """Records requests and answers them with a replaceable handler."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.handler: BackendHandler = self.default_handler

    @staticmethod
    def default_handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/tags":
            return httpx.Response(200, json={"models": [{"name": TEST_MODEL}]})
        return httpx.Response(
            200,
            content=ndjson_body("Hel", "lo"),
            headers={"Content-Type": "application/x-ndjson"},
        )

    def __call__(self, request: httpx.Request) -> httpx.Response | Awaitable[httpx.Response]:
        self.requests.append(request)
        return self.handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def payload(self, index: int = -1) -> dict[str, Any]:
        return json.loads(self.requests[index].content)


@pytest.fixture
def relay_config() -> RelayConfig:
    """Relay settings with a short deadline so timeout tests stay fast."""
    return RelayConfig(ollama_url=TEST_OLLAMA_URL, model_name=TEST_MODEL, timeout=0.2)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
async def relay_client(
    relay_config: RelayConfig, backend: FakeBackend
) -> AsyncGenerator[RelayClient]:
    """Relay client whose HTTP traffic goes to the fake backend."""
    client = RelayClient(config=relay_config, transport=backend.transport)
    yield client
    await client.aclose()


@pytest.fixture
async def async_client(relay_client: RelayClient) -> AsyncGenerator[AsyncClient]:
    """Create async HTTP client for API testing.

    Yields:
        Configured AsyncClient for making test requests.
    """
    app.dependency_overrides[get_relay_client] = lambda: relay_client
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def storage() -> dict[str, Any]:
    """Empty client-side storage mapping."""
    return {}
