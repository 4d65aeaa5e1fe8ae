"""Fixtures for registry tests.

Registry clients get an ``httpx.AsyncClient`` backed by ``httpx.MockTransport``
so every request is answered by an in-test handler.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable

import httpx
import pytest
import pytest_asyncio

Handler = Callable[[httpx.Request], httpx.Response]


@pytest_asyncio.fixture
async def mock_http() -> AsyncIterator[Callable[[Handler], httpx.AsyncClient]]:
    """Factory for mock-transport HTTP clients; all are closed on teardown.

    Usage:
        async def test_x(mock_http):
            http = mock_http(lambda request: httpx.Response(404))
    """
    clients: list[httpx.AsyncClient] = []

    def _create(handler: Handler) -> httpx.AsyncClient:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _create

    for client in clients:
        await client.aclose()


@pytest.fixture
def environ() -> dict[str, str]:
    """Empty environment mapping for EnvTokenProvider."""
    return {}
