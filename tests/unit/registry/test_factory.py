"""Unit tests for the registry client factory.

Requirements: FR-046 (client selection)
"""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest

from grekt_core.errors import RegistryConfigError
from grekt_core.registry import create_registry_client
from grekt_core.registry.clients import (
    DefaultRegistryClient,
    GitHubRegistryClient,
    GitLabRegistryClient,
)
from grekt_core.schemas.registry import RegistryType, ResolvedRegistry

MockHttp = Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]


class TestCreateRegistryClient:
    """Tests for create_registry_client (FR-046)."""

    @pytest.mark.requirement("FR-046")
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("registry", "expected"),
        [
            (
                ResolvedRegistry(type=RegistryType.DEFAULT, host="registry.grekt.com"),
                DefaultRegistryClient,
            ),
            (
                ResolvedRegistry(type=RegistryType.GITLAB, host="gitlab.com", project="g/p"),
                GitLabRegistryClient,
            ),
            (
                ResolvedRegistry(type=RegistryType.GITHUB, host="ghcr.io", project="myorg"),
                GitHubRegistryClient,
            ),
        ],
    )
    async def test_selects_client_by_type(
        self, mock_http: MockHttp, registry: ResolvedRegistry, expected: type
    ) -> None:
        client = create_registry_client(registry, http=mock_http(lambda r: httpx.Response(404)))

        assert isinstance(client, expected)
        assert client.registry is registry

    @pytest.mark.requirement("FR-046")
    @pytest.mark.parametrize("registry_type", [RegistryType.GITLAB, RegistryType.GITHUB])
    def test_missing_project_is_rejected(self, registry_type: RegistryType) -> None:
        registry = ResolvedRegistry(type=registry_type, host="example.com")

        with pytest.raises(RegistryConfigError, match="requires 'project'"):
            create_registry_client(registry)

    @pytest.mark.requirement("FR-046")
    @pytest.mark.asyncio
    async def test_owned_http_client_is_closed(self) -> None:
        registry = ResolvedRegistry(type=RegistryType.DEFAULT, host="registry.grekt.com")

        async with create_registry_client(registry) as client:
            http = client._http

        assert http.is_closed

    @pytest.mark.requirement("FR-046")
    @pytest.mark.asyncio
    async def test_shared_http_client_is_left_open(self, mock_http: MockHttp) -> None:
        http = mock_http(lambda r: httpx.Response(404))
        registry = ResolvedRegistry(type=RegistryType.DEFAULT, host="registry.grekt.com")

        async with create_registry_client(registry, http=http):
            pass

        assert not http.is_closed
