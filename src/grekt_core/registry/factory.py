"""Registry client factory.

Selects the client variant from ``ResolvedRegistry.type``. Unknown types
fall back to the default registry client.

Example:
    >>> registry = resolve_registry("@myorg", local_config, tokens)
    >>> async with create_registry_client(registry) as client:
    ...     versions = await client.list_versions("@myorg/tools")
"""

from __future__ import annotations

import httpx
import structlog

from grekt_core.archive import ArchiveLister
from grekt_core.config import HttpSettings
from grekt_core.registry.base import RegistryClient
from grekt_core.registry.clients import (
    DefaultRegistryClient,
    GitHubRegistryClient,
    GitLabRegistryClient,
)
from grekt_core.schemas.registry import RegistryType, ResolvedRegistry

logger = structlog.get_logger(__name__)

_CLIENTS: dict[RegistryType, type[RegistryClient]] = {
    RegistryType.DEFAULT: DefaultRegistryClient,
    RegistryType.GITLAB: GitLabRegistryClient,
    RegistryType.GITHUB: GitHubRegistryClient,
}


def create_registry_client(
    registry: ResolvedRegistry,
    *,
    http: httpx.AsyncClient | None = None,
    settings: HttpSettings | None = None,
    lister: ArchiveLister | None = None,
) -> RegistryClient:
    """Build the client for a resolved registry.

    Args:
        registry: Output of ``resolve_registry``.
        http: Shared HTTP client; the created client owns one if None.
        settings: HTTP settings for an owned client.
        lister: Archive lister for the tarball validator.

    Raises:
        RegistryConfigError: If a gitlab/github registry has no ``project``.
    """
    client_cls = _CLIENTS.get(registry.type, DefaultRegistryClient)
    logger.debug(
        "registry_client_created",
        registry_type=registry.type.value,
        client=client_cls.__name__,
        host=registry.host,
    )
    return client_cls(registry, http=http, settings=settings, lister=lister)


__all__ = ["create_registry_client"]
