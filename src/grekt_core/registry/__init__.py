"""Registry resolution, client variants and download helpers.

Example:
    >>> from grekt_core.registry import create_registry_client, resolve_registry_for_artifact
    >>> registry, artifact = resolve_registry_for_artifact("@myorg/tools@1.0.0", config, tokens)
    >>> async with create_registry_client(registry) as client:
    ...     result = await client.download(artifact.artifact_id, artifact.version, target)
"""

from __future__ import annotations

from grekt_core.registry.base import RegistryClient, result_from_error
from grekt_core.registry.clients import (
    DefaultRegistryClient,
    GitHubRegistryClient,
    GitLabRegistryClient,
)
from grekt_core.registry.download import (
    build_github_tarball_url,
    build_gitlab_archive_url,
    download_and_extract_tarball,
    get_github_headers,
    get_gitlab_headers,
)
from grekt_core.registry.factory import create_registry_client
from grekt_core.registry.resolver import (
    get_default_host,
    parse_artifact_id,
    resolve_registry,
    resolve_registry_for_artifact,
)
from grekt_core.registry.sources import get_source_display_name, parse_source
from grekt_core.registry.tokens import (
    ChainTokenProvider,
    ConfigTokenProvider,
    EnvTokenProvider,
    TokenProvider,
    default_token_provider,
)

__all__ = [
    "ChainTokenProvider",
    "ConfigTokenProvider",
    "DefaultRegistryClient",
    "EnvTokenProvider",
    "GitHubRegistryClient",
    "GitLabRegistryClient",
    "RegistryClient",
    "TokenProvider",
    "build_github_tarball_url",
    "build_gitlab_archive_url",
    "create_registry_client",
    "default_token_provider",
    "download_and_extract_tarball",
    "get_default_host",
    "get_github_headers",
    "get_gitlab_headers",
    "get_source_display_name",
    "parse_artifact_id",
    "parse_source",
    "resolve_registry",
    "resolve_registry_for_artifact",
    "result_from_error",
]
