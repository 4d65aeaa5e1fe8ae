"""Registry resolution.

Normalizes config into a ResolvedRegistry. Parse once, never parse again:
downstream code only ever sees the resolved model.

Resolution:
    1. Explicit entry for the scope in ``LocalConfig.registries``
    2. Otherwise the public default registry

Token priority for a configured entry:
    1. ``token`` on the config entry
    2. TokenProvider (env vars such as GITLAB_TOKEN, GITHUB_TOKEN)

Example:
    >>> registry, artifact = resolve_registry_for_artifact("@grekt/tools@1.0.0", None)
    >>> registry.host, artifact.version
    ('registry.grekt.com', '1.0.0')
"""

from __future__ import annotations

import structlog

from grekt_core.constants import (
    ARTIFACT_ID_PATTERN,
    GITHUB_DEFAULT_HOST,
    GITLAB_DEFAULT_HOST,
    REGISTRY_HOST,
)
from grekt_core.errors import InvalidArtifactIdError
from grekt_core.registry.tokens import TokenProvider
from grekt_core.schemas.registry import (
    ArtifactId,
    LocalConfig,
    RegistryType,
    ResolvedRegistry,
)

logger = structlog.get_logger(__name__)


def parse_artifact_id(source: str) -> ArtifactId:
    """Parse ``@scope/name[@version]``; the leading ``@`` is optional.

    Args:
        source: Artifact id string.

    Returns:
        ArtifactId with the scope always ``@``-prefixed.

    Raises:
        InvalidArtifactIdError: If ``source`` does not match the grammar.

    Examples:
        >>> parse_artifact_id("grekt/tools").artifact_id
        '@grekt/tools'
        >>> parse_artifact_id("@scope/name@1.0.0").version
        '1.0.0'
    """
    match = ARTIFACT_ID_PATTERN.match(source)
    if match is None:
        raise InvalidArtifactIdError(source)

    scope, name, version = match.groups()
    return ArtifactId(scope=f"@{scope}", name=name, version=version)


def get_default_host(registry_type: RegistryType) -> str:
    """Default host for a backend type."""
    if registry_type == RegistryType.GITLAB:
        return GITLAB_DEFAULT_HOST
    if registry_type == RegistryType.GITHUB:
        return GITHUB_DEFAULT_HOST
    return REGISTRY_HOST


def resolve_registry(
    scope: str,
    local_config: LocalConfig | None,
    tokens: TokenProvider | None = None,
) -> ResolvedRegistry:
    """Resolve a scope to its registry. Never fails.

    Args:
        scope: ``@``-prefixed scope.
        local_config: Parsed ``.grekt/config.yaml``, or None.
        tokens: Fallback token source for configured entries.

    Returns:
        The public default registry when no entry exists for ``scope``.
    """
    entry = local_config.registries.get(scope) if local_config is not None else None

    if entry is None:
        token = tokens.get_registry_token(scope) if tokens is not None else None
        logger.debug("registry_resolved", scope=scope, registry_type="default")
        return ResolvedRegistry(type=RegistryType.DEFAULT, host=REGISTRY_HOST, token=token)

    token = entry.token
    if not token and tokens is not None:
        if entry.type == RegistryType.GITLAB:
            token = tokens.get_git_token("gitlab", entry.host or GITLAB_DEFAULT_HOST)
        elif entry.type == RegistryType.GITHUB:
            token = tokens.get_git_token("github", entry.host)
        else:
            token = tokens.get_registry_token(scope)

    resolved = ResolvedRegistry(
        type=entry.type,
        host=entry.host or get_default_host(entry.type),
        project=entry.project,
        token=token,
        prefix=entry.prefix,
    )
    logger.debug(
        "registry_resolved",
        scope=scope,
        registry_type=resolved.type.value,
        host=resolved.host,
        has_token=resolved.token is not None,
    )
    return resolved


def resolve_registry_for_artifact(
    source: str,
    local_config: LocalConfig | None,
    tokens: TokenProvider | None = None,
) -> tuple[ResolvedRegistry, ArtifactId]:
    """Parse an artifact id and resolve its registry in one call.

    Raises:
        InvalidArtifactIdError: If ``source`` is not a valid artifact id.
    """
    artifact = parse_artifact_id(source)
    return resolve_registry(artifact.scope, local_config, tokens), artifact


__all__ = [
    "get_default_host",
    "parse_artifact_id",
    "resolve_registry",
    "resolve_registry_for_artifact",
]
