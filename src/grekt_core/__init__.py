"""grekt-core: artifact registry resolution, secure download and integrity.

Example:
    >>> from grekt_core import create_registry_client, resolve_registry_for_artifact
    >>> registry, artifact = resolve_registry_for_artifact("@grekt/tools", None)
    >>> async with create_registry_client(registry) as client:
    ...     result = await client.download(artifact.artifact_id, None, target_dir)
"""

from __future__ import annotations

from grekt_core.errors import ErrorCode, GrektError
from grekt_core.integrity import calculate_integrity, hash_directory, verify_integrity
from grekt_core.registry import (
    RegistryClient,
    create_registry_client,
    parse_artifact_id,
    resolve_registry,
    resolve_registry_for_artifact,
)
from grekt_core.schemas import DownloadResult, PublishResult, ResolvedRegistry

__version__ = "0.4.0"

__all__ = [
    "DownloadResult",
    "ErrorCode",
    "GrektError",
    "PublishResult",
    "RegistryClient",
    "ResolvedRegistry",
    "__version__",
    "calculate_integrity",
    "create_registry_client",
    "hash_directory",
    "parse_artifact_id",
    "resolve_registry",
    "resolve_registry_for_artifact",
    "verify_integrity",
]
