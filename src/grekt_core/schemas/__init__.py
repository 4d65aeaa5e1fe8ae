"""Pydantic schemas for grekt-core.

Example:
    >>> from grekt_core.schemas import ResolvedRegistry, RegistryType
    >>> ResolvedRegistry(type=RegistryType.DEFAULT, host="registry.grekt.com")
"""

from __future__ import annotations

from grekt_core.schemas.integrity import FileHashMap, IntegrityResult, ModifiedFile
from grekt_core.schemas.oci import (
    BearerChallenge,
    BlobPullResult,
    ManifestPullResult,
    OciDescriptor,
    OciManifest,
    TagListResult,
)
from grekt_core.schemas.registry import (
    ArtifactId,
    ArtifactInfo,
    ArtifactMetadata,
    DownloadResult,
    LocalConfig,
    ParsedSource,
    PublishResult,
    RegistryEntry,
    RegistryType,
    ResolvedRegistry,
    SourceType,
    TarballDownloadResult,
    VersionInfo,
)

__all__ = [
    "ArtifactId",
    "ArtifactInfo",
    "ArtifactMetadata",
    "BearerChallenge",
    "BlobPullResult",
    "DownloadResult",
    "FileHashMap",
    "IntegrityResult",
    "LocalConfig",
    "ManifestPullResult",
    "ModifiedFile",
    "OciDescriptor",
    "OciManifest",
    "ParsedSource",
    "PublishResult",
    "RegistryEntry",
    "RegistryType",
    "ResolvedRegistry",
    "SourceType",
    "TarballDownloadResult",
    "TagListResult",
    "VersionInfo",
]
