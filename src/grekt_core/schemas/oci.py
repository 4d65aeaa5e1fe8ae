"""OCI Distribution Spec schemas (pull subset).

Only what pulling an artifact needs: descriptors, image manifests, tag
lists, the bearer challenge, and per-operation results.

Media Types:
    Manifest: application/vnd.oci.image.manifest.v1+json
    Artifact layer: application/vnd.grekt.artifact.layer.v1.tar+gzip
    Generic layer: application/vnd.oci.image.layer.v1.tar+gzip

See Also:
    - https://github.com/opencontainers/distribution-spec/blob/main/spec.md
    - https://github.com/opencontainers/image-spec/blob/main/manifest.md
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from grekt_core.errors import ErrorCode

# =============================================================================
# Constants
# =============================================================================

OCI_MANIFEST_MEDIA_TYPE = "application/vnd.oci.image.manifest.v1+json"
DOCKER_MANIFEST_MEDIA_TYPE = "application/vnd.docker.distribution.manifest.v2+json"
GREKT_CONFIG_MEDIA_TYPE = "application/vnd.grekt.artifact.config.v1+json"
GREKT_LAYER_MEDIA_TYPE = "application/vnd.grekt.artifact.layer.v1.tar+gzip"
OCI_LAYER_MEDIA_TYPE = "application/vnd.oci.image.layer.v1.tar+gzip"

MANIFEST_ACCEPT = ", ".join([OCI_MANIFEST_MEDIA_TYPE, DOCKER_MANIFEST_MEDIA_TYPE])
"""Accept header for manifest pulls (OCI plus Docker v2 for compatibility)."""

ARTIFACT_LAYER_MEDIA_TYPES = (GREKT_LAYER_MEDIA_TYPE, OCI_LAYER_MEDIA_TYPE)
"""Layer media types recognised as the artifact tarball, in preference order."""


# =============================================================================
# Content graph
# =============================================================================


class OciDescriptor(BaseModel):
    """Content descriptor referencing a blob by digest."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    media_type: str = Field(..., alias="mediaType")
    digest: str = Field(..., pattern=r"^[a-z0-9]+(?:[+._-][a-z0-9]+)*:[a-zA-Z0-9=_-]+$")
    size: int = Field(..., ge=0)
    annotations: dict[str, str] | None = None


class OciManifest(BaseModel):
    """OCI image manifest (schema version 2): one config plus layers."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    schema_version: int = Field(default=2, alias="schemaVersion")
    media_type: str | None = Field(default=None, alias="mediaType")
    config: OciDescriptor
    layers: list[OciDescriptor] = Field(default_factory=list)
    annotations: dict[str, str] | None = None

    def find_artifact_layer(self) -> OciDescriptor | None:
        """Return the first layer carrying an artifact tarball media type."""
        for layer in self.layers:
            if layer.media_type in ARTIFACT_LAYER_MEDIA_TYPES:
                return layer
        return None


class OciTagsList(BaseModel):
    """Body of ``GET /v2/<name>/tags/list``."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str | None = None
    tags: list[str] | None = None


class BearerChallenge(BaseModel):
    """Parsed ``WWW-Authenticate: Bearer`` challenge."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    realm: str
    service: str
    scope: str

    @property
    def cache_key(self) -> str:
        return f"{self.service}:{self.scope}"


# =============================================================================
# Operation results
# =============================================================================


class ManifestPullResult(BaseModel):
    """Result from pulling a manifest; 404 is a typed NOT_FOUND failure."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    success: bool
    manifest: OciManifest | None = None
    error: str | None = None
    error_code: ErrorCode | None = None


class BlobPullResult(BaseModel):
    """Result from pulling a blob."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    success: bool
    data: bytes | None = Field(default=None, repr=False)
    error: str | None = None
    error_code: ErrorCode | None = None


class TagListResult(BaseModel):
    """Result from listing tags; an unknown repository lists no tags."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    success: bool
    tags: list[str] = Field(default_factory=list)
    error: str | None = None
    error_code: ErrorCode | None = None


__all__ = [
    "ARTIFACT_LAYER_MEDIA_TYPES",
    "DOCKER_MANIFEST_MEDIA_TYPE",
    "GREKT_CONFIG_MEDIA_TYPE",
    "GREKT_LAYER_MEDIA_TYPE",
    "MANIFEST_ACCEPT",
    "OCI_LAYER_MEDIA_TYPE",
    "OCI_MANIFEST_MEDIA_TYPE",
    "BearerChallenge",
    "BlobPullResult",
    "ManifestPullResult",
    "OciDescriptor",
    "OciManifest",
    "OciTagsList",
    "TagListResult",
]
