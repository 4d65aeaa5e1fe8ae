"""Registry schemas: artifact identifiers, registry configuration and results.

Parse once, never parse again: the resolver turns raw config into a
ResolvedRegistry, and everything downstream only ever sees that model.

Key Components:
    ArtifactId: Parsed ``@scope/name[@version]``
    ParsedSource: Non-registry origin (``github:``/``gitlab:``) or registry id
    RegistryEntry / LocalConfig: Raw configuration from ``.grekt/config.yaml``
    ResolvedRegistry: Normalized, immutable registry connection info
    ArtifactMetadata: Default-registry ``metadata.json`` document
    DownloadResult / PublishResult: Discriminated success/failure results
    ArtifactInfo / VersionInfo: Registry listing summaries

These schemas are consumed by the lockfile and sync collaborators. Field
names and hash formats are a persisted contract.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from grekt_core.errors import ErrorCode
from grekt_core.schemas.integrity import FileHashMap


class RegistryType(str, Enum):
    """Registry backend kinds."""

    DEFAULT = "default"
    GITLAB = "gitlab"
    GITHUB = "github"


class SourceType(str, Enum):
    """Origins an artifact source string can point at."""

    REGISTRY = "registry"
    GITHUB = "github"
    GITLAB = "gitlab"


class ArtifactId(BaseModel):
    """Parsed artifact identifier.

    The scope is always stored with its ``@`` prefix. Re-parsing
    ``artifact_id`` yields the same scope and name.

    Examples:
        >>> ArtifactId(scope="@grekt", name="tools").artifact_id
        '@grekt/tools'
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    scope: str = Field(..., pattern=r"^@", description="Scope including the leading @")
    name: str = Field(..., description="Artifact name without scope")
    version: str | None = Field(default=None, description="Requested version, if any")

    @property
    def artifact_id(self) -> str:
        """Canonical ``@scope/name`` form."""
        return f"{self.scope}/{self.name}"

    def __str__(self) -> str:
        return self.artifact_id


class ParsedSource(BaseModel):
    """Structured form of an artifact source string."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: SourceType
    identifier: str = Field(..., description="Artifact id for registry, owner/repo for git")
    ref: str | None = Field(default=None, description="Git ref (tag, branch, commit)")
    host: str | None = Field(default=None, description="Host for GitLab sources")
    raw: str = Field(..., description="Original source string")


class RegistryEntry(BaseModel):
    """Registry backend configured for one scope in the local config."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: RegistryType
    project: str | None = Field(
        default=None,
        description="GitLab project path or GHCR namespace (required for gitlab/github)",
    )
    host: str | None = Field(default=None, description="Overrides the per-type default host")
    token: str | None = Field(default=None, repr=False, description="Static access token")
    prefix: str | None = Field(
        default=None,
        description="Hyphen-joined before the unscoped artifact name in repository/package names",
    )


class LocalConfig(BaseModel):
    """Local, gitignored configuration (``.grekt/config.yaml``).

    Only the sections owned by this package are modelled; other sections
    (login session, sync targets) are ignored.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    registries: dict[str, RegistryEntry] = Field(
        default_factory=dict,
        description="Registry backends keyed by @scope",
    )
    tokens: dict[str, str] = Field(
        default_factory=dict,
        repr=False,
        description="Tokens for git sources keyed by 'github', 'gitlab' or a host name",
    )

    @field_validator("registries")
    @classmethod
    def validate_scopes(cls, v: dict[str, RegistryEntry]) -> dict[str, RegistryEntry]:
        """Registry keys must be @-prefixed scopes."""
        for scope in v:
            if not scope.startswith("@"):
                raise ValueError(f"Registry scope must start with @: {scope}")
        return v


class ResolvedRegistry(BaseModel):
    """Normalized registry connection info produced by the resolver.

    Created exactly once per scope lookup and never re-derived.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: RegistryType
    host: str
    project: str | None = None
    token: str | None = Field(default=None, repr=False)
    prefix: str | None = None


class ArtifactMetadata(BaseModel):
    """``metadata.json`` served by the default registry per artifact."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    name: str = Field(..., description="Full artifact id: @scope/name")
    latest: str = Field(..., description="Latest version as recorded by the registry")
    versions: list[str] | None = Field(default=None, description="All available versions")
    deprecated: dict[str, str] = Field(
        default_factory=dict,
        description="Version -> deprecation message",
    )
    created_at: datetime | None = Field(default=None, alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")


class DownloadResult(BaseModel):
    """Outcome of a registry download.

    On success ``integrity`` and ``file_hashes`` are computed from the
    extracted directory. Handed unchanged to the lockfile writer.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    success: bool
    version: str | None = None
    resolved: str | None = Field(default=None, description="Immutable canonical reference")
    integrity: str | None = None
    file_hashes: FileHashMap | None = None
    deprecation_message: str | None = None
    error: str | None = None
    error_code: ErrorCode | None = None
    violations: tuple[str, ...] = Field(
        default=(),
        description="Every tarball violation when the archive was rejected",
    )

    @classmethod
    def failure(
        cls,
        error: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        *,
        violations: tuple[str, ...] = (),
    ) -> DownloadResult:
        """Build a failed result."""
        return cls(success=False, error=error, error_code=code, violations=violations)


class PublishResult(BaseModel):
    """Outcome of a registry publish."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    success: bool
    url: str | None = None
    error: str | None = None
    error_code: ErrorCode | None = None

    @classmethod
    def failure(cls, error: str, code: ErrorCode = ErrorCode.UNKNOWN) -> PublishResult:
        """Build a failed result."""
        return cls(success=False, error=error, error_code=code)


class TarballDownloadResult(BaseModel):
    """Outcome of downloading and extracting a tarball by URL (git sources)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    success: bool
    integrity: str | None = None
    file_hashes: FileHashMap | None = None
    error: str | None = None
    error_code: ErrorCode | None = None
    violations: tuple[str, ...] = ()


class VersionInfo(BaseModel):
    """One published version of an artifact."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    version: str
    published_at: datetime | None = None
    deprecated: str | None = None


class ArtifactInfo(BaseModel):
    """Registry-side summary of an artifact."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    artifact_id: str
    latest_version: str
    versions: list[VersionInfo] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


__all__ = [
    "ArtifactId",
    "ArtifactInfo",
    "ArtifactMetadata",
    "DownloadResult",
    "LocalConfig",
    "ParsedSource",
    "PublishResult",
    "RegistryEntry",
    "RegistryType",
    "ResolvedRegistry",
    "SourceType",
    "TarballDownloadResult",
    "VersionInfo",
]
