"""GitLab Generic Package Registry client.

Artifacts are generic packages in one GitLab project. Package endpoints
need the numeric project id, which is looked up once from the project path
and cached for the client's lifetime.

Endpoints:
    GET /api/v4/projects/:path
    GET /api/v4/projects/:id/packages?package_type=generic&package_name=:name
    GET /api/v4/projects/:id/packages/generic/:name/:version/artifact.tar.gz
    PUT /api/v4/projects/:id/packages/generic/:name/:version/artifact.tar.gz

The package name is the unscoped artifact name, hyphen-prefixed with the
configured ``prefix``: ``@scope/tools`` with prefix ``agents`` is stored as
``agents-tools``.

See Also:
    - https://docs.gitlab.com/ee/user/packages/generic_packages/
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from urllib.parse import quote, urljoin

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from grekt_core.archive import ArchiveLister
from grekt_core.config import HttpSettings
from grekt_core.constants import ARTIFACT_FILE_NAME
from grekt_core.errors import (
    ArtifactNotFoundError,
    AuthenticationError,
    ImmutabilityViolationError,
    InvalidVersionError,
    ManifestValidationError,
    RegistryConfigError,
    RegistryUnavailableError,
)
from grekt_core.registry.base import (
    RegistryClient,
    raise_for_registry_status,
    result_from_error,
)
from grekt_core.registry.download import get_gitlab_headers
from grekt_core.registry.resolver import parse_artifact_id
from grekt_core.schemas.registry import (
    ArtifactInfo,
    DownloadResult,
    PublishResult,
    RegistryType,
    ResolvedRegistry,
    VersionInfo,
)
from grekt_core.version import is_valid_semver, sort_versions_desc

logger = structlog.get_logger(__name__)

PACKAGES_PER_PAGE = 100
"""GitLab caps ``per_page`` at 100."""

MISSING_PROJECT = "GitLab registry requires 'project' field in config"
MISSING_TOKEN = (
    "GitLab registry requires authentication. "
    "Set token in .grekt/config.yaml or GITLAB_TOKEN env var."
)


class GitLabProject(BaseModel):
    """Project lookup response; only the numeric id is used."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int


class GitLabPackage(BaseModel):
    """Entry of the project packages listing."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    name: str
    version: str
    package_type: str = "generic"
    created_at: datetime


_PACKAGE_LIST = TypeAdapter(list[GitLabPackage])


def normalize_host(host: str) -> str:
    """Strip a URL scheme and trailing slashes from a configured host.

    Examples:
        >>> normalize_host("https://gitlab.example.com/")
        'gitlab.example.com'
    """
    for scheme in ("https://", "http://"):
        if host.startswith(scheme):
            host = host[len(scheme) :]
            break
    return host.rstrip("/")


class GitLabRegistryClient(RegistryClient):
    """Client for a GitLab project's Generic Package Registry."""

    registry_type = RegistryType.GITLAB

    def __init__(
        self,
        registry: ResolvedRegistry,
        *,
        http: httpx.AsyncClient | None = None,
        settings: HttpSettings | None = None,
        lister: ArchiveLister | None = None,
    ) -> None:
        """Initialize the client.

        Raises:
            RegistryConfigError: If the registry has no ``project``.
        """
        if not registry.project:
            raise RegistryConfigError(RegistryType.GITLAB.value, MISSING_PROJECT)
        super().__init__(registry, http=http, settings=settings, lister=lister)
        self._api_host = normalize_host(registry.host)
        self.project = registry.project.lstrip("/")
        self._project_id: str | None = None
        self._project_id_lock = asyncio.Lock()

    @property
    def api_url(self) -> str:
        return f"https://{self._api_host}/api/v4"

    def _headers(self) -> dict[str, str]:
        return get_gitlab_headers(self.token)

    def package_name(self, artifact_id: str) -> str:
        name = parse_artifact_id(artifact_id).name
        prefix = self.registry.prefix
        return f"{prefix}-{name}" if prefix else name

    def _package_file_url(self, project_id: str, package: str, version: str) -> str:
        return (
            f"{self.api_url}/projects/{project_id}/packages/generic/"
            f"{quote(package, safe='')}/{quote(version, safe='')}/{ARTIFACT_FILE_NAME}"
        )

    async def _get_project_id(self) -> str:
        """Numeric project id, looked up once per client.

        Raises:
            ArtifactNotFoundError: Unknown project.
            AuthenticationError: Project not visible with the configured token.
            ManifestValidationError: Malformed project body.
        """
        async with self._project_id_lock:
            if self._project_id is None:
                url = f"{self.api_url}/projects/{quote(self.project, safe='')}"
                response = await self._http.get(url, headers=self._headers())
                raise_for_registry_status(
                    response,
                    self._api_host,
                    "Failed to get project info",
                    artifact=self.project,
                )
                try:
                    project = GitLabProject.model_validate(response.json())
                except (ValueError, ValidationError) as e:
                    raise ManifestValidationError(
                        self._api_host, f"Invalid project info for {self.project}: {e}"
                    ) from e
                self._project_id = str(project.id)
                logger.debug(
                    "gitlab_project_resolved",
                    host=self._api_host,
                    project=self.project,
                    project_id=self._project_id,
                )
            return self._project_id

    async def _list_packages(self, artifact_id: str) -> list[GitLabPackage]:
        """Generic packages for an artifact, newest first.

        Every page is read, following ``Link: rel="next"`` or
        ``X-Next-Page``. GitLab's ``package_name`` filter is a partial
        match, so results are narrowed to the exact package name.
        """
        project_id = await self._get_project_id()
        package = self.package_name(artifact_id)
        url = f"{self.api_url}/projects/{project_id}/packages"
        params: dict[str, str | int] | None = {
            "package_type": "generic",
            "package_name": package,
            "order_by": "created_at",
            "sort": "desc",
            "per_page": PACKAGES_PER_PAGE,
        }

        packages: list[GitLabPackage] = []
        while True:
            response = await self._http.get(url, params=params, headers=self._headers())
            if response.status_code == 404:
                return []
            raise_for_registry_status(response, self._api_host, "Failed to list packages")
            packages.extend(
                p for p in _PACKAGE_LIST.validate_python(response.json()) if p.name == package
            )

            next_link = response.links.get("next", {}).get("url")
            next_page = response.headers.get("x-next-page", "").strip()
            if next_link:
                url, params = urljoin(url, next_link), None
            elif next_page and params is not None:
                params = {**params, "page": next_page}
            else:
                break

        packages.sort(key=lambda p: p.created_at, reverse=True)
        return packages

    async def _versions(self, artifact_id: str) -> list[str]:
        packages = await self._list_packages(artifact_id)
        return sort_versions_desc([p.version for p in packages])

    async def download(
        self,
        artifact_id: str,
        version: str | None,
        target_dir: Path | str,
        *,
        expected_integrity: str | None = None,
    ) -> DownloadResult:
        with self._span("download", artifact_id) as span:
            try:
                resolved_version = version
                if resolved_version is None:
                    versions = await self._versions(artifact_id)
                    if not versions:
                        return DownloadResult.failure(
                            f"No versions found for artifact: {artifact_id}",
                            ArtifactNotFoundError.code,
                        )
                    resolved_version = versions[0]
                span.set_attribute("grekt.artifact.version", resolved_version)

                project_id = await self._get_project_id()
                url = self._package_file_url(
                    project_id, self.package_name(artifact_id), resolved_version
                )
                installed = await self._install_from_url(
                    url,
                    target_dir,
                    headers=self._headers(),
                    artifact=artifact_id,
                    version=resolved_version,
                    expected_integrity=expected_integrity,
                )
            except Exception as e:
                self._log_failure("download", artifact_id, e)
                return result_from_error(e, context="Download failed")

            self._log_downloaded(artifact_id, resolved_version, installed)
            return DownloadResult(
                success=True,
                version=resolved_version,
                resolved=url,
                integrity=installed.integrity,
                file_hashes=installed.file_hashes,
            )

    async def publish(
        self,
        artifact_id: str,
        version: str,
        tarball_path: Path | str,
    ) -> PublishResult:
        """Upload ``tarball_path`` as ``artifact.tar.gz`` of a new package version."""
        with self._span("publish", artifact_id):
            try:
                if not self.token:
                    raise AuthenticationError(self._api_host, MISSING_TOKEN)
                if not is_valid_semver(version):
                    raise InvalidVersionError(version)
                if version in await self._versions(artifact_id):
                    raise ImmutabilityViolationError(
                        parse_artifact_id(artifact_id).artifact_id, version
                    )

                project_id = await self._get_project_id()
                url = self._package_file_url(project_id, self.package_name(artifact_id), version)
                body = await asyncio.to_thread(Path(tarball_path).read_bytes)
                response = await self._http.put(
                    url,
                    content=body,
                    headers={**self._headers(), "Content-Type": "application/gzip"},
                )
                if not response.is_success:
                    reason = (
                        f"Upload failed: {response.status_code} {response.reason_phrase}"
                        f" - {response.text}"
                    )
                    if response.status_code in (401, 403):
                        raise AuthenticationError(self._api_host, reason)
                    raise RegistryUnavailableError(self._api_host, reason)
            except Exception as e:
                self._log_failure("publish", artifact_id, e)
                return result_from_error(e, PublishResult)

            logger.info(
                "artifact_published",
                registry_type=self.registry_type.value,
                host=self._api_host,
                artifact_id=artifact_id,
                version=version,
                size_bytes=len(body),
            )
            return PublishResult(success=True, url=url)

    async def get_latest_version(self, artifact_id: str) -> str | None:
        versions = await self.list_versions(artifact_id)
        return versions[0] if versions else None

    async def version_exists(self, artifact_id: str, version: str) -> bool:
        return version in await self.list_versions(artifact_id)

    async def list_versions(self, artifact_id: str) -> list[str]:
        try:
            return await self._versions(artifact_id)
        except Exception as e:
            self._log_failure("list_versions", artifact_id, e)
            return []

    async def get_artifact_info(self, artifact_id: str) -> ArtifactInfo | None:
        try:
            packages = await self._list_packages(artifact_id)
        except Exception as e:
            self._log_failure("get_artifact_info", artifact_id, e)
            return None

        published = {p.version: p.created_at for p in packages if is_valid_semver(p.version)}
        if not published:
            return None

        versions = sort_versions_desc(list(published))
        created = sorted(published.values())
        return ArtifactInfo(
            artifact_id=parse_artifact_id(artifact_id).artifact_id,
            latest_version=versions[0],
            versions=[VersionInfo(version=v, published_at=published[v]) for v in versions],
            created_at=created[0],
            updated_at=created[-1],
        )


__all__ = ["GitLabPackage", "GitLabRegistryClient", "normalize_host"]
