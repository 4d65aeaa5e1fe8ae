"""Default registry client (registry.grekt.com).

Plain HTTPS layout per artifact::

    https://<host>/@scope/name/metadata.json
    https://<host>/@scope/name/<version>.tar.gz

"Latest" is the highest valid semver among the metadata's ``versions``,
not the metadata ``latest`` field, which may lag behind a publish.
"""

from __future__ import annotations

from pathlib import Path

import httpx
import structlog

from grekt_core.errors import ArtifactNotFoundError, UnsupportedOperationError
from grekt_core.registry.base import (
    RegistryClient,
    raise_for_registry_status,
    result_from_error,
)
from grekt_core.registry.resolver import parse_artifact_id
from grekt_core.schemas.registry import (
    ArtifactInfo,
    ArtifactMetadata,
    DownloadResult,
    PublishResult,
    RegistryType,
    VersionInfo,
)
from grekt_core.version import get_highest_version, is_valid_semver, sort_versions_desc

logger = structlog.get_logger(__name__)

PUBLISH_REQUIRES_LOGIN = (
    "Publishing to default registry requires 'grekt login'. "
    "Use --s3 or configure a GitLab registry."
)


class DefaultRegistryClient(RegistryClient):
    """Client for the public default registry."""

    registry_type = RegistryType.DEFAULT

    @property
    def base_url(self) -> str:
        return f"https://{self.host}"

    def _artifact_url(self, artifact_id: str, path: str) -> str:
        canonical = parse_artifact_id(artifact_id).artifact_id
        return f"{self.base_url}/{canonical}/{path}"

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _fetch_metadata(self, artifact_id: str) -> ArtifactMetadata | None:
        """Fetch ``metadata.json``; None when the artifact is unknown (404).

        Raises:
            AuthenticationError, RegistryUnavailableError: Other failures.
            ValidationError, JSONDecodeError: Malformed document.
        """
        url = self._artifact_url(artifact_id, "metadata.json")
        response = await self._http.get(url, headers=self._headers())
        if response.status_code == 404:
            return None
        raise_for_registry_status(response, self.host, "Failed to fetch metadata")
        return ArtifactMetadata.model_validate(response.json())

    @staticmethod
    def _metadata_versions(metadata: ArtifactMetadata) -> list[str]:
        return sort_versions_desc(metadata.versions or [metadata.latest])

    @classmethod
    def _latest(cls, metadata: ArtifactMetadata) -> str | None:
        highest = get_highest_version(metadata.versions or [])
        if highest is not None:
            return highest
        return metadata.latest if is_valid_semver(metadata.latest) else None

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
                metadata = await self._fetch_metadata(artifact_id)
                if metadata is None:
                    raise ArtifactNotFoundError(artifact_id)

                resolved_version = version or self._latest(metadata)
                if resolved_version is None:
                    raise ArtifactNotFoundError(artifact_id, "latest")
                span.set_attribute("grekt.artifact.version", resolved_version)

                tarball_url = self._artifact_url(artifact_id, f"{resolved_version}.tar.gz")
                installed = await self._install_from_url(
                    tarball_url,
                    target_dir,
                    headers=self._headers(),
                    artifact=artifact_id,
                    version=resolved_version,
                    expected_integrity=expected_integrity,
                )
            except Exception as e:
                self._log_failure("download", artifact_id, e)
                return result_from_error(e, context="Download failed")

            deprecation_message = metadata.deprecated.get(resolved_version)
            if deprecation_message:
                logger.warning(
                    "artifact_version_deprecated",
                    artifact_id=artifact_id,
                    version=resolved_version,
                    message=deprecation_message,
                )

            self._log_downloaded(artifact_id, resolved_version, installed)
            return DownloadResult(
                success=True,
                version=resolved_version,
                resolved=tarball_url,
                integrity=installed.integrity,
                file_hashes=installed.file_hashes,
                deprecation_message=deprecation_message,
            )

    async def publish(
        self,
        artifact_id: str,
        version: str,  # noqa: ARG002
        tarball_path: Path | str,  # noqa: ARG002
    ) -> PublishResult:
        # Publishing goes through the authenticated API owned by the CLI login flow
        error = UnsupportedOperationError("publish", PUBLISH_REQUIRES_LOGIN)
        self._log_failure("publish", artifact_id, error)
        return result_from_error(error, PublishResult)

    async def get_latest_version(self, artifact_id: str) -> str | None:
        try:
            metadata = await self._fetch_metadata(artifact_id)
        except Exception as e:
            self._log_failure("get_latest_version", artifact_id, e)
            return None
        return self._latest(metadata) if metadata is not None else None

    async def version_exists(self, artifact_id: str, version: str) -> bool:
        try:
            url = self._artifact_url(artifact_id, f"{version}.tar.gz")
            response = await self._http.head(url, headers=self._headers(), follow_redirects=True)
        except (httpx.HTTPError, ValueError) as e:
            self._log_failure("version_exists", artifact_id, e)
            return False
        return response.is_success

    async def list_versions(self, artifact_id: str) -> list[str]:
        try:
            metadata = await self._fetch_metadata(artifact_id)
        except Exception as e:
            self._log_failure("list_versions", artifact_id, e)
            return []
        return self._metadata_versions(metadata) if metadata is not None else []

    async def get_artifact_info(self, artifact_id: str) -> ArtifactInfo | None:
        try:
            metadata = await self._fetch_metadata(artifact_id)
        except Exception as e:
            self._log_failure("get_artifact_info", artifact_id, e)
            return None
        if metadata is None:
            return None

        versions = self._metadata_versions(metadata)
        latest = self._latest(metadata)
        if latest is None:
            return None

        return ArtifactInfo(
            artifact_id=parse_artifact_id(artifact_id).artifact_id,
            latest_version=latest,
            versions=[
                VersionInfo(version=v, deprecated=metadata.deprecated.get(v)) for v in versions
            ],
            created_at=metadata.created_at,
            updated_at=metadata.updated_at,
        )


__all__ = ["DefaultRegistryClient", "PUBLISH_REQUIRES_LOGIN"]
