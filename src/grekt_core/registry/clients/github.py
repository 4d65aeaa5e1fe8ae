"""GitHub Container Registry (GHCR) client.

Pull goes through the native OCI client (manifest -> artifact layer ->
blob). Push shells out to the ``oras`` CLI.

Repository naming::

    <namespace>/<name>             e.g. myorg/tools
    <namespace>/<prefix>-<name>    with ``prefix: agents`` -> myorg/agents-tools

Resolved references have the form ``oci://ghcr.io/myorg/tools:1.0.0``.

See Also:
    - https://docs.github.com/en/packages/working-with-a-github-packages-registry/working-with-the-container-registry
    - https://oras.land/
"""

from __future__ import annotations

import asyncio
import shutil
import subprocess
from pathlib import Path

import httpx
import structlog

from grekt_core.archive import ArchiveLister
from grekt_core.config import HttpSettings
from grekt_core.errors import (
    ArtifactNotFoundError,
    AuthenticationError,
    ImmutabilityViolationError,
    InvalidVersionError,
    RegistryConfigError,
    RegistryUnavailableError,
    UnsupportedOperationError,
)
from grekt_core.oci import OciClient
from grekt_core.registry.base import RegistryClient, result_from_error
from grekt_core.registry.resolver import parse_artifact_id
from grekt_core.schemas.oci import GREKT_LAYER_MEDIA_TYPE
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

ORAS_BINARY = "oras"
ORAS_USERNAME = "USERNAME"
"""GHCR ignores the username for PAT logins."""

ORAS_PUSH_TIMEOUT_SECONDS = 300

MISSING_PROJECT = (
    "GitHub registry requires 'project' field in config "
    "(your GHCR namespace, e.g., 'myorg' for ghcr.io/myorg/*)"
)
MISSING_TOKEN = (
    "GitHub registry requires authentication. "
    "Set token in .grekt/config.yaml or GITHUB_TOKEN env var."
)
MISSING_ORAS = "Publishing to GitHub registry requires 'oras' CLI. Install from https://oras.land/"


def check_oras_available() -> bool:
    """Check that the ``oras`` CLI is on PATH and runs."""
    if shutil.which(ORAS_BINARY) is None:
        return False
    try:
        subprocess.run(
            [ORAS_BINARY, "version"],
            capture_output=True,
            check=True,
            timeout=30,
        )
    except (OSError, subprocess.SubprocessError):
        return False
    return True


class GitHubRegistryClient(RegistryClient):
    """Client for OCI artifacts in GitHub Container Registry."""

    registry_type = RegistryType.GITHUB

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
            RegistryConfigError: If the registry has no ``project`` namespace.
        """
        if not registry.project:
            raise RegistryConfigError(RegistryType.GITHUB.value, MISSING_PROJECT)
        super().__init__(registry, http=http, settings=settings, lister=lister)
        self.namespace = registry.project
        self.oci = OciClient(self.host, self.token, http=self._http)

    def repository_name(self, artifact_id: str) -> str:
        name = parse_artifact_id(artifact_id).name
        prefix = self.registry.prefix
        return f"{self.namespace}/{prefix}-{name}" if prefix else f"{self.namespace}/{name}"

    async def _versions(self, artifact_id: str) -> list[str]:
        result = await self.oci.list_tags(self.repository_name(artifact_id))
        if not result.success:
            raise RegistryUnavailableError(self.host, result.error or "Failed to list tags")
        return sort_versions_desc([tag for tag in result.tags if is_valid_semver(tag)])

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
                repository = self.repository_name(artifact_id)
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

                pulled = await self.oci.pull_artifact_layer(repository, resolved_version)
                if not pulled.success or pulled.data is None:
                    return DownloadResult.failure(
                        pulled.error or "Failed to pull artifact",
                        pulled.error_code or ArtifactNotFoundError.code,
                    )

                installed = await self._install_from_bytes(
                    pulled.data, target_dir, expected_integrity
                )
            except Exception as e:
                self._log_failure("download", artifact_id, e)
                return result_from_error(e, context="Download failed")

            self._log_downloaded(artifact_id, resolved_version, installed)
            return DownloadResult(
                success=True,
                version=resolved_version,
                resolved=f"oci://{self.host}/{repository}:{resolved_version}",
                integrity=installed.integrity,
                file_hashes=installed.file_hashes,
            )

    async def _oras_push(self, reference: str, tarball_path: Path) -> None:
        """Run ``oras push``; the token is passed on stdin, never in argv.

        Raises:
            RegistryUnavailableError: On a non-zero exit or timeout.
        """
        cmd = [
            ORAS_BINARY,
            "push",
            "--username",
            ORAS_USERNAME,
            "--password-stdin",
            reference,
            f"{tarball_path.name}:{GREKT_LAYER_MEDIA_TYPE}",
        ]
        try:
            await asyncio.to_thread(
                subprocess.run,
                cmd,
                input=self.token,
                capture_output=True,
                text=True,
                check=True,
                timeout=ORAS_PUSH_TIMEOUT_SECONDS,
                cwd=tarball_path.parent,
            )
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            raise RegistryUnavailableError(
                self.host, f"oras exited with code {e.returncode}: {stderr}"
            ) from e
        except subprocess.TimeoutExpired as e:
            raise RegistryUnavailableError(
                self.host, f"oras timed out after {ORAS_PUSH_TIMEOUT_SECONDS} seconds"
            ) from e

    async def publish(
        self,
        artifact_id: str,
        version: str,
        tarball_path: Path | str,
    ) -> PublishResult:
        """Push ``tarball_path`` as the artifact layer of ``<repo>:<version>``."""
        with self._span("publish", artifact_id):
            try:
                if not self.token:
                    raise AuthenticationError(self.host, MISSING_TOKEN)
                if not is_valid_semver(version):
                    raise InvalidVersionError(version)
                if not await asyncio.to_thread(check_oras_available):
                    raise UnsupportedOperationError("publish", MISSING_ORAS)

                repository = self.repository_name(artifact_id)
                if await self.oci.tag_exists(repository, version):
                    raise ImmutabilityViolationError(
                        parse_artifact_id(artifact_id).artifact_id, version
                    )

                reference = f"{self.host}/{repository}:{version}"
                await self._oras_push(reference, Path(tarball_path).resolve())
            except Exception as e:
                self._log_failure("publish", artifact_id, e)
                return result_from_error(e, PublishResult)

            logger.info(
                "artifact_published",
                registry_type=self.registry_type.value,
                host=self.host,
                artifact_id=artifact_id,
                version=version,
                reference=reference,
            )
            return PublishResult(success=True, url=f"oci://{reference}")

    async def get_latest_version(self, artifact_id: str) -> str | None:
        versions = await self.list_versions(artifact_id)
        return versions[0] if versions else None

    async def version_exists(self, artifact_id: str, version: str) -> bool:
        try:
            return await self.oci.tag_exists(self.repository_name(artifact_id), version)
        except Exception as e:
            self._log_failure("version_exists", artifact_id, e)
            return False

    async def list_versions(self, artifact_id: str) -> list[str]:
        try:
            return await self._versions(artifact_id)
        except Exception as e:
            self._log_failure("list_versions", artifact_id, e)
            return []

    async def get_artifact_info(self, artifact_id: str) -> ArtifactInfo | None:
        versions = await self.list_versions(artifact_id)
        if not versions:
            return None
        return ArtifactInfo(
            artifact_id=parse_artifact_id(artifact_id).artifact_id,
            latest_version=versions[0],
            versions=[VersionInfo(version=v) for v in versions],
        )


__all__ = ["GitHubRegistryClient", "check_oras_available"]
