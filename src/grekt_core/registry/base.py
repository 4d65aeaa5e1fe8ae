"""Registry client abstraction.

Every backend implements the same six async operations. Public operations
never raise: ``download`` and ``publish`` return discriminated results, and
the lookups fall back to an empty answer (None, False or []) after logging
the failure. Internally, variants raise GrektError subclasses and convert
them at the edge with ``result_from_error``.

Download Pipeline (shared):
    fetch -> unique temp file -> security validator -> extraction (strip 1)
    -> integrity hashes of the extracted directory -> DownloadResult

Validation, extraction and hashing are blocking and run in a worker thread
so they never stall other network-bound downloads on the event loop.

Example:
    >>> async with create_registry_client(registry) as client:
    ...     result = await client.download("@scope/name", None, Path(".grekt/artifacts/@scope/name"))
    ...     if not result.success:
    ...         print(result.error_code, result.error)
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar, overload

import httpx
import structlog

from grekt_core.config import HttpSettings, create_http_client
from grekt_core.errors import (
    ArtifactNotFoundError,
    AuthenticationError,
    RegistryUnavailableError,
    UnsafeTarballError,
    error_code_for,
)
from grekt_core.registry.download import (
    InstalledTree,
    install_tarball,
    stream_to_file,
    temporary_tarball,
)
from grekt_core.schemas.registry import (
    ArtifactInfo,
    DownloadResult,
    PublishResult,
    RegistryType,
    ResolvedRegistry,
)
from grekt_core.telemetry import get_tracer

if TYPE_CHECKING:
    from collections.abc import Mapping
    from contextlib import AbstractContextManager

    from opentelemetry.trace import Span

    from grekt_core.archive import ArchiveLister

logger = structlog.get_logger(__name__)


@overload
def result_from_error(
    error: BaseException,
    result_type: type[DownloadResult] = ...,
    *,
    context: str | None = None,
) -> DownloadResult: ...


@overload
def result_from_error(
    error: BaseException,
    result_type: type[PublishResult],
    *,
    context: str | None = None,
) -> PublishResult: ...


def result_from_error(
    error: BaseException,
    result_type: type[DownloadResult] | type[PublishResult] = DownloadResult,
    *,
    context: str | None = None,
) -> DownloadResult | PublishResult:
    """Convert an exception into a failed result.

    Args:
        error: Exception caught at a public operation boundary.
        result_type: DownloadResult or PublishResult.
        context: Optional message prefix (e.g., ``"Download failed"``).

    Examples:
        >>> result_from_error(ArtifactNotFoundError("@s/n", "1.0.0")).error_code
        <ErrorCode.NOT_FOUND: 'not_found'>
    """
    message = f"{context}: {error}" if context else str(error)
    code = error_code_for(error)
    if result_type is PublishResult:
        return PublishResult.failure(message, code)
    violations = tuple(error.violations) if isinstance(error, UnsafeTarballError) else ()
    return DownloadResult.failure(message, code, violations=violations)


def raise_for_registry_status(
    response: httpx.Response,
    registry: str,
    action: str,
    *,
    artifact: str | None = None,
    reference: str | None = None,
) -> None:
    """Raise the GrektError matching an unsuccessful response.

    Raises:
        ArtifactNotFoundError: 404.
        AuthenticationError: 401 or 403.
        RegistryUnavailableError: Any other non-2xx status.
    """
    if response.is_success:
        return
    reason = f"{action}: {response.status_code} {response.reason_phrase}".rstrip()
    if response.status_code == 404:
        raise ArtifactNotFoundError(artifact or str(response.url), reference)
    if response.status_code in (401, 403):
        raise AuthenticationError(registry, reason)
    raise RegistryUnavailableError(registry, reason)


class RegistryClient(ABC):
    """Shared capability set of every registry backend.

    Each instance owns its connection state (HTTP client, caches) and
    represents one logical registry connection. Use as an async context
    manager, or call ``close()``.

    Attributes:
        registry: The resolved registry this client talks to.
    """

    registry_type: ClassVar[RegistryType]

    def __init__(
        self,
        registry: ResolvedRegistry,
        *,
        http: httpx.AsyncClient | None = None,
        settings: HttpSettings | None = None,
        lister: ArchiveLister | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            registry: Resolved registry configuration.
            http: Shared HTTP client; one is created (and closed) if None.
            settings: Settings for the created HTTP client.
            lister: Archive lister for the security validator.
        """
        self.registry = registry
        self._owns_http = http is None
        self._http = http or create_http_client(settings)
        self._lister = lister
        self._tracer = get_tracer()

    @property
    def host(self) -> str:
        return self.registry.host

    @property
    def token(self) -> str | None:
        return self.registry.token

    async def close(self) -> None:
        """Release the HTTP client if this instance created it."""
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> RegistryClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Capability set
    # -------------------------------------------------------------------------

    @abstractmethod
    async def download(
        self,
        artifact_id: str,
        version: str | None,
        target_dir: Path | str,
        *,
        expected_integrity: str | None = None,
    ) -> DownloadResult:
        """Download and extract ``artifact_id`` into ``target_dir``.

        Args:
            artifact_id: ``@scope/name``.
            version: Exact version, or None for the highest published one.
            target_dir: Extraction directory (created if missing).
            expected_integrity: Digest the extracted tree must hash to.
        """

    @abstractmethod
    async def publish(
        self,
        artifact_id: str,
        version: str,
        tarball_path: Path | str,
    ) -> PublishResult:
        """Publish a packed tarball as ``version``; existing versions are refused."""

    @abstractmethod
    async def get_latest_version(self, artifact_id: str) -> str | None: ...

    @abstractmethod
    async def version_exists(self, artifact_id: str, version: str) -> bool: ...

    @abstractmethod
    async def list_versions(self, artifact_id: str) -> list[str]:
        """Published semver versions, highest first; other tags dropped."""

    @abstractmethod
    async def get_artifact_info(self, artifact_id: str) -> ArtifactInfo | None: ...

    # -------------------------------------------------------------------------
    # Shared pipeline
    # -------------------------------------------------------------------------

    def _span(self, operation: str, artifact_id: str) -> AbstractContextManager[Span]:
        return self._tracer.start_as_current_span(
            f"grekt.registry.{operation}",
            attributes={
                "grekt.registry.type": self.registry_type.value,
                "grekt.registry.host": self.host,
                "grekt.artifact.id": artifact_id,
            },
        )

    async def _install(
        self,
        tarball: Path,
        target_dir: Path | str,
        expected_integrity: str | None,
    ) -> InstalledTree:
        return await asyncio.to_thread(
            install_tarball,
            tarball,
            target_dir,
            expected_integrity=expected_integrity,
            lister=self._lister,
        )

    async def _install_from_url(
        self,
        url: str,
        target_dir: Path | str,
        *,
        headers: Mapping[str, str],
        artifact: str,
        version: str,
        expected_integrity: str | None = None,
    ) -> InstalledTree:
        """Stream a tarball to a temp file and install it.

        Raises:
            ArtifactNotFoundError, AuthenticationError, RegistryUnavailableError:
                On an unsuccessful download response.
            UnsafeTarballError: When the validator rejects the archive.
            IntegrityMismatchError: When ``expected_integrity`` differs.
        """
        with temporary_tarball() as tarball:
            response = await stream_to_file(self._http, url, tarball, headers=headers)
            raise_for_registry_status(
                response,
                self.host,
                "Failed to download tarball",
                artifact=artifact,
                reference=version,
            )
            return await self._install(tarball, target_dir, expected_integrity)

    async def _install_from_bytes(
        self,
        data: bytes,
        target_dir: Path | str,
        expected_integrity: str | None = None,
    ) -> InstalledTree:
        with temporary_tarball() as tarball:
            await asyncio.to_thread(tarball.write_bytes, data)
            return await self._install(tarball, target_dir, expected_integrity)

    def _log_downloaded(self, artifact_id: str, version: str, installed: InstalledTree) -> None:
        logger.info(
            "artifact_downloaded",
            registry_type=self.registry_type.value,
            host=self.host,
            artifact_id=artifact_id,
            version=version,
            files=len(installed.file_hashes),
            integrity=installed.integrity,
        )

    def _log_failure(self, operation: str, artifact_id: str, error: BaseException) -> None:
        logger.warning(
            "registry_operation_failed",
            operation=operation,
            registry_type=self.registry_type.value,
            host=self.host,
            artifact_id=artifact_id,
            error=str(error),
            error_type=type(error).__name__,
        )


__all__ = [
    "RegistryClient",
    "raise_for_registry_status",
    "result_from_error",
]

