"""OCI Distribution Spec client (pull operations only).

Native async implementation of the subset of the distribution spec needed
to download grekt artifacts from OCI registries such as GHCR. Pushing is
delegated to the ``oras`` CLI by the GitHub registry client.

Endpoints:
    GET /v2/                          ping
    GET /v2/<name>/manifests/<ref>    manifest (OCI or Docker v2)
    GET /v2/<name>/blobs/<digest>     blob, following redirects to storage
    GET /v2/<name>/tags/list          tags (404 = no tags)

Every request goes through ``_authenticated_request``, which performs the
bearer challenge/exchange transparently on ``401``.

Operations never raise for registry or transport failures; they return
result models whose ``error_code`` tells NOT_FOUND, AUTH_REQUIRED,
NETWORK_FAILURE and VALIDATION_FAILURE apart. Cancellation (including
``asyncio.timeout``) propagates normally.

Example:
    >>> async with OciClient("ghcr.io", token=pat) as oci:
    ...     result = await oci.pull_artifact_layer("myorg/tools", "1.0.0")
    ...     if result.success:
    ...         Path("artifact.tar.gz").write_bytes(result.data)

See Also:
    - https://github.com/opencontainers/distribution-spec/blob/main/spec.md
"""

from __future__ import annotations

import hashlib
import json
from typing import Any
from urllib.parse import urljoin

import httpx
import structlog
from pydantic import ValidationError

from grekt_core.constants import USER_AGENT
from grekt_core.errors import ErrorCode, error_code_for_status
from grekt_core.oci.auth import (
    BearerTokenCache,
    build_basic_auth,
    parse_www_authenticate,
)
from grekt_core.schemas.oci import (
    MANIFEST_ACCEPT,
    BearerChallenge,
    BlobPullResult,
    ManifestPullResult,
    OciManifest,
    OciTagsList,
    TagListResult,
)
from grekt_core.telemetry import get_tracer

logger = structlog.get_logger(__name__)


def _describe(response: httpx.Response) -> str:
    return f"{response.status_code} {response.reason_phrase}".strip()


class OciClient:
    """Pull client for one OCI registry.

    One instance per logical registry connection: the bearer token cache
    lives on the instance and is shared by all its requests.

    Attributes:
        host: Registry host (e.g., ``ghcr.io``).
    """

    def __init__(
        self,
        host: str,
        token: str | None = None,
        *,
        http: httpx.AsyncClient | None = None,
        scheme: str = "https",
    ) -> None:
        """Initialize OciClient.

        Args:
            host: Registry host without scheme.
            token: Optional PAT/bearer token. Without one, pulls are anonymous
                and 401 challenges are returned unmodified.
            http: Shared async HTTP client; one is created and owned if None.
            scheme: URL scheme, ``http`` only for local test registries.
        """
        self.host = host
        self._token = token
        self._scheme = scheme
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient()
        self._token_cache = BearerTokenCache()
        self._tracer = get_tracer()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> OciClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def token_cache(self) -> BearerTokenCache:
        return self._token_cache

    # -------------------------------------------------------------------------
    # Request plumbing
    # -------------------------------------------------------------------------

    def _headers(self, accept: str | None = None) -> dict[str, str]:
        headers = {"User-Agent": USER_AGENT}
        if accept:
            headers["Accept"] = accept
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _build_url(self, name: str, path: str) -> str:
        return f"{self._scheme}://{self.host}/v2/{name}{path}"

    async def _exchange_token(self, challenge: BearerChallenge) -> str | None:
        """Exchange the configured token at the challenge realm."""
        if not self._token:
            return None

        try:
            response = await self._http.get(
                challenge.realm,
                params={"service": challenge.service, "scope": challenge.scope},
                headers={
                    "User-Agent": USER_AGENT,
                    "Authorization": build_basic_auth(self._token),
                },
            )
        except httpx.InvalidURL as e:
            logger.warning(
                "oci_token_exchange_failed",
                registry=self.host,
                realm=challenge.realm,
                error=str(e),
            )
            return None

        if not response.is_success:
            logger.warning(
                "oci_token_exchange_failed",
                registry=self.host,
                service=challenge.service,
                scope=challenge.scope,
                status_code=response.status_code,
            )
            return None

        try:
            data: Any = response.json()
        except ValueError:
            logger.warning("oci_token_exchange_invalid_body", registry=self.host)
            return None

        if not isinstance(data, dict):
            return None
        token = data.get("token") or data.get("access_token")
        if not isinstance(token, str) or not token:
            return None

        logger.debug(
            "oci_token_exchanged",
            registry=self.host,
            service=challenge.service,
            scope=challenge.scope,
        )
        return token

    async def _authenticated_request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        follow_redirects: bool = False,
    ) -> httpx.Response:
        """Send a request, answering a Bearer challenge with one retry.

        The original response is returned unmodified when there is no token,
        no parseable challenge, or the exchange fails.
        """
        response = await self._http.request(
            method, url, headers=headers, follow_redirects=follow_redirects
        )
        if response.status_code != 401 or not self._token:
            return response

        challenge = parse_www_authenticate(response.headers.get("www-authenticate"))
        if challenge is None:
            return response

        exchanged = await self._token_cache.get_or_exchange(
            challenge.cache_key,
            lambda: self._exchange_token(challenge),
        )
        if not exchanged:
            return response

        retry_headers = {**headers, "Authorization": f"Bearer {exchanged}"}
        return await self._http.request(
            method, url, headers=retry_headers, follow_redirects=follow_redirects
        )

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def ping(self) -> bool:
        """Check that ``/v2/`` answers; a 401 still proves a registry is there."""
        url = f"{self._scheme}://{self.host}/v2/"
        try:
            response = await self._http.get(url, headers=self._headers())
        except httpx.HTTPError as e:
            logger.debug("oci_ping_failed", registry=self.host, error=str(e))
            return False
        return response.is_success or response.status_code == 401

    async def pull_manifest(self, name: str, reference: str) -> ManifestPullResult:
        """Pull the manifest for a tag or digest.

        Args:
            name: Repository name (e.g., ``myorg/my-artifact``).
            reference: Tag or digest.
        """
        with self._tracer.start_as_current_span("grekt.oci.pull_manifest") as span:
            span.set_attribute("grekt.oci.registry", self.host)
            span.set_attribute("grekt.oci.repository", name)
            span.set_attribute("grekt.oci.reference", reference)

            url = self._build_url(name, f"/manifests/{reference}")
            try:
                response = await self._authenticated_request(
                    "GET", url, headers=self._headers(MANIFEST_ACCEPT)
                )
            except httpx.HTTPError as e:
                return ManifestPullResult(
                    success=False,
                    error=f"Failed to pull manifest: {e}",
                    error_code=ErrorCode.NETWORK_FAILURE,
                )

            if response.status_code == 404:
                return ManifestPullResult(
                    success=False,
                    error=f"Manifest not found: {name}:{reference}",
                    error_code=ErrorCode.NOT_FOUND,
                )
            if not response.is_success:
                return ManifestPullResult(
                    success=False,
                    error=f"Failed to pull manifest: {_describe(response)}",
                    error_code=error_code_for_status(response.status_code),
                )

            try:
                manifest = OciManifest.model_validate(response.json())
            except (json.JSONDecodeError, ValidationError) as e:
                return ManifestPullResult(
                    success=False,
                    error=f"Invalid manifest for {name}:{reference}: {e}",
                    error_code=ErrorCode.VALIDATION_FAILURE,
                )

            logger.debug(
                "oci_manifest_pulled",
                registry=self.host,
                repository=name,
                reference=reference,
                layers=len(manifest.layers),
            )
            return ManifestPullResult(success=True, manifest=manifest)

    async def pull_blob(
        self,
        name: str,
        digest: str,
        *,
        verify_digest: bool = False,
    ) -> BlobPullResult:
        """Pull a blob by digest, following redirects to blob storage.

        Args:
            name: Repository name.
            digest: Content address (``sha256:<hex>``).
            verify_digest: Recompute the sha256 of the body and compare.
        """
        with self._tracer.start_as_current_span("grekt.oci.pull_blob") as span:
            span.set_attribute("grekt.oci.registry", self.host)
            span.set_attribute("grekt.oci.repository", name)
            span.set_attribute("grekt.oci.digest", digest)

            url = self._build_url(name, f"/blobs/{digest}")
            try:
                response = await self._authenticated_request(
                    "GET", url, headers=self._headers(), follow_redirects=True
                )
            except httpx.HTTPError as e:
                return BlobPullResult(
                    success=False,
                    error=f"Failed to pull blob: {e}",
                    error_code=ErrorCode.NETWORK_FAILURE,
                )

            if response.status_code == 404:
                return BlobPullResult(
                    success=False,
                    error=f"Blob not found: {digest}",
                    error_code=ErrorCode.NOT_FOUND,
                )
            if not response.is_success:
                return BlobPullResult(
                    success=False,
                    error=f"Failed to pull blob: {_describe(response)}",
                    error_code=error_code_for_status(response.status_code),
                )

            data = response.content
            if verify_digest and digest.startswith("sha256:"):
                actual = f"sha256:{hashlib.sha256(data).hexdigest()}"
                if actual != digest:
                    logger.warning(
                        "oci_blob_digest_mismatch",
                        registry=self.host,
                        repository=name,
                        expected=digest,
                        actual=actual,
                    )
                    return BlobPullResult(
                        success=False,
                        error=f"Blob digest mismatch: expected {digest}, got {actual}",
                        error_code=ErrorCode.VALIDATION_FAILURE,
                    )

            span.set_attribute("grekt.oci.size_bytes", len(data))
            return BlobPullResult(success=True, data=data)

    async def list_tags(self, name: str) -> TagListResult:
        """List all tags of a repository, following ``Link: rel="next"`` pages.

        An unknown repository (404) has no tags; that is not an error.
        """
        with self._tracer.start_as_current_span("grekt.oci.list_tags") as span:
            span.set_attribute("grekt.oci.registry", self.host)
            span.set_attribute("grekt.oci.repository", name)

            url: str | None = self._build_url(name, "/tags/list")
            tags: list[str] = []
            while url is not None:
                try:
                    response = await self._authenticated_request(
                        "GET", url, headers=self._headers()
                    )
                except httpx.HTTPError as e:
                    return TagListResult(
                        success=False,
                        error=f"Failed to list tags: {e}",
                        error_code=ErrorCode.NETWORK_FAILURE,
                    )

                if response.status_code == 404:
                    return TagListResult(success=True, tags=tags)
                if not response.is_success:
                    return TagListResult(
                        success=False,
                        error=f"Failed to list tags: {_describe(response)}",
                        error_code=error_code_for_status(response.status_code),
                    )

                try:
                    page = OciTagsList.model_validate(response.json())
                except (json.JSONDecodeError, ValidationError) as e:
                    return TagListResult(
                        success=False,
                        error=f"Invalid tag list for {name}: {e}",
                        error_code=ErrorCode.VALIDATION_FAILURE,
                    )
                tags.extend(page.tags or [])

                next_link = response.links.get("next", {}).get("url")
                url = urljoin(url, next_link) if next_link else None

            span.set_attribute("grekt.oci.tag_count", len(tags))
            return TagListResult(success=True, tags=tags)

    async def tag_exists(self, name: str, tag: str) -> bool:
        result = await self.pull_manifest(name, tag)
        return result.success

    async def pull_artifact_layer(self, name: str, tag: str) -> BlobPullResult:
        """Pull the artifact tarball for a tag.

        Pulls the manifest, picks the first layer with the grekt layer media
        type or the generic OCI tar+gzip type, then pulls and verifies that
        blob.
        """
        manifest_result = await self.pull_manifest(name, tag)
        if not manifest_result.success or manifest_result.manifest is None:
            return BlobPullResult(
                success=False,
                error=manifest_result.error or "Failed to pull manifest",
                error_code=manifest_result.error_code or ErrorCode.UNKNOWN,
            )

        layer = manifest_result.manifest.find_artifact_layer()
        if layer is None:
            return BlobPullResult(
                success=False,
                error="No artifact layer found in manifest",
                error_code=ErrorCode.VALIDATION_FAILURE,
            )

        return await self.pull_blob(name, layer.digest, verify_digest=True)


__all__ = ["OciClient"]
