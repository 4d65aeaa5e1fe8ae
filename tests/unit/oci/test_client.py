"""Unit tests for the OCI pull client.

HTTP is served by ``httpx.MockTransport`` handlers; no registry is needed.

Requirements: FR-032 (ping), FR-033 (manifest pull), FR-034 (blob pull),
FR-035 (tag listing), FR-031 (bearer exchange)
"""

from __future__ import annotations

import hashlib
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from grekt_core.errors import ErrorCode
from grekt_core.oci import OciClient
from grekt_core.schemas.oci import GREKT_LAYER_MEDIA_TYPE, MANIFEST_ACCEPT

Handler = Callable[[httpx.Request], httpx.Response]

HOST = "ghcr.io"
REPOSITORY = "myorg/tools"
LAYER_BYTES = b"fake tarball bytes"
LAYER_DIGEST = f"sha256:{hashlib.sha256(LAYER_BYTES).hexdigest()}"
CHALLENGE = f'Bearer realm="https://{HOST}/token",service="{HOST}",scope="repository:{REPOSITORY}:pull"'


def _manifest(layers: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "schemaVersion": 2,
        "mediaType": "application/vnd.oci.image.manifest.v1+json",
        "config": {
            "mediaType": "application/vnd.oci.empty.v1+json",
            "digest": "sha256:" + "0" * 64,
            "size": 2,
        },
        "layers": layers,
    }


ARTIFACT_MANIFEST = _manifest(
    [{"mediaType": GREKT_LAYER_MEDIA_TYPE, "digest": LAYER_DIGEST, "size": len(LAYER_BYTES)}]
)


def _client(handler: Handler, token: str | None = None) -> OciClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OciClient(HOST, token, http=http)


class TestPing:
    """Tests for OciClient.ping (FR-032)."""

    @pytest.mark.requirement("FR-032")
    @pytest.mark.asyncio
    @pytest.mark.parametrize(("status", "expected"), [(200, True), (401, True), (500, False)])
    async def test_status_mapping(self, status: int, expected: bool) -> None:
        client = _client(lambda request: httpx.Response(status))

        assert await client.ping() is expected

    @pytest.mark.requirement("FR-032")
    @pytest.mark.asyncio
    async def test_connection_error_is_false(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        assert await _client(handler).ping() is False


class TestPullManifest:
    """Tests for OciClient.pull_manifest (FR-033)."""

    @pytest.mark.requirement("FR-033")
    @pytest.mark.asyncio
    async def test_success_sends_manifest_accept(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=ARTIFACT_MANIFEST)

        result = await _client(handler).pull_manifest(REPOSITORY, "1.0.0")

        assert result.success is True
        assert result.manifest is not None
        assert result.manifest.layers[0].digest == LAYER_DIGEST
        assert seen[0].url.path == f"/v2/{REPOSITORY}/manifests/1.0.0"
        assert seen[0].headers["accept"] == MANIFEST_ACCEPT

    @pytest.mark.requirement("FR-033")
    @pytest.mark.asyncio
    async def test_not_found(self) -> None:
        result = await _client(lambda r: httpx.Response(404)).pull_manifest(REPOSITORY, "9.9.9")

        assert result.success is False
        assert result.error_code == ErrorCode.NOT_FOUND
        assert result.error == f"Manifest not found: {REPOSITORY}:9.9.9"

    @pytest.mark.requirement("FR-033")
    @pytest.mark.asyncio
    async def test_unauthorized_without_token(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, headers={"WWW-Authenticate": CHALLENGE})

        result = await _client(handler).pull_manifest(REPOSITORY, "1.0.0")

        assert result.success is False
        assert result.error_code == ErrorCode.AUTH_REQUIRED

    @pytest.mark.requirement("FR-033")
    @pytest.mark.asyncio
    async def test_invalid_body_is_validation_failure(self) -> None:
        result = await _client(lambda r: httpx.Response(200, json={"layers": []})).pull_manifest(
            REPOSITORY, "1.0.0"
        )

        assert result.success is False
        assert result.error_code == ErrorCode.VALIDATION_FAILURE

    @pytest.mark.requirement("FR-033")
    @pytest.mark.asyncio
    async def test_network_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        result = await _client(handler).pull_manifest(REPOSITORY, "1.0.0")

        assert result.error_code == ErrorCode.NETWORK_FAILURE
        assert result.error is not None
        assert result.error.startswith("Failed to pull manifest")


class TestBearerExchange:
    """Tests for the 401 challenge/exchange/retry flow (FR-031)."""

    @staticmethod
    def _registry(calls: dict[str, int]) -> Handler:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/token":
                calls["token"] += 1
                assert request.headers["authorization"].startswith("Basic ")
                assert request.url.params["scope"] == f"repository:{REPOSITORY}:pull"
                return httpx.Response(200, json={"token": "scoped"})
            calls["registry"] += 1
            if request.headers.get("authorization") == "Bearer scoped":
                return httpx.Response(200, json=ARTIFACT_MANIFEST)
            return httpx.Response(401, headers={"WWW-Authenticate": CHALLENGE})

        return handler

    @pytest.mark.requirement("FR-031")
    @pytest.mark.asyncio
    async def test_exchanges_once_and_retries(self) -> None:
        calls = {"token": 0, "registry": 0}
        client = _client(self._registry(calls), token="ghp_pat")

        first = await client.pull_manifest(REPOSITORY, "1.0.0")
        second = await client.pull_manifest(REPOSITORY, "1.0.0")

        assert first.success is True
        assert second.success is True
        assert calls["token"] == 1
        assert calls["registry"] == 4
        assert len(client.token_cache) == 1

    @pytest.mark.requirement("FR-031")
    @pytest.mark.asyncio
    async def test_no_retry_without_challenge(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(401)

        result = await _client(handler, token="ghp_pat").pull_manifest(REPOSITORY, "1.0.0")

        assert result.error_code == ErrorCode.AUTH_REQUIRED
        assert calls == 1

    @pytest.mark.requirement("FR-031")
    @pytest.mark.asyncio
    async def test_failed_exchange_returns_original_401(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/token":
                return httpx.Response(403)
            return httpx.Response(401, headers={"WWW-Authenticate": CHALLENGE})

        client = _client(handler, token="ghp_pat")
        result = await client.pull_manifest(REPOSITORY, "1.0.0")

        assert result.error_code == ErrorCode.AUTH_REQUIRED
        assert len(client.token_cache) == 0

    @pytest.mark.requirement("FR-031")
    @pytest.mark.asyncio
    async def test_access_token_field_is_accepted(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/token":
                return httpx.Response(200, json={"access_token": "scoped"})
            if request.headers.get("authorization") == "Bearer scoped":
                return httpx.Response(200, json={"tags": ["1.0.0"]})
            return httpx.Response(401, headers={"WWW-Authenticate": CHALLENGE})

        result = await _client(handler, token="ghp_pat").list_tags(REPOSITORY)

        assert result.tags == ["1.0.0"]

    @pytest.mark.requirement("FR-031")
    @pytest.mark.asyncio
    async def test_malformed_realm_returns_original_401(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(
                401,
                headers={
                    "WWW-Authenticate": (
                        f'Bearer realm="::",service="{HOST}",'
                        f'scope="repository:{REPOSITORY}:pull"'
                    )
                },
            )

        client = _client(handler, token="ghp_pat")
        manifest = await client.pull_manifest(REPOSITORY, "1.0.0")
        tags = await client.list_tags(REPOSITORY)

        assert manifest.success is False
        assert manifest.error_code == ErrorCode.AUTH_REQUIRED
        assert tags.error_code == ErrorCode.AUTH_REQUIRED
        assert calls == 2
        assert len(client.token_cache) == 0

    @pytest.mark.requirement("FR-031")
    @pytest.mark.asyncio
    async def test_non_json_token_body_returns_original_401(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/token":
                return httpx.Response(200, content=b"\xff\xfe not json")
            return httpx.Response(401, headers={"WWW-Authenticate": CHALLENGE})

        result = await _client(handler, token="ghp_pat").pull_manifest(REPOSITORY, "1.0.0")

        assert result.error_code == ErrorCode.AUTH_REQUIRED


class TestPullBlob:
    """Tests for OciClient.pull_blob (FR-034)."""

    @pytest.mark.requirement("FR-034")
    @pytest.mark.asyncio
    async def test_follows_redirect_to_storage(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "storage.example.com":
                return httpx.Response(200, content=LAYER_BYTES)
            return httpx.Response(
                307, headers={"Location": "https://storage.example.com/blob?sig=abc"}
            )

        result = await _client(handler).pull_blob(REPOSITORY, LAYER_DIGEST, verify_digest=True)

        assert result.success is True
        assert result.data == LAYER_BYTES

    @pytest.mark.requirement("FR-034")
    @pytest.mark.asyncio
    async def test_digest_mismatch(self) -> None:
        result = await _client(lambda r: httpx.Response(200, content=b"tampered")).pull_blob(
            REPOSITORY, LAYER_DIGEST, verify_digest=True
        )

        assert result.success is False
        assert result.error_code == ErrorCode.VALIDATION_FAILURE
        assert result.error is not None
        assert "digest mismatch" in result.error

    @pytest.mark.requirement("FR-034")
    @pytest.mark.asyncio
    async def test_not_found(self) -> None:
        result = await _client(lambda r: httpx.Response(404)).pull_blob(REPOSITORY, LAYER_DIGEST)

        assert result.error_code == ErrorCode.NOT_FOUND
        assert result.error == f"Blob not found: {LAYER_DIGEST}"


class TestListTags:
    """Tests for OciClient.list_tags (FR-035)."""

    @pytest.mark.requirement("FR-035")
    @pytest.mark.asyncio
    async def test_unknown_repository_has_no_tags(self) -> None:
        result = await _client(lambda r: httpx.Response(404)).list_tags(REPOSITORY)

        assert result.success is True
        assert result.tags == []

    @pytest.mark.requirement("FR-035")
    @pytest.mark.asyncio
    async def test_follows_pagination_links(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params.get("last") == "1.0.0":
                return httpx.Response(200, json={"name": REPOSITORY, "tags": ["2.0.0"]})
            return httpx.Response(
                200,
                json={"name": REPOSITORY, "tags": ["1.0.0"]},
                headers={"Link": f'</v2/{REPOSITORY}/tags/list?n=1&last=1.0.0>; rel="next"'},
            )

        result = await _client(handler).list_tags(REPOSITORY)

        assert result.tags == ["1.0.0", "2.0.0"]

    @pytest.mark.requirement("FR-035")
    @pytest.mark.asyncio
    async def test_null_tags(self) -> None:
        result = await _client(
            lambda r: httpx.Response(200, json={"name": REPOSITORY, "tags": None})
        ).list_tags(REPOSITORY)

        assert result.success is True
        assert result.tags == []

    @pytest.mark.requirement("FR-035")
    @pytest.mark.asyncio
    async def test_server_error(self) -> None:
        result = await _client(lambda r: httpx.Response(503)).list_tags(REPOSITORY)

        assert result.success is False
        assert result.error_code == ErrorCode.NETWORK_FAILURE


class TestPullArtifactLayer:
    """Tests for OciClient.pull_artifact_layer and tag_exists (FR-033, FR-034)."""

    @pytest.mark.requirement("FR-034")
    @pytest.mark.asyncio
    async def test_pulls_grekt_layer(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if "/manifests/" in request.url.path:
                return httpx.Response(200, json=ARTIFACT_MANIFEST)
            assert request.url.path == f"/v2/{REPOSITORY}/blobs/{LAYER_DIGEST}"
            return httpx.Response(200, content=LAYER_BYTES)

        result = await _client(handler).pull_artifact_layer(REPOSITORY, "1.0.0")

        assert result.success is True
        assert result.data == LAYER_BYTES

    @pytest.mark.requirement("FR-034")
    @pytest.mark.asyncio
    async def test_manifest_without_artifact_layer(self) -> None:
        manifest = _manifest(
            [{"mediaType": "application/octet-stream", "digest": LAYER_DIGEST, "size": 1}]
        )

        result = await _client(lambda r: httpx.Response(200, json=manifest)).pull_artifact_layer(
            REPOSITORY, "1.0.0"
        )

        assert result.success is False
        assert result.error == "No artifact layer found in manifest"
        assert result.error_code == ErrorCode.VALIDATION_FAILURE

    @pytest.mark.requirement("FR-033")
    @pytest.mark.asyncio
    async def test_missing_tag(self) -> None:
        client = _client(lambda r: httpx.Response(404))

        result = await client.pull_artifact_layer(REPOSITORY, "9.9.9")

        assert result.error_code == ErrorCode.NOT_FOUND
        assert await client.tag_exists(REPOSITORY, "9.9.9") is False
