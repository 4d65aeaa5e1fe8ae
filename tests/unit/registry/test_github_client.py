"""Unit tests for the GitHub Container Registry client.

Pulls run against a MockTransport OCI registry. Pushes patch
``subprocess.run`` so no ``oras`` binary is needed.

Requirements: FR-056 (download), FR-057 (publish), FR-058 (lookups)
"""

from __future__ import annotations

import hashlib
import subprocess
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import httpx
import pytest

from grekt_core.errors import ErrorCode, RegistryConfigError
from grekt_core.registry.clients import GitHubRegistryClient
from grekt_core.registry.clients.github import check_oras_available
from grekt_core.schemas.oci import GREKT_LAYER_MEDIA_TYPE
from grekt_core.schemas.registry import RegistryType, ResolvedRegistry

MockHttp = Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]

ARTIFACT = "@myorg/tools"
MODULE = "grekt_core.registry.clients.github"


class FakeGhcr:
    """In-memory OCI registry holding one repository."""

    def __init__(self, repository: str, blobs_by_tag: dict[str, bytes], extra_tags: list[str]) -> None:
        self.repository = repository
        self.blobs_by_tag = blobs_by_tag
        self.extra_tags = extra_tags
        self.requests: list[httpx.Request] = []

    @staticmethod
    def digest(data: bytes) -> str:
        return f"sha256:{hashlib.sha256(data).hexdigest()}"

    def _manifest(self, data: bytes) -> dict[str, Any]:
        return {
            "schemaVersion": 2,
            "mediaType": "application/vnd.oci.image.manifest.v1+json",
            "config": {
                "mediaType": "application/vnd.grekt.artifact.config.v1+json",
                "digest": "sha256:" + "0" * 64,
                "size": 2,
            },
            "layers": [
                {"mediaType": GREKT_LAYER_MEDIA_TYPE, "digest": self.digest(data), "size": len(data)}
            ],
        }

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        base = f"/v2/{self.repository}"
        path = request.url.path
        if path == f"{base}/tags/list":
            return httpx.Response(
                200, json={"name": self.repository, "tags": [*self.blobs_by_tag, *self.extra_tags]}
            )
        if path.startswith(f"{base}/manifests/"):
            data = self.blobs_by_tag.get(path.rsplit("/", 1)[1])
            if data is None:
                return httpx.Response(404)
            return httpx.Response(200, json=self._manifest(data))
        if path.startswith(f"{base}/blobs/"):
            digest = path.rsplit("/", 1)[1]
            for data in self.blobs_by_tag.values():
                if self.digest(data) == digest:
                    return httpx.Response(200, content=data)
        return httpx.Response(404)


def _registry(**overrides: Any) -> ResolvedRegistry:
    values: dict[str, Any] = {
        "type": RegistryType.GITHUB,
        "host": "ghcr.io",
        "project": "myorg",
        "token": "ghp_secret",
    }
    values.update(overrides)
    return ResolvedRegistry(**values)


class TestRepositoryName:
    """Tests for repository naming (FR-056)."""

    @pytest.mark.requirement("FR-056")
    def test_requires_project(self) -> None:
        with pytest.raises(RegistryConfigError, match="GHCR namespace"):
            GitHubRegistryClient(_registry(project=None))

    @pytest.mark.requirement("FR-056")
    @pytest.mark.asyncio
    async def test_prefix(self, mock_http: MockHttp) -> None:
        http = mock_http(lambda r: httpx.Response(404))

        assert GitHubRegistryClient(_registry(), http=http).repository_name(ARTIFACT) == "myorg/tools"
        assert (
            GitHubRegistryClient(_registry(prefix="agents"), http=http).repository_name(ARTIFACT)
            == "myorg/agents-tools"
        )


class TestDownload:
    """Tests for GitHubRegistryClient.download (FR-056)."""

    @pytest.mark.requirement("FR-056")
    @pytest.mark.asyncio
    async def test_downloads_highest_semver_tag(
        self,
        mock_http: MockHttp,
        artifact_tarball: bytes,
        artifact_files: dict[str, str],
        target_dir: Path,
    ) -> None:
        fake = FakeGhcr(
            "myorg/tools",
            {"1.0.0": b"old", "2.0.0": artifact_tarball},
            extra_tags=["latest", "main"],
        )
        client = GitHubRegistryClient(_registry(), http=mock_http(fake))

        result = await client.download(ARTIFACT, None, target_dir)

        assert result.success is True
        assert result.version == "2.0.0"
        assert result.resolved == "oci://ghcr.io/myorg/tools:2.0.0"
        assert set(result.file_hashes or {}) == set(artifact_files)

    @pytest.mark.requirement("FR-056")
    @pytest.mark.asyncio
    async def test_unknown_version(self, mock_http: MockHttp, target_dir: Path) -> None:
        fake = FakeGhcr("myorg/tools", {}, extra_tags=[])
        client = GitHubRegistryClient(_registry(), http=mock_http(fake))

        result = await client.download(ARTIFACT, "9.9.9", target_dir)

        assert result.success is False
        assert result.error_code == ErrorCode.NOT_FOUND
        assert result.error == "Manifest not found: myorg/tools:9.9.9"

    @pytest.mark.requirement("FR-056")
    @pytest.mark.asyncio
    async def test_no_semver_tags(self, mock_http: MockHttp, target_dir: Path) -> None:
        fake = FakeGhcr("myorg/tools", {}, extra_tags=["latest"])
        client = GitHubRegistryClient(_registry(), http=mock_http(fake))

        result = await client.download(ARTIFACT, None, target_dir)

        assert result.error == f"No versions found for artifact: {ARTIFACT}"
        assert result.error_code == ErrorCode.NOT_FOUND

    @pytest.mark.requirement("FR-056")
    @pytest.mark.asyncio
    async def test_unsafe_layer_is_rejected(
        self,
        mock_http: MockHttp,
        build_tarball: Callable[..., bytes],
        target_dir: Path,
    ) -> None:
        data = build_tarball([("symlink", "package/keys", "../../../home/user/.ssh")])
        fake = FakeGhcr("myorg/tools", {"1.0.0": data}, extra_tags=[])
        client = GitHubRegistryClient(_registry(), http=mock_http(fake))

        result = await client.download(ARTIFACT, "1.0.0", target_dir)

        assert result.success is False
        assert result.error_code == ErrorCode.VALIDATION_FAILURE
        assert len(result.violations) == 1
        assert not target_dir.exists()


class TestPublish:
    """Tests for GitHubRegistryClient.publish (FR-057)."""

    @pytest.fixture
    def tarball(self, tmp_path: Path, artifact_tarball: bytes) -> Path:
        path = tmp_path / "artifact.tar.gz"
        path.write_bytes(artifact_tarball)
        return path

    @pytest.mark.requirement("FR-057")
    @pytest.mark.asyncio
    async def test_pushes_with_oras(self, mock_http: MockHttp, tarball: Path) -> None:
        fake = FakeGhcr("myorg/tools", {"1.0.0": b"x"}, extra_tags=[])
        client = GitHubRegistryClient(_registry(), http=mock_http(fake))

        with (
            patch(f"{MODULE}.check_oras_available", return_value=True),
            patch(f"{MODULE}.subprocess.run") as mock_run,
        ):
            result = await client.publish(ARTIFACT, "1.1.0", tarball)

        assert result.success is True
        assert result.url == "oci://ghcr.io/myorg/tools:1.1.0"

        cmd = mock_run.call_args.args[0]
        kwargs = mock_run.call_args.kwargs
        assert cmd[:2] == ["oras", "push"]
        assert "ghcr.io/myorg/tools:1.1.0" in cmd
        assert f"artifact.tar.gz:{GREKT_LAYER_MEDIA_TYPE}" in cmd
        assert "--password-stdin" in cmd
        assert "ghp_secret" not in cmd
        assert kwargs["input"] == "ghp_secret"
        assert kwargs["cwd"] == tarball.resolve().parent

    @pytest.mark.requirement("FR-057")
    @pytest.mark.asyncio
    async def test_requires_token(self, mock_http: MockHttp, tarball: Path) -> None:
        client = GitHubRegistryClient(
            _registry(token=None), http=mock_http(lambda r: httpx.Response(404))
        )

        result = await client.publish(ARTIFACT, "1.0.0", tarball)

        assert result.success is False
        assert result.error_code == ErrorCode.AUTH_REQUIRED
        assert result.error is not None
        assert "GITHUB_TOKEN" in result.error

    @pytest.mark.requirement("FR-057")
    @pytest.mark.asyncio
    async def test_requires_oras(self, mock_http: MockHttp, tarball: Path) -> None:
        client = GitHubRegistryClient(_registry(), http=mock_http(lambda r: httpx.Response(404)))

        with patch(f"{MODULE}.shutil.which", return_value=None):
            result = await client.publish(ARTIFACT, "1.0.0", tarball)

        assert result.error_code == ErrorCode.UNSUPPORTED_OPERATION
        assert result.error is not None
        assert "oras" in result.error

    @pytest.mark.requirement("FR-057")
    @pytest.mark.asyncio
    async def test_existing_tag_is_immutable(self, mock_http: MockHttp, tarball: Path) -> None:
        fake = FakeGhcr("myorg/tools", {"1.0.0": b"x"}, extra_tags=[])
        client = GitHubRegistryClient(_registry(), http=mock_http(fake))

        with (
            patch(f"{MODULE}.check_oras_available", return_value=True),
            patch(f"{MODULE}.subprocess.run") as mock_run,
        ):
            result = await client.publish(ARTIFACT, "1.0.0", tarball)

        assert result.error_code == ErrorCode.IMMUTABLE_VERSION
        mock_run.assert_not_called()

    @pytest.mark.requirement("FR-057")
    @pytest.mark.asyncio
    async def test_oras_failure(self, mock_http: MockHttp, tarball: Path) -> None:
        fake = FakeGhcr("myorg/tools", {}, extra_tags=[])
        client = GitHubRegistryClient(_registry(), http=mock_http(fake))
        error = subprocess.CalledProcessError(1, ["oras"], stderr="denied: permission_denied\n")

        with (
            patch(f"{MODULE}.check_oras_available", return_value=True),
            patch(f"{MODULE}.subprocess.run", side_effect=error),
        ):
            result = await client.publish(ARTIFACT, "1.0.0", tarball)

        assert result.error_code == ErrorCode.NETWORK_FAILURE
        assert result.error is not None
        assert "oras exited with code 1: denied: permission_denied" in result.error


class TestCheckOrasAvailable:
    """Tests for check_oras_available (FR-057)."""

    @pytest.mark.requirement("FR-057")
    def test_missing_binary(self) -> None:
        with patch(f"{MODULE}.shutil.which", return_value=None):
            assert check_oras_available() is False

    @pytest.mark.requirement("FR-057")
    def test_binary_runs(self) -> None:
        with (
            patch(f"{MODULE}.shutil.which", return_value="/usr/local/bin/oras"),
            patch(f"{MODULE}.subprocess.run", return_value=MagicMock(returncode=0)) as mock_run,
        ):
            assert check_oras_available() is True

        assert mock_run.call_args.args[0] == ["oras", "version"]

    @pytest.mark.requirement("FR-057")
    def test_binary_fails(self) -> None:
        with (
            patch(f"{MODULE}.shutil.which", return_value="/usr/local/bin/oras"),
            patch(f"{MODULE}.subprocess.run", side_effect=OSError("exec format error")),
        ):
            assert check_oras_available() is False


class TestLookups:
    """Tests for GHCR version lookups (FR-058)."""

    @pytest.mark.requirement("FR-058")
    @pytest.mark.asyncio
    async def test_semver_tags_only(self, mock_http: MockHttp) -> None:
        fake = FakeGhcr("myorg/tools", {}, extra_tags=["1.0.0", "latest", "main", "2.0.0"])
        client = GitHubRegistryClient(_registry(), http=mock_http(fake))

        assert await client.list_versions(ARTIFACT) == ["2.0.0", "1.0.0"]
        assert await client.get_latest_version(ARTIFACT) == "2.0.0"

        info = await client.get_artifact_info(ARTIFACT)
        assert info is not None
        assert info.latest_version == "2.0.0"
        assert [v.version for v in info.versions] == ["2.0.0", "1.0.0"]

    @pytest.mark.requirement("FR-058")
    @pytest.mark.asyncio
    async def test_version_exists(self, mock_http: MockHttp) -> None:
        fake = FakeGhcr("myorg/tools", {"1.0.0": b"x"}, extra_tags=[])
        client = GitHubRegistryClient(_registry(), http=mock_http(fake))

        assert await client.version_exists(ARTIFACT, "1.0.0") is True
        assert await client.version_exists(ARTIFACT, "2.0.0") is False

    @pytest.mark.requirement("FR-058")
    @pytest.mark.asyncio
    async def test_unknown_repository(self, mock_http: MockHttp) -> None:
        client = GitHubRegistryClient(_registry(), http=mock_http(lambda r: httpx.Response(404)))

        assert await client.list_versions(ARTIFACT) == []
        assert await client.get_latest_version(ARTIFACT) is None
        assert await client.get_artifact_info(ARTIFACT) is None

    @pytest.mark.requirement("FR-058")
    @pytest.mark.asyncio
    async def test_malformed_challenge_is_not_found(self, mock_http: MockHttp) -> None:
        challenge = 'Bearer realm="::",service="ghcr.io",scope="repository:myorg/tools:pull"'
        client = GitHubRegistryClient(
            _registry(token="pat"),
            http=mock_http(lambda r: httpx.Response(401, headers={"WWW-Authenticate": challenge})),
        )

        assert await client.version_exists(ARTIFACT, "1.0.0") is False
        assert await client.list_versions(ARTIFACT) == []
