"""Tarball download helpers shared by registry clients and git sources.

URL and header builders are pure functions. The install pipeline is the
single path by which downloaded bytes reach the filesystem:

    bytes -> unique temp file -> validator -> extraction (strip 1) -> hashes

The temp file name carries a uuid4 so concurrent downloads never collide,
and it is removed on every exit path.
"""

from __future__ import annotations

import asyncio
import tempfile
import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote

import httpx
import structlog

from grekt_core.archive import ArchiveLister, ensure_safe, extract_tarball
from grekt_core.constants import DEFAULT_STRIP_COMPONENTS, TEMP_TARBALL_PREFIX, USER_AGENT
from grekt_core.errors import (
    IntegrityMismatchError,
    UnsafeTarballError,
    error_code_for,
    error_code_for_status,
)
from grekt_core.integrity import calculate_integrity, hash_directory
from grekt_core.schemas.integrity import FileHashMap
from grekt_core.schemas.registry import TarballDownloadResult

logger = structlog.get_logger(__name__)

GITLAB_DEPLOY_TOKEN_PREFIX = "gldt-"


def build_github_tarball_url(owner: str, repo: str, ref: str = "HEAD") -> str:
    """GitHub API tarball URL for a repository ref."""
    return f"https://api.github.com/repos/{owner}/{repo}/tarball/{ref}"


def build_gitlab_archive_url(host: str, project_path: str, ref: str = "main") -> str:
    """GitLab API archive URL; the project path is URL-encoded.

    Examples:
        >>> build_gitlab_archive_url("gitlab.com", "group/project", "v1")
        'https://gitlab.com/api/v4/projects/group%2Fproject/repository/archive.tar.gz?sha=v1'
    """
    encoded = quote(project_path, safe="")
    return f"https://{host}/api/v4/projects/{encoded}/repository/archive.tar.gz?sha={ref}"


def get_github_headers(token: str | None = None) -> dict[str, str]:
    headers = {"Accept": "application/vnd.github+json", "User-Agent": USER_AGENT}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def get_gitlab_headers(token: str | None = None) -> dict[str, str]:
    """GitLab API headers.

    Deploy tokens (``gldt-`` prefix) go in ``Deploy-Token``; personal,
    project and group access tokens in ``PRIVATE-TOKEN``.
    """
    headers = {"User-Agent": USER_AGENT}
    if token:
        if token.startswith(GITLAB_DEPLOY_TOKEN_PREFIX):
            headers["Deploy-Token"] = token
        else:
            headers["PRIVATE-TOKEN"] = token
    return headers


def http_error_message(response: httpx.Response) -> str:
    return f"HTTP {response.status_code}: {response.reason_phrase}"


@contextmanager
def temporary_tarball(directory: Path | str | None = None) -> Iterator[Path]:
    """Yield a unique temp tarball path; the file is removed on exit."""
    base = Path(directory) if directory is not None else Path(tempfile.gettempdir())
    path = base / f"{TEMP_TARBALL_PREFIX}{uuid.uuid4()}.tar.gz"
    try:
        yield path
    finally:
        path.unlink(missing_ok=True)


async def stream_to_file(
    http: httpx.AsyncClient,
    url: str,
    dest: Path,
    *,
    headers: Mapping[str, str] | None = None,
) -> httpx.Response:
    """Stream a GET response body into ``dest``, following redirects.

    The body is written only for a 2xx response; the (closed) response is
    returned so callers can report the status.
    """
    async with http.stream("GET", url, headers=headers, follow_redirects=True) as response:
        if response.is_success:
            with dest.open("wb") as f:
                async for chunk in response.aiter_bytes():
                    f.write(chunk)
    return response


@dataclass(frozen=True)
class InstalledTree:
    """Hashes of an extracted artifact directory."""

    file_hashes: FileHashMap
    integrity: str
    member_count: int


def install_tarball(
    tarball_path: Path,
    target_dir: Path | str,
    strip_components: int = DEFAULT_STRIP_COMPONENTS,
    *,
    expected_integrity: str | None = None,
    lister: ArchiveLister | None = None,
) -> InstalledTree:
    """Validate, extract and hash a tarball already on disk.

    Blocking; registry clients run it via ``asyncio.to_thread``.

    Raises:
        UnsafeTarballError: Validation failed; nothing was written.
        IntegrityMismatchError: The extracted tree does not hash to
            ``expected_integrity``.
    """
    ensure_safe(tarball_path, target_dir, strip_components, lister=lister)
    member_count = extract_tarball(tarball_path, target_dir, strip_components)

    file_hashes = hash_directory(target_dir)
    integrity = calculate_integrity(file_hashes)
    if expected_integrity is not None and integrity != expected_integrity:
        raise IntegrityMismatchError(expected_integrity, integrity, str(target_dir))

    return InstalledTree(file_hashes=file_hashes, integrity=integrity, member_count=member_count)


async def download_and_extract_tarball(
    http: httpx.AsyncClient,
    url: str,
    target_dir: Path | str,
    *,
    headers: Mapping[str, str] | None = None,
    strip_components: int = DEFAULT_STRIP_COMPONENTS,
    expected_integrity: str | None = None,
) -> TarballDownloadResult:
    """Download a tarball by URL and install it into ``target_dir``.

    Used for ``github:``/``gitlab:`` sources. Never raises for HTTP, archive
    or integrity failures.

    Args:
        http: Async HTTP client.
        url: Tarball URL (redirects are followed).
        target_dir: Extraction directory.
        headers: Extra headers; ``User-Agent`` is always set.
        strip_components: Leading components to strip on extraction.
        expected_integrity: Optional digest the extracted tree must match.
    """
    final_headers = {"User-Agent": USER_AGENT, **(headers or {})}

    with temporary_tarball() as tarball:
        try:
            response = await stream_to_file(http, url, tarball, headers=final_headers)
            if not response.is_success:
                return TarballDownloadResult(
                    success=False,
                    error=http_error_message(response),
                    error_code=error_code_for_status(response.status_code),
                )

            installed = await asyncio.to_thread(
                install_tarball,
                tarball,
                target_dir,
                strip_components,
                expected_integrity=expected_integrity,
            )
        except UnsafeTarballError as e:
            return TarballDownloadResult(
                success=False,
                error=str(e),
                error_code=e.code,
                violations=tuple(e.violations),
            )
        except Exception as e:
            logger.warning("tarball_download_failed", url=url, error=str(e))
            return TarballDownloadResult(success=False, error=str(e), error_code=error_code_for(e))

    logger.info("tarball_installed", url=url, files=len(installed.file_hashes))
    return TarballDownloadResult(
        success=True,
        integrity=installed.integrity,
        file_hashes=installed.file_hashes,
    )


__all__ = [
    "InstalledTree",
    "build_github_tarball_url",
    "build_gitlab_archive_url",
    "download_and_extract_tarball",
    "get_github_headers",
    "get_gitlab_headers",
    "http_error_message",
    "install_tarball",
    "stream_to_file",
    "temporary_tarball",
]
