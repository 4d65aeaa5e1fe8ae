"""Shared test configuration for grekt-core.

Tests run without network or external tools: HTTP is faked with
``httpx.MockTransport`` and archives are real gzip tarballs built in
``tmp_path``.

Key Fixtures:
- build_tarball: Factory producing gzip tarball bytes from entry specs
- artifact_tarball: Well-formed artifact archive (single wrapper directory)
- write_tarball: Factory writing tarball bytes to a file under tmp_path
- target_dir: Extraction target that does not exist yet
"""

from __future__ import annotations

import io
import tarfile
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

TarEntry = tuple[str, ...]
"""``("file", name, content)``, ``("dir", name)``, ``("symlink", name, target)``
or ``("hardlink", name, target)``."""

ARTIFACT_FILES: dict[str, str] = {
    "grekt.yaml": "name: '@scope/pkg'\nversion: 1.0.0\n",
    "agents/reviewer.md": "---\nname: reviewer\n---\nReview code.\n",
    "skills/lint/SKILL.md": "# Lint\n",
}
"""Files of the sample artifact, relative to the extracted root."""


def _tarball_bytes(entries: Sequence[TarEntry]) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for entry in entries:
            kind, name = entry[0], entry[1]
            info = tarfile.TarInfo(name)
            info.mtime = 1_700_000_000
            if kind == "file":
                data = entry[2].encode()
                info.size = len(data)
                info.mode = 0o644
                tar.addfile(info, io.BytesIO(data))
            elif kind == "dir":
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tar.addfile(info)
            elif kind == "symlink":
                info.type = tarfile.SYMTYPE
                info.linkname = entry[2]
                tar.addfile(info)
            elif kind == "hardlink":
                info.type = tarfile.LNKTYPE
                info.linkname = entry[2]
                tar.addfile(info)
            else:
                raise ValueError(f"Unknown tar entry kind: {kind}")
    return buffer.getvalue()


@pytest.fixture
def build_tarball() -> Callable[[Sequence[TarEntry]], bytes]:
    """Factory building gzip tarball bytes.

    Usage:
        def test_x(build_tarball):
            data = build_tarball([("dir", "package/"), ("file", "package/a.txt", "hi")])
    """
    return _tarball_bytes


@pytest.fixture
def artifact_tarball() -> bytes:
    """Well-formed artifact archive wrapped in a ``package/`` directory."""
    entries: list[TarEntry] = [("dir", "package/")]
    entries.extend(("file", f"package/{path}", content) for path, content in ARTIFACT_FILES.items())
    return _tarball_bytes(entries)


@pytest.fixture
def write_tarball(tmp_path: Path) -> Callable[[bytes, str], Path]:
    """Factory writing tarball bytes to ``tmp_path/<name>``."""

    def _write(data: bytes, name: str = "artifact.tar.gz") -> Path:
        path = tmp_path / name
        path.write_bytes(data)
        return path

    return _write


@pytest.fixture
def target_dir(tmp_path: Path) -> Path:
    """Extraction target; not created up front."""
    return tmp_path / "target"


@pytest.fixture
def artifact_files() -> dict[str, str]:
    """Expected extracted files of ``artifact_tarball``."""
    return dict(ARTIFACT_FILES)
