"""Tarball extraction with leading-component stripping.

Extraction only ever happens after the security validator has cleared the
archive; ``extract_verified`` runs both steps back to back. Stripping
mirrors ``tar --strip-components``: members consumed entirely by stripping
are skipped, and hard-link targets are stripped the same way.

Extraction also uses the ``tarfile`` "data" filter, so a member that slips
past validation still cannot be written outside the target.
"""

from __future__ import annotations

import tarfile
from pathlib import Path

import structlog

from grekt_core.archive.validator import (
    ArchiveLister,
    apply_strip_components,
    ensure_safe,
)
from grekt_core.constants import DEFAULT_STRIP_COMPONENTS
from grekt_core.errors import UnsafeTarballError

logger = structlog.get_logger(__name__)


def _stripped_members(
    tar: tarfile.TarFile,
    strip_components: int,
) -> list[tarfile.TarInfo]:
    members: list[tarfile.TarInfo] = []
    for member in tar.getmembers():
        name = apply_strip_components(member.name, strip_components)
        if not name:
            continue
        changes: dict[str, str] = {"name": name}
        if member.islnk():
            linkname = apply_strip_components(member.linkname, strip_components)
            if not linkname:
                continue
            changes["linkname"] = linkname
        members.append(member.replace(**changes, deep=False))
    return members


def extract_tarball(
    tarball_path: Path | str,
    target_dir: Path | str,
    strip_components: int = DEFAULT_STRIP_COMPONENTS,
) -> int:
    """Extract a gzip (or plain) tarball into ``target_dir``.

    Callers must validate first; prefer ``extract_verified``.

    Returns:
        Number of members written.

    Raises:
        UnsafeTarballError: If the extraction filter refuses a member.
    """
    target = Path(target_dir)
    target.mkdir(parents=True, exist_ok=True)

    with tarfile.open(tarball_path, mode="r:*") as tar:
        members = _stripped_members(tar, strip_components)
        try:
            tar.extractall(target, members=members, filter="data")
        except tarfile.FilterError as e:
            raise UnsafeTarballError([str(e)]) from e

    logger.debug("tarball_extracted", target_dir=str(target), members=len(members))
    return len(members)


def extract_verified(
    tarball_path: Path | str,
    target_dir: Path | str,
    strip_components: int = DEFAULT_STRIP_COMPONENTS,
    *,
    lister: ArchiveLister | None = None,
) -> int:
    """Validate, then extract.

    Nothing is written when validation fails; the target directory is not
    even created.

    Raises:
        UnsafeTarballError: With every violation found.
    """
    ensure_safe(tarball_path, target_dir, strip_components, lister=lister)
    return extract_tarball(tarball_path, target_dir, strip_components)


__all__ = ["extract_tarball", "extract_verified"]
