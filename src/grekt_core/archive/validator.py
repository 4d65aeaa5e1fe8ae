"""Pre-extraction tarball security validation.

Lists an archive's entries BEFORE anything is written, simulates the
leading-path stripping that extraction will apply, and rejects every entry
that would land outside the destination:

- absolute paths after stripping
- ``..`` traversal after normalization
- entries resolving outside the target directory
- symlinks whose target, resolved from the link's own location, escapes
- hard links whose (stripped) target escapes

Violations are accumulated, never short-circuited, so callers see every
problem in one pass. An archive that cannot be listed is unsafe.

Two listers are available:

- TarfileLister (default): reads the archive in-process with ``tarfile``.
- TarCommandLister: runs ``tar -tf`` / ``tar -tvf`` and parses BSD or GNU
  verbose output for symlink targets.

Example:
    >>> from grekt_core.archive.validator import validate_tarball_contents
    >>> result = validate_tarball_contents(Path("/tmp/a.tar.gz"), Path("/target"))
    >>> result.safe
    True
"""

from __future__ import annotations

import os
import re
import subprocess
import tarfile
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import structlog
from pydantic import BaseModel, ConfigDict, Field

from grekt_core.constants import DEFAULT_STRIP_COMPONENTS
from grekt_core.errors import UnsafeTarballError

logger = structlog.get_logger(__name__)

VERBOSE_TIME_PATTERN = re.compile(r"\d{1,2}:\d{2}\s+(.+)$")
"""Time column (HH:MM) in ``tar -tvf`` output; the entry name follows it."""

SYMLINK_ARROW = " -> "


class TarValidationResult(BaseModel):
    """Terminal judgment on one archive, consumed right before extraction."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    safe: bool
    violations: list[str] = Field(default_factory=list)


@dataclass(frozen=True)
class ArchiveEntry:
    """One archive member as reported by a lister.

    Attributes:
        name: Member path exactly as stored in the archive.
        symlink_target: Link target for symbolic links.
        hardlink_target: Archive path of the linked member for hard links.
    """

    name: str
    symlink_target: str | None = None
    hardlink_target: str | None = None


class ArchiveLister(Protocol):
    """Lists archive members without extracting them."""

    def list_entries(self, tarball_path: Path) -> list[ArchiveEntry]: ...


class TarfileLister:
    """In-process lister backed by the ``tarfile`` module."""

    def list_entries(self, tarball_path: Path) -> list[ArchiveEntry]:
        entries: list[ArchiveEntry] = []
        with tarfile.open(tarball_path, mode="r:*") as tar:
            for member in tar.getmembers():
                entries.append(
                    ArchiveEntry(
                        name=member.name,
                        symlink_target=member.linkname if member.issym() else None,
                        hardlink_target=member.linkname if member.islnk() else None,
                    )
                )
        return entries


CommandRunner = Callable[[Sequence[str]], str]


def _run_command(args: Sequence[str]) -> str:
    completed = subprocess.run(
        list(args),
        check=True,
        capture_output=True,
        text=True,
    )
    return completed.stdout


class TarCommandLister:
    """Lister that shells out to the system ``tar`` binary.

    Names come from the plain listing (identical on BSD and GNU tar);
    symlink targets are recovered from the verbose listing.
    """

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self._run = runner or _run_command

    def list_entries(self, tarball_path: Path) -> list[ArchiveEntry]:
        list_output = self._run(["tar", "-tf", str(tarball_path)])
        names = [line for line in list_output.strip().split("\n") if line.strip()]

        verbose_output = self._run(["tar", "-tvf", str(tarball_path)])
        verbose_lines = [line for line in verbose_output.strip().split("\n") if line]
        symlinks = parse_symlinks(verbose_lines)

        return [ArchiveEntry(name=name, symlink_target=symlinks.get(name)) for name in names]


# =============================================================================
# Path helpers
# =============================================================================


def apply_strip_components(path: str, count: int) -> str | None:
    """Remove the first ``count`` path components, like ``--strip-components``.

    Returns:
        The remaining path, or None when nothing would be written.

    Examples:
        >>> apply_strip_components("a/b/c", 1)
        'b/c'
        >>> apply_strip_components("a/", 1) is None
        True
    """
    if count <= 0:
        return path

    parts = [part for part in path.split("/") if part]
    if len(parts) <= count:
        return None
    return "/".join(parts[count:])


def is_within_target(resolved_target_dir: str, resolved_path: str) -> bool:
    """Check that an absolute, normalized path stays inside the target."""
    if resolved_path == resolved_target_dir:
        return True
    relative = os.path.relpath(resolved_path, resolved_target_dir)
    return not (relative == ".." or relative.startswith("../") or os.path.isabs(relative))


def _is_traversal(normalized: str) -> bool:
    # Any leading "..", including names like "..notes"
    return normalized.startswith("..")


def extract_name_from_verbose_line(line_before_arrow: str) -> str | None:
    """Extract the entry name from the part of a ``tar -tvf`` line before ``->``.

    BSD: ``lrwxr-xr-x  0 user   group       0 Jan  1 00:00 name``
    GNU: ``lrwxrwxrwx user/group 0 2024-01-01 00:00 name``

    The name is the text after the time column. Entries old enough to show
    a year instead of a time fall back to the last whitespace-separated field.
    """
    match = VERBOSE_TIME_PATTERN.search(line_before_arrow)
    if match and match.group(1).strip():
        return match.group(1).strip()

    parts = line_before_arrow.split()
    return parts[-1] if parts else None


def parse_symlinks(lines: Sequence[str]) -> dict[str, str]:
    """Map entry name -> symlink target from ``tar -tvf`` lines."""
    symlinks: dict[str, str] = {}
    for line in lines:
        if not line.startswith("l"):
            continue
        arrow_index = line.find(SYMLINK_ARROW)
        if arrow_index == -1:
            continue

        target = line[arrow_index + len(SYMLINK_ARROW) :]
        name = extract_name_from_verbose_line(line[:arrow_index])
        if name:
            symlinks[name] = target
    return symlinks


def sanitize_path_component(component: str) -> str:
    """Strip separators, NUL bytes and ``..`` from a user-provided path component."""
    return component.replace("/", "").replace("\\", "").replace("\0", "").replace("..", "")


# =============================================================================
# Validation
# =============================================================================


def _check_entry(
    entry: ArchiveEntry,
    resolved_target_dir: str,
    strip_components: int,
) -> list[str]:
    stripped = apply_strip_components(entry.name, strip_components)
    if not stripped:
        return []

    if os.path.isabs(stripped):
        return [f"Absolute path in tarball: {entry.name}"]

    normalized = os.path.normpath(stripped)
    if _is_traversal(normalized):
        return [f"Path traversal in tarball: {entry.name} (after strip: {stripped})"]

    resolved_entry = os.path.normpath(os.path.join(resolved_target_dir, normalized))
    if not is_within_target(resolved_target_dir, resolved_entry):
        return [f"Entry escapes target directory: {entry.name}"]

    violations: list[str] = []
    if entry.symlink_target is not None:
        link_dir = os.path.dirname(resolved_entry)
        resolved_link = os.path.normpath(os.path.join(link_dir, entry.symlink_target))
        if not is_within_target(resolved_target_dir, resolved_link):
            violations.append(
                f"Symlink escapes target directory: {entry.name} -> {entry.symlink_target}"
            )

    if entry.hardlink_target is not None:
        linked = apply_strip_components(entry.hardlink_target, strip_components)
        # Absolute link targets replace the join base and fail the containment check
        resolved_linked = (
            os.path.normpath(os.path.join(resolved_target_dir, linked)) if linked else None
        )
        if resolved_linked is None or not is_within_target(resolved_target_dir, resolved_linked):
            violations.append(
                f"Hardlink escapes target directory: {entry.name} => {entry.hardlink_target}"
            )
    return violations


def validate_tarball_contents(
    tarball_path: Path | str,
    target_dir: Path | str,
    strip_components: int = DEFAULT_STRIP_COMPONENTS,
    *,
    lister: ArchiveLister | None = None,
) -> TarValidationResult:
    """Validate an archive before extraction.

    Must be re-run for every extraction; a previous result is never reused.

    Args:
        tarball_path: Archive on disk.
        target_dir: Directory the archive will be extracted into.
        strip_components: Leading components extraction will strip.
        lister: Archive lister; defaults to TarfileLister.

    Returns:
        TarValidationResult with every violation found.
    """
    resolved_target_dir = os.path.normpath(os.path.abspath(target_dir))
    archive_lister = lister or TarfileLister()
    violations: list[str] = []

    try:
        entries = archive_lister.list_entries(Path(tarball_path))
    except (OSError, tarfile.TarError, subprocess.SubprocessError, UnicodeDecodeError) as e:
        violations.append(f"Cannot validate tarball: {e}")
        entries = []

    for entry in entries:
        if not entry.name.strip():
            continue
        violations.extend(_check_entry(entry, resolved_target_dir, strip_components))

    result = TarValidationResult(safe=not violations, violations=violations)
    if result.safe:
        logger.debug("tarball_validated", tarball=str(tarball_path), entries=len(entries))
    else:
        logger.warning(
            "tarball_rejected",
            tarball=str(tarball_path),
            target_dir=resolved_target_dir,
            violation_count=len(violations),
        )
    return result


def ensure_safe(
    tarball_path: Path | str,
    target_dir: Path | str,
    strip_components: int = DEFAULT_STRIP_COMPONENTS,
    *,
    lister: ArchiveLister | None = None,
) -> None:
    """Validate and raise instead of returning a result.

    Raises:
        UnsafeTarballError: With every violation when the archive is unsafe.
    """
    result = validate_tarball_contents(
        tarball_path, target_dir, strip_components, lister=lister
    )
    if not result.safe:
        raise UnsafeTarballError(result.violations)


__all__ = [
    "ArchiveEntry",
    "ArchiveLister",
    "TarCommandLister",
    "TarValidationResult",
    "TarfileLister",
    "apply_strip_components",
    "ensure_safe",
    "extract_name_from_verbose_line",
    "is_within_target",
    "parse_symlinks",
    "sanitize_path_component",
    "validate_tarball_contents",
]
