"""Semantic version utilities for artifact versions.

Artifact versions follow SemVer 2.0.0 strictly: ``MAJOR.MINOR.PATCH`` with
optional ``-prerelease`` and ``+build`` suffixes. A leading ``v`` is
rejected so that registry tags such as ``v1.0.0`` are never mistaken for
published artifact versions.

"Latest" is always the highest valid semver, never the most recently
published entry.

Example:
    >>> from grekt_core.version import sort_versions_desc, get_highest_version
    >>> sort_versions_desc(["1.0.0", "latest", "main", "2.0.0"])
    ['2.0.0', '1.0.0']
    >>> get_highest_version(["1.2.0", "1.10.0", "1.9.0"])
    '1.10.0'
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from typing import Literal

from grekt_core.errors import InvalidVersionError

BumpType = Literal["patch", "minor", "major"]

SEMVER_PATTERN = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
    r"(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)
"""SemVer 2.0.0 grammar (no ``v`` prefix, no leading zeros)."""


@dataclass(frozen=True)
class SemVer:
    """Parsed semantic version.

    Attributes:
        major: Major component.
        minor: Minor component.
        patch: Patch component.
        prerelease: Dot-separated prerelease identifiers (empty for releases).
        build: Build metadata identifiers (ignored for precedence).
    """

    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = ()
    build: tuple[str, ...] = ()

    @classmethod
    def parse(cls, version: str) -> SemVer:
        """Parse a version string.

        Raises:
            InvalidVersionError: If the string is not strict semver.
        """
        match = SEMVER_PATTERN.match(version)
        if match is None:
            raise InvalidVersionError(version)
        major, minor, patch, prerelease, build = match.groups()
        return cls(
            major=int(major),
            minor=int(minor),
            patch=int(patch),
            prerelease=tuple(prerelease.split(".")) if prerelease else (),
            build=tuple(build.split(".")) if build else (),
        )

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + ".".join(self.build)
        return text

    def compare(self, other: SemVer) -> Literal[-1, 0, 1]:
        """Compare by semver precedence; build metadata is ignored."""
        core_self = (self.major, self.minor, self.patch)
        core_other = (other.major, other.minor, other.patch)
        if core_self != core_other:
            return 1 if core_self > core_other else -1
        return _compare_prerelease(self.prerelease, other.prerelease)


def _compare_identifier(a: str, b: str) -> int:
    a_numeric = a.isdigit()
    b_numeric = b.isdigit()
    if a_numeric and b_numeric:
        return (int(a) > int(b)) - (int(a) < int(b))
    # Numeric identifiers always have lower precedence than alphanumeric ones
    if a_numeric:
        return -1
    if b_numeric:
        return 1
    return (a > b) - (a < b)


def _compare_prerelease(a: tuple[str, ...], b: tuple[str, ...]) -> Literal[-1, 0, 1]:
    if not a and not b:
        return 0
    # A release outranks any prerelease of the same core version
    if not a:
        return 1
    if not b:
        return -1
    for left, right in zip(a, b, strict=False):
        result = _compare_identifier(left, right)
        if result:
            return 1 if result > 0 else -1
    if len(a) == len(b):
        return 0
    return 1 if len(a) > len(b) else -1


def is_valid_semver(version: str) -> bool:
    """Check if a string is a valid semver version.

    Rejects a ``v``/``V`` prefix: ``"v1.0.0"`` is invalid, ``"1.0.0"`` is valid.

    Args:
        version: Candidate version string.

    Returns:
        True when the string is strict semver.
    """
    if version.startswith(("v", "V")):
        return False
    return SEMVER_PATTERN.match(version) is not None


def compare_semver(a: str, b: str) -> Literal[-1, 0, 1]:
    """Compare two semver versions.

    Returns:
        -1 if a < b, 0 if a == b, 1 if a > b.

    Raises:
        InvalidVersionError: If either version is invalid.
    """
    return SemVer.parse(a).compare(SemVer.parse(b))


def sort_versions_desc(versions: list[str]) -> list[str]:
    """Sort versions highest first, dropping anything that is not semver."""
    valid = [v for v in versions if is_valid_semver(v)]
    return sorted(valid, key=functools.cmp_to_key(compare_semver), reverse=True)


def get_highest_version(versions: list[str]) -> str | None:
    """Return the highest valid version, or None when there is none."""
    ordered = sort_versions_desc(versions)
    return ordered[0] if ordered else None


def is_greater_than(a: str, b: str) -> bool:
    return compare_semver(a, b) > 0


def is_less_than(a: str, b: str) -> bool:
    return compare_semver(a, b) < 0


def bump_version(current_version: str, bump: BumpType) -> str:
    """Bump a version by release type.

    A prerelease of the target triple is promoted rather than incremented,
    e.g. ``1.1.0-rc.1`` bumped by ``minor`` gives ``1.1.0``.

    Raises:
        InvalidVersionError: If ``current_version`` is invalid.
        ValueError: If ``bump`` is not a known release type.
    """
    if not is_valid_semver(current_version):
        raise InvalidVersionError(current_version)
    parsed = SemVer.parse(current_version)
    pre = bool(parsed.prerelease)

    if bump == "major":
        keep = pre and parsed.minor == 0 and parsed.patch == 0
        return str(SemVer(parsed.major if keep else parsed.major + 1, 0, 0))
    if bump == "minor":
        keep = pre and parsed.patch == 0
        return str(SemVer(parsed.major, parsed.minor if keep else parsed.minor + 1, 0))
    if bump == "patch":
        return str(SemVer(parsed.major, parsed.minor, parsed.patch if pre else parsed.patch + 1))
    raise ValueError(f"Failed to bump version {current_version} by {bump}")


__all__ = [
    "SEMVER_PATTERN",
    "BumpType",
    "SemVer",
    "bump_version",
    "compare_semver",
    "get_highest_version",
    "is_greater_than",
    "is_less_than",
    "is_valid_semver",
    "sort_versions_desc",
]
