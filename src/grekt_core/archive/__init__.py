"""Archive safety: pre-extraction validation and stripped extraction."""

from __future__ import annotations

from grekt_core.archive.extract import extract_tarball, extract_verified
from grekt_core.archive.validator import (
    ArchiveEntry,
    ArchiveLister,
    TarCommandLister,
    TarfileLister,
    TarValidationResult,
    apply_strip_components,
    ensure_safe,
    validate_tarball_contents,
)

__all__ = [
    "ArchiveEntry",
    "ArchiveLister",
    "TarCommandLister",
    "TarValidationResult",
    "TarfileLister",
    "apply_strip_components",
    "ensure_safe",
    "extract_tarball",
    "extract_verified",
    "validate_tarball_contents",
]
