"""Content-addressable integrity engine for extracted artifacts.

Hashes every file of an extracted artifact, aggregates the per-file hashes
into a single order-independent integrity digest, and verifies a directory
against a previously recorded FileHashMap.

Hash Format:
    ``sha256:`` followed by the first 32 hex characters (16 bytes) of the
    SHA-256 digest. The truncation matches values already stored in
    lockfiles and must not change.

Example:
    >>> from grekt_core.integrity import hash_directory, calculate_integrity
    >>> hashes = hash_directory(Path(".grekt/artifacts/@scope/name"))
    >>> calculate_integrity(hashes)
    'sha256:4f2c...'
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

import structlog

from grekt_core.errors import IntegrityMismatchError
from grekt_core.schemas.integrity import FileHashMap, IntegrityResult, ModifiedFile

logger = structlog.get_logger(__name__)

HASH_PREFIX = "sha256:"
TRUNCATED_HEX_LENGTH = 32


def hash_content(content: bytes) -> str:
    """Hash raw bytes into the truncated ``sha256:`` form."""
    digest = hashlib.sha256(content).hexdigest()
    return f"{HASH_PREFIX}{digest[:TRUNCATED_HEX_LENGTH]}"


def _iter_files(root: Path) -> list[Path]:
    files: list[Path] = []
    # os.walk does not descend into symlinked directories
    for dirpath, _dirnames, filenames in os.walk(root):
        for filename in filenames:
            path = Path(dirpath) / filename
            if path.is_file():
                files.append(path)
    return files


def hash_directory(root: Path | str) -> FileHashMap:
    """Hash all files below ``root``.

    Args:
        root: Directory to walk recursively.

    Returns:
        Mapping of forward-slash relative paths to file hashes. Empty
        directories contribute no entries.
    """
    root_path = Path(root)
    hashes: FileHashMap = {}
    for path in _iter_files(root_path):
        relative = path.relative_to(root_path).as_posix()
        hashes[relative] = hash_content(path.read_bytes())
    return hashes


def calculate_integrity(file_hashes: FileHashMap) -> str:
    """Aggregate per-file hashes into one integrity digest.

    Serializes ``path:hash`` lines sorted by path, so the result does not
    depend on the mapping's insertion order.
    """
    combined = "\n".join(f"{path}:{file_hashes[path]}" for path in sorted(file_hashes))
    return hash_content(combined.encode("utf-8"))


def verify_integrity(root: Path | str, expected_files: FileHashMap) -> IntegrityResult:
    """Compare a directory with the hashes recorded for it.

    Args:
        root: Directory holding the extracted artifact.
        expected_files: Hashes recorded at install time.

    Returns:
        IntegrityResult. Missing or modified files make it invalid; extra
        files are reported only.
    """
    actual = hash_directory(root)

    missing = sorted(path for path in expected_files if path not in actual)
    modified = [
        ModifiedFile(path=path, expected=expected_hash, actual=actual[path])
        for path, expected_hash in sorted(expected_files.items())
        if path in actual and actual[path] != expected_hash
    ]
    extra = sorted(path for path in actual if path not in expected_files)

    result = IntegrityResult(
        valid=not missing and not modified,
        missing_files=missing,
        modified_files=modified,
        extra_files=extra,
    )
    if not result.valid:
        logger.warning(
            "integrity_verification_failed",
            root=str(root),
            missing=len(missing),
            modified=len(modified),
        )
    return result


def verify_integrity_digest(root: Path | str, expected: str) -> FileHashMap:
    """Hash ``root`` and require its aggregate digest to equal ``expected``.

    Returns:
        The computed FileHashMap.

    Raises:
        IntegrityMismatchError: If the digest differs.
    """
    file_hashes = hash_directory(root)
    actual = calculate_integrity(file_hashes)
    if actual != expected:
        raise IntegrityMismatchError(expected, actual, path=str(root))
    return file_hashes


def get_directory_size(root: Path | str) -> int:
    """Return the total size in bytes of all files below ``root``."""
    return sum(path.stat().st_size for path in _iter_files(Path(root)))


__all__ = [
    "HASH_PREFIX",
    "calculate_integrity",
    "get_directory_size",
    "hash_content",
    "hash_directory",
    "verify_integrity",
    "verify_integrity_digest",
]
