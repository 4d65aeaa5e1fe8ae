"""Exception hierarchy for grekt-core.

All exceptions inherit from GrektError. Public registry-client operations
never let these escape: they are converted into failed results at the edge
via ``result_from_error`` (see grekt_core.registry.base). They remain useful
for internal control flow and for callers using the lower-level helpers
(validator, integrity engine, resolver) directly.

Exception Hierarchy:
    GrektError (base)
    ├── InvalidArtifactIdError       # Artifact id does not match the grammar
    ├── InvalidVersionError          # Version string is not valid semver
    ├── RegistryConfigError          # Registry entry is missing required fields
    ├── ArtifactNotFoundError        # Artifact, version, tag or blob missing
    ├── AuthenticationError          # Token missing or bearer exchange failed
    ├── RegistryUnavailableError     # Transport-level failure
    ├── ManifestValidationError      # Malformed JSON, manifest or metadata
    ├── UnsafeTarballError           # Tarball rejected by the security validator
    ├── IntegrityMismatchError       # Extracted content differs from expected hash
    ├── ImmutabilityViolationError   # Publishing over an existing version
    └── UnsupportedOperationError    # Operation unavailable for this backend

Exit Codes:
    0 - Success
    1 - General error (GrektError)
    2 - Authentication error
    3 - Not found
    4 - Immutability violation
    5 - Network/connectivity error
    6 - Validation failure (manifest or tarball)
    7 - Integrity mismatch
    8 - Unsupported operation

Example:
    >>> from grekt_core.errors import ArtifactNotFoundError
    >>> raise ArtifactNotFoundError("@scope/name", "1.0.0")
    Traceback (most recent call last):
        ...
    ArtifactNotFoundError: Artifact not found: @scope/name@1.0.0
"""

from __future__ import annotations

import json
from enum import Enum

import httpx
from pydantic import ValidationError


class ErrorCode(str, Enum):
    """Failure taxonomy carried by every failed result."""

    NOT_FOUND = "not_found"
    AUTH_REQUIRED = "auth_required"
    NETWORK_FAILURE = "network_failure"
    VALIDATION_FAILURE = "validation_failure"
    INTEGRITY_MISMATCH = "integrity_mismatch"
    UNSUPPORTED_OPERATION = "unsupported_operation"
    IMMUTABLE_VERSION = "immutable_version"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


class GrektError(Exception):
    """Base exception for all grekt-core errors.

    Attributes:
        exit_code: CLI exit code for this error type (default: 1).
        code: Failure category reported on result objects.
    """

    exit_code: int = 1
    code: ErrorCode = ErrorCode.UNKNOWN


class InvalidArtifactIdError(GrektError, ValueError):
    """Raised when an artifact id does not match ``@scope/name[@version]``."""

    code = ErrorCode.VALIDATION_FAILURE

    def __init__(self, source: str) -> None:
        self.source = source
        super().__init__(
            f"Invalid artifact ID: {source}. Expected format: @scope/name or scope/name"
        )


class InvalidVersionError(GrektError, ValueError):
    """Raised when a version string is not valid semver."""

    code = ErrorCode.VALIDATION_FAILURE

    def __init__(self, version: str) -> None:
        self.version = version
        super().__init__(f"Invalid semver version: {version}")


class RegistryConfigError(GrektError, ValueError):
    """Raised when a resolved registry cannot back a client.

    Example:
        >>> raise RegistryConfigError("gitlab", "GitLab registry requires 'project' field in config")
    """

    code = ErrorCode.CONFIGURATION

    def __init__(self, registry_type: str, reason: str) -> None:
        self.registry_type = registry_type
        self.reason = reason
        super().__init__(reason)


class ArtifactNotFoundError(GrektError):
    """Raised when an artifact, version, tag or blob does not exist.

    Attributes:
        artifact: Artifact id, repository or digest that was sought.
        reference: Optional version/tag/digest.
        exit_code: CLI exit code (3).
    """

    exit_code = 3
    code = ErrorCode.NOT_FOUND

    def __init__(self, artifact: str, reference: str | None = None) -> None:
        self.artifact = artifact
        self.reference = reference
        target = f"{artifact}@{reference}" if reference else artifact
        super().__init__(f"Artifact not found: {target}")


class AuthenticationError(GrektError):
    """Raised when an operation needs credentials that are absent or rejected.

    Attributes:
        registry: Registry host where authentication failed.
        reason: Description of why authentication failed.
        exit_code: CLI exit code (2).
    """

    exit_code = 2
    code = ErrorCode.AUTH_REQUIRED

    def __init__(self, registry: str, reason: str) -> None:
        self.registry = registry
        self.reason = reason
        super().__init__(f"Authentication failed for {registry}: {reason}")


class RegistryUnavailableError(GrektError):
    """Raised on transport-level failures (DNS, connect, timeouts, 5xx).

    Attributes:
        registry: Registry host that is unreachable.
        reason: Description of the connectivity failure.
        exit_code: CLI exit code (5).
    """

    exit_code = 5
    code = ErrorCode.NETWORK_FAILURE

    def __init__(self, registry: str, reason: str) -> None:
        self.registry = registry
        self.reason = reason
        super().__init__(f"Registry unavailable: {registry}: {reason}")


class ManifestValidationError(GrektError):
    """Raised when a manifest, metadata document or JSON body is malformed."""

    exit_code = 6
    code = ErrorCode.VALIDATION_FAILURE

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid document from {source}: {reason}")


class UnsafeTarballError(GrektError):
    """Raised when the tarball security validator rejects an archive.

    Attributes:
        violations: Every violation found; the validator never short-circuits.
        exit_code: CLI exit code (6).
    """

    exit_code = 6
    code = ErrorCode.VALIDATION_FAILURE

    def __init__(self, violations: list[str]) -> None:
        self.violations = list(violations)
        super().__init__(f"Unsafe tarball: {', '.join(self.violations)}")


class IntegrityMismatchError(GrektError):
    """Raised when extracted content does not match an expected integrity digest.

    Attributes:
        expected: Expected ``sha256:`` digest.
        actual: Digest computed from the extracted tree.
        exit_code: CLI exit code (7).
    """

    exit_code = 7
    code = ErrorCode.INTEGRITY_MISMATCH

    def __init__(self, expected: str, actual: str, path: str | None = None) -> None:
        self.expected = expected
        self.actual = actual
        self.path = path
        where = f" for {path}" if path else ""
        super().__init__(f"Integrity mismatch{where}: expected {expected}, got {actual}")


class ImmutabilityViolationError(GrektError):
    """Raised when publishing a version that already exists.

    Registries are append-only: a published version is never overwritten.
    """

    exit_code = 4
    code = ErrorCode.IMMUTABLE_VERSION

    def __init__(self, artifact_id: str, version: str) -> None:
        self.artifact_id = artifact_id
        self.version = version
        super().__init__(
            f"Version {version} already exists for {artifact_id}. "
            "Cannot overwrite published versions."
        )


class UnsupportedOperationError(GrektError):
    """Raised when a backend cannot perform the requested operation."""

    exit_code = 8
    code = ErrorCode.UNSUPPORTED_OPERATION

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(reason)


def error_code_for_status(status_code: int) -> ErrorCode:
    """Map an unsuccessful HTTP status to the failure taxonomy."""
    if status_code in (401, 403):
        return ErrorCode.AUTH_REQUIRED
    if status_code == 404:
        return ErrorCode.NOT_FOUND
    return ErrorCode.NETWORK_FAILURE


def error_code_for(error: BaseException) -> ErrorCode:
    """Classify an exception caught at a public result boundary.

    Examples:
        >>> error_code_for(ArtifactNotFoundError("@scope/name"))
        <ErrorCode.NOT_FOUND: 'not_found'>
        >>> error_code_for(httpx.ConnectError("refused"))
        <ErrorCode.NETWORK_FAILURE: 'network_failure'>
    """
    if isinstance(error, GrektError):
        return error.code
    if isinstance(error, httpx.HTTPError):
        return ErrorCode.NETWORK_FAILURE
    if isinstance(error, (json.JSONDecodeError, ValidationError)):
        return ErrorCode.VALIDATION_FAILURE
    return ErrorCode.UNKNOWN


__all__ = [
    "ArtifactNotFoundError",
    "AuthenticationError",
    "ErrorCode",
    "GrektError",
    "ImmutabilityViolationError",
    "IntegrityMismatchError",
    "InvalidArtifactIdError",
    "InvalidVersionError",
    "ManifestValidationError",
    "RegistryConfigError",
    "RegistryUnavailableError",
    "UnsafeTarballError",
    "UnsupportedOperationError",
    "error_code_for",
    "error_code_for_status",
]
