"""Integrity schemas.

FileHashMap values use the truncated ``sha256:<32 hex>`` form (first 16
bytes of a SHA-256 digest). Lockfiles already persist this form, so it is
kept as is.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

FileHashMap = dict[str, str]
"""Relative forward-slash path -> ``sha256:<32 hex>``."""

HASH_PATTERN = r"^sha256:[0-9a-f]{32}$"


class ModifiedFile(BaseModel):
    """A file whose content hash differs from the expected one."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str
    expected: str
    actual: str


class IntegrityResult(BaseModel):
    """Outcome of comparing an expected FileHashMap with a directory.

    Extra files are reported but do not invalidate the result; missing and
    modified files do.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    valid: bool
    missing_files: list[str] = Field(default_factory=list)
    modified_files: list[ModifiedFile] = Field(default_factory=list)
    extra_files: list[str] = Field(default_factory=list)


__all__ = ["FileHashMap", "HASH_PATTERN", "IntegrityResult", "ModifiedFile"]
