"""Artifact source-string parsing.

Supported forms:
    ``@author/name`` or ``name``          registry
    ``github:owner/repo[#ref]``           GitHub
    ``gitlab:owner/repo[#ref]``           gitlab.com
    ``gitlab:host.com/owner/repo[#ref]``  self-hosted GitLab
"""

from __future__ import annotations

from grekt_core.constants import GITLAB_DEFAULT_HOST
from grekt_core.schemas.registry import ParsedSource, SourceType

GITHUB_PREFIX = "github:"
GITLAB_PREFIX = "gitlab:"


def _split_ref(rest: str) -> tuple[str, str | None]:
    path, _, ref = rest.partition("#")
    return path, ref or None


def parse_source(source: str) -> ParsedSource:
    """Parse a source string by its literal prefix.

    A GitLab path with three or more segments whose first segment contains a
    dot is treated as ``host/owner/repo``.

    Examples:
        >>> parse_source("github:owner/repo#v1.0.0").ref
        'v1.0.0'
        >>> parse_source("gitlab:git.example.com/team/repo").host
        'git.example.com'
        >>> parse_source("@scope/name").type
        <SourceType.REGISTRY: 'registry'>
    """
    if source.startswith(GITHUB_PREFIX):
        path, ref = _split_ref(source[len(GITHUB_PREFIX) :])
        return ParsedSource(type=SourceType.GITHUB, identifier=path, ref=ref, raw=source)

    if source.startswith(GITLAB_PREFIX):
        path, ref = _split_ref(source[len(GITLAB_PREFIX) :])
        parts = path.split("/")
        if len(parts) >= 3 and "." in parts[0]:
            return ParsedSource(
                type=SourceType.GITLAB,
                identifier="/".join(parts[1:]),
                ref=ref,
                host=parts[0],
                raw=source,
            )
        return ParsedSource(
            type=SourceType.GITLAB,
            identifier=path,
            ref=ref,
            host=GITLAB_DEFAULT_HOST,
            raw=source,
        )

    return ParsedSource(type=SourceType.REGISTRY, identifier=source, raw=source)


def get_source_display_name(source: ParsedSource) -> str:
    """Human-readable source; the gitlab.com host is omitted."""
    ref = f"#{source.ref}" if source.ref else ""
    if source.type == SourceType.GITHUB:
        return f"{GITHUB_PREFIX}{source.identifier}{ref}"
    if source.type == SourceType.GITLAB:
        host = "" if source.host in (None, GITLAB_DEFAULT_HOST) else f"{source.host}/"
        return f"{GITLAB_PREFIX}{host}{source.identifier}{ref}"
    return source.identifier


__all__ = ["get_source_display_name", "parse_source"]
