"""Global constants for grekt-core.

Values here are shared by the resolver, the registry clients and the OCI
client. Hosts and media types are part of the persisted lockfile contract
(``resolved`` URLs embed them), so changes require a migration.
"""

from __future__ import annotations

import re

REGISTRY_HOST = "registry.grekt.com"
"""Host of the public default registry."""

GITLAB_DEFAULT_HOST = "gitlab.com"
GITHUB_DEFAULT_HOST = "ghcr.io"

USER_AGENT = "grekt-cli"

ARTIFACT_ID_PATTERN = re.compile(
    r"^@?([a-z0-9](?:[a-z0-9-]*[a-z0-9])?)/([a-z0-9](?:[a-z0-9-]*[a-z0-9])?)(?:@(.+))?$"
)
"""Artifact id: ``@scope/name`` or ``scope/name``, optionally ``@version``.

Scope and name are lowercase alphanumerics with inner hyphens only.
"""

ARTIFACT_FILE_NAME = "artifact.tar.gz"
"""File name used for uploaded/downloaded package tarballs."""

TEMP_TARBALL_PREFIX = "grekt-"

DEFAULT_STRIP_COMPONENTS = 1
"""Archives carry a single top-level wrapper directory."""

__all__ = [
    "ARTIFACT_FILE_NAME",
    "ARTIFACT_ID_PATTERN",
    "DEFAULT_STRIP_COMPONENTS",
    "GITHUB_DEFAULT_HOST",
    "GITLAB_DEFAULT_HOST",
    "REGISTRY_HOST",
    "TEMP_TARBALL_PREFIX",
    "USER_AGENT",
]
