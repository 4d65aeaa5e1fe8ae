"""Registry client variants."""

from __future__ import annotations

from grekt_core.registry.clients.default import DefaultRegistryClient
from grekt_core.registry.clients.github import GitHubRegistryClient
from grekt_core.registry.clients.gitlab import GitLabRegistryClient

__all__ = ["DefaultRegistryClient", "GitHubRegistryClient", "GitLabRegistryClient"]
