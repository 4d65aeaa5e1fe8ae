"""Token providers for registry and git-source credentials.

The resolver never reads the environment itself; it asks a TokenProvider.
Config-entry tokens always win over anything a provider returns.

Lookup order for ``ChainTokenProvider(ConfigTokenProvider(cfg), EnvTokenProvider())``:
    1. ``tokens`` section of ``.grekt/config.yaml`` (host, then type key)
    2. Environment variables:

    ============  =============================================
    Backend       Variables
    ============  =============================================
    github        GITHUB_TOKEN, GH_TOKEN
    gitlab        GITLAB_TOKEN_<HOST> (self-hosted), GITLAB_TOKEN
    default       GREKT_TOKEN
    ============  =============================================

``<HOST>`` is the host upper-cased with every non-alphanumeric character
replaced by ``_`` (``git.example.com`` -> ``GITLAB_TOKEN_GIT_EXAMPLE_COM``).
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from typing import Literal, Protocol, runtime_checkable

from grekt_core.constants import GITLAB_DEFAULT_HOST
from grekt_core.schemas.registry import LocalConfig

GitSourceType = Literal["github", "gitlab"]

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


@runtime_checkable
class TokenProvider(Protocol):
    """Supplies tokens for registries and git sources."""

    def get_registry_token(self, scope: str) -> str | None:
        """Token for the default registry serving ``scope``."""
        ...

    def get_git_token(self, source_type: GitSourceType, host: str | None = None) -> str | None:
        """Token for a GitHub or GitLab host."""
        ...


def host_env_suffix(host: str) -> str:
    """Environment-variable suffix for a host.

    Examples:
        >>> host_env_suffix("git.example.com")
        'GIT_EXAMPLE_COM'
    """
    return _NON_ALNUM.sub("_", host).upper()


class EnvTokenProvider:
    """Reads tokens from environment variables.

    Args:
        environ: Mapping to read from; ``os.environ`` when None.
    """

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = os.environ if environ is None else environ

    def _first(self, *names: str) -> str | None:
        for name in names:
            value = self._environ.get(name)
            if value:
                return value
        return None

    def get_registry_token(self, scope: str) -> str | None:  # noqa: ARG002
        return self._first("GREKT_TOKEN")

    def get_git_token(self, source_type: GitSourceType, host: str | None = None) -> str | None:
        if source_type == "github":
            return self._first("GITHUB_TOKEN", "GH_TOKEN")
        if host and host != GITLAB_DEFAULT_HOST:
            return self._first(f"GITLAB_TOKEN_{host_env_suffix(host)}", "GITLAB_TOKEN")
        return self._first("GITLAB_TOKEN")


class ConfigTokenProvider:
    """Reads the ``tokens`` section of the local config.

    Keys are host names (``gitlab.example.com``) or backend types
    (``github``, ``gitlab``); a host key wins over the type key.
    """

    def __init__(self, config: LocalConfig | None) -> None:
        self._tokens = dict(config.tokens) if config is not None else {}

    def get_registry_token(self, scope: str) -> str | None:
        return self._tokens.get(scope)

    def get_git_token(self, source_type: GitSourceType, host: str | None = None) -> str | None:
        if host and host in self._tokens:
            return self._tokens[host]
        return self._tokens.get(source_type)


class ChainTokenProvider:
    """Queries providers in order and returns the first token found."""

    def __init__(self, *providers: TokenProvider) -> None:
        self._providers = providers

    def get_registry_token(self, scope: str) -> str | None:
        for provider in self._providers:
            token = provider.get_registry_token(scope)
            if token:
                return token
        return None

    def get_git_token(self, source_type: GitSourceType, host: str | None = None) -> str | None:
        for provider in self._providers:
            token = provider.get_git_token(source_type, host)
            if token:
                return token
        return None


def default_token_provider(config: LocalConfig | None = None) -> TokenProvider:
    """Config tokens first, then environment variables."""
    return ChainTokenProvider(ConfigTokenProvider(config), EnvTokenProvider())


__all__ = [
    "ChainTokenProvider",
    "ConfigTokenProvider",
    "EnvTokenProvider",
    "GitSourceType",
    "TokenProvider",
    "default_token_provider",
    "host_env_suffix",
]
