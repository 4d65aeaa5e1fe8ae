"""Bearer challenge handling for OCI registries.

GHCR and most OCI registries do not accept a personal access token as a
bearer token directly. They answer ``401`` with a challenge::

    WWW-Authenticate: Bearer realm="https://ghcr.io/token",service="ghcr.io",scope="repository:org/name:pull"

and expect the client to exchange its credential at ``realm`` for a
short-lived, scoped token.

Key Components:
    parse_www_authenticate: Challenge header -> BearerChallenge
    build_basic_auth: ``Authorization: Basic`` value for the exchange call
    BearerTokenCache: Per-client ``service:scope`` cache; concurrent misses
        for one key share a single in-flight exchange
"""

from __future__ import annotations

import asyncio
import base64
import re
from collections.abc import Awaitable, Callable

import structlog

from grekt_core.schemas.oci import BearerChallenge

logger = structlog.get_logger(__name__)

BEARER_PREFIX = "Bearer "

EXCHANGE_USERNAME = "USERNAME"
"""Placeholder username; PAT-based exchanges ignore it."""

_PARAM_PATTERNS = {
    name: re.compile(rf'{name}="([^"]+)"') for name in ("realm", "service", "scope")
}


def parse_www_authenticate(header: str | None) -> BearerChallenge | None:
    """Parse a ``WWW-Authenticate: Bearer`` header.

    Returns:
        The challenge, or None when the header is absent, not a Bearer
        challenge, or missing any of realm/service/scope.

    Examples:
        >>> parse_www_authenticate('Bearer realm="https://r/token",service="r",scope="s"').service
        'r'
        >>> parse_www_authenticate('Basic realm="x"') is None
        True
    """
    if not header or not header.startswith(BEARER_PREFIX):
        return None

    params = header[len(BEARER_PREFIX) :]
    values: dict[str, str] = {}
    for name, pattern in _PARAM_PATTERNS.items():
        match = pattern.search(params)
        if match is None:
            return None
        values[name] = match.group(1)
    return BearerChallenge(**values)


def build_basic_auth(token: str, username: str = EXCHANGE_USERNAME) -> str:
    """Return the ``Basic`` authorization value for ``username:token``."""
    encoded = base64.b64encode(f"{username}:{token}".encode()).decode("ascii")
    return f"Basic {encoded}"


TokenExchange = Callable[[], Awaitable[str | None]]


class BearerTokenCache:
    """Exchanged bearer tokens keyed by ``service:scope``.

    Owned by one OCI client instance. All access happens on the event loop,
    so reads and updates never interleave mid-operation. Concurrent misses
    for the same key await one shared exchange task instead of each calling
    the token endpoint. Failed exchanges (None or an exception) are not
    cached.

    Example:
        >>> cache = BearerTokenCache()
        >>> token = await cache.get_or_exchange("ghcr.io:repository:o/n:pull", exchange)
    """

    def __init__(self) -> None:
        self._tokens: dict[str, str] = {}
        self._in_flight: dict[str, asyncio.Task[str | None]] = {}

    def get(self, key: str) -> str | None:
        return self._tokens.get(key)

    def clear(self) -> None:
        self._tokens.clear()

    def __len__(self) -> int:
        return len(self._tokens)

    async def _run_exchange(self, key: str, exchange: TokenExchange) -> str | None:
        try:
            token = await exchange()
            if token:
                self._tokens[key] = token
            return token
        finally:
            self._in_flight.pop(key, None)

    async def get_or_exchange(self, key: str, exchange: TokenExchange) -> str | None:
        """Return the cached token for ``key`` or run (or join) an exchange.

        Args:
            key: ``service:scope`` cache key.
            exchange: Coroutine factory performing the exchange call.

        Returns:
            The bearer token, or None if the exchange failed.
        """
        cached = self._tokens.get(key)
        if cached:
            return cached

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._run_exchange(key, exchange))
            self._in_flight[key] = task
        else:
            logger.debug("oci_token_exchange_joined", cache_key=key)

        # Shield so one cancelled waiter does not cancel the shared exchange
        return await asyncio.shield(task)


__all__ = [
    "EXCHANGE_USERNAME",
    "BearerTokenCache",
    "build_basic_auth",
    "parse_www_authenticate",
]
