"""Configuration loading for grekt-core.

Two concerns live here:

- LocalConfig loading from ``.grekt/config.yaml`` (registry entries and
  git-source tokens). Locating the file is the workspace layer's job; this
  module only reads a given path.
- HTTP client settings shared by every registry client.

Example:
    >>> from grekt_core.config import load_local_config, create_http_client
    >>> config = load_local_config(".grekt/config.yaml")
    >>> async with create_http_client() as http:
    ...     ...
"""

from __future__ import annotations

from pathlib import Path

import httpx
import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from grekt_core.constants import USER_AGENT
from grekt_core.errors import ErrorCode, GrektError
from grekt_core.schemas.registry import LocalConfig

logger = structlog.get_logger(__name__)


class ConfigError(GrektError):
    """Raised when the local config file exists but cannot be used."""

    code = ErrorCode.CONFIGURATION

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid config {path}: {reason}")


class HttpSettings(BaseModel):
    """Settings for the shared ``httpx.AsyncClient``.

    Examples:
        >>> HttpSettings(timeout_seconds=10).timeout_seconds
        10.0
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    timeout_seconds: float = Field(default=30.0, gt=0, description="Per-request timeout")
    connect_timeout_seconds: float = Field(default=10.0, gt=0)
    user_agent: str = Field(default=USER_AGENT)
    max_connections: int = Field(default=20, ge=1)


def create_http_client(
    settings: HttpSettings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build the async HTTP client used by registry and OCI clients.

    Redirects are not followed by default; blob and tarball downloads opt in
    per request.

    Args:
        settings: HTTP settings; defaults apply when None.
        transport: Optional transport (``httpx.MockTransport`` in tests).
    """
    cfg = settings or HttpSettings()
    return httpx.AsyncClient(
        timeout=httpx.Timeout(cfg.timeout_seconds, connect=cfg.connect_timeout_seconds),
        headers={"User-Agent": cfg.user_agent},
        limits=httpx.Limits(max_connections=cfg.max_connections),
        transport=transport,
    )


def load_local_config(path: str | Path) -> LocalConfig | None:
    """Load ``.grekt/config.yaml``.

    Args:
        path: Path to the config file.

    Returns:
        LocalConfig, or None when the file does not exist.

    Raises:
        ConfigError: If the file is not valid YAML or fails validation.
    """
    config_path = Path(path)
    if not config_path.exists():
        logger.debug("local_config_missing", path=str(config_path))
        return None

    try:
        with config_path.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(config_path, f"Failed to parse YAML: {e}") from e

    if data is None:
        return LocalConfig()
    if not isinstance(data, dict):
        raise ConfigError(config_path, "Top-level document must be a mapping")

    try:
        config = LocalConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(config_path, str(e)) from e

    logger.debug(
        "local_config_loaded",
        path=str(config_path),
        registries=sorted(config.registries),
    )
    return config


__all__ = ["ConfigError", "HttpSettings", "create_http_client", "load_local_config"]
