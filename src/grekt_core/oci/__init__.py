"""OCI registry pull client and bearer token handling."""

from __future__ import annotations

from grekt_core.oci.auth import BearerTokenCache, build_basic_auth, parse_www_authenticate
from grekt_core.oci.client import OciClient

__all__ = [
    "BearerTokenCache",
    "OciClient",
    "build_basic_auth",
    "parse_www_authenticate",
]
