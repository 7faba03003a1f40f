"""Upstream adapter layer - fetches artifacts from the data provider."""

from skycache.adapters.upstream.base import AbstractUpstreamClient, UpstreamPayload
from skycache.adapters.upstream.factory import create_upstream_client
from skycache.adapters.upstream.http_client import HttpUpstreamClient

__all__ = [
    "AbstractUpstreamClient",
    "HttpUpstreamClient",
    "UpstreamPayload",
    "create_upstream_client",
]
