"""Factory for creating upstream client instances."""

from skycache.adapters.upstream.base import AbstractUpstreamClient
from skycache.adapters.upstream.http_client import HttpUpstreamClient
from skycache.core.config import UpstreamSettings


def parse_hosts(hosts_string: str | None) -> frozenset[str]:
    """Parse a comma-separated host allow-list (case-insensitive).

    Examples:
        >>> sorted(parse_hosts("images.example.org, API.example.org"))
        ['api.example.org', 'images.example.org']
        >>> parse_hosts(None)
        frozenset()
    """
    if not hosts_string:
        return frozenset()
    return frozenset(host.strip().lower() for host in hosts_string.split(",") if host.strip())


def create_upstream_client(upstream_settings: UpstreamSettings) -> AbstractUpstreamClient:
    """Instantiate the upstream client from configuration.

    Args:
        upstream_settings: ``settings.upstream`` (or a test override).

    Returns:
        AbstractUpstreamClient: Configured HTTP client.
    """
    return HttpUpstreamClient(
        timeout_seconds=upstream_settings.timeout_seconds,
        max_payload_bytes=upstream_settings.max_payload_bytes,
        allowed_hosts=parse_hosts(upstream_settings.allowed_hosts),
        user_agent=upstream_settings.user_agent,
        max_retries=upstream_settings.max_retries,
        backoff_base_seconds=upstream_settings.backoff_base_seconds,
        backoff_max_seconds=upstream_settings.backoff_max_seconds,
        backoff_multiplier=upstream_settings.backoff_multiplier,
    )
