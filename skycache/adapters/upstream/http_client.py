"""HTTP upstream client adapter.

Fetches artifacts with httpx, streaming the body so oversized payloads are
rejected without being buffered. Transport errors, HTTP 429 and 5xx are
retried by a tenacity policy with exponential backoff; other 4xx fail
immediately.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable
from urllib.parse import urlsplit

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from skycache.adapters.upstream.base import AbstractUpstreamClient, UpstreamPayload
from skycache.core.errors import UpstreamAppError, ValidationAppError

logger = logging.getLogger(__name__)

_ALLOWED_SCHEMES = {"http", "https"}


def redact_locator(source_locator: str) -> str:
    """Strip query and fragment (which may carry provider keys) for logging."""
    parts = urlsplit(source_locator)
    return parts._replace(query="", fragment="").geturl()


class _StatusError(Exception):
    """Non-success HTTP status from the provider."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.status_code == 429 or self.status_code >= 500


class HttpUpstreamClient(AbstractUpstreamClient):
    """Client for fetching artifacts over HTTP(S).

    Attributes:
        max_payload_bytes: Largest body accepted from the provider.
        allowed_hosts: Host allow-list (empty allows any host).
        max_retries: Attempts per fetch, including the first one.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 15.0,
        max_payload_bytes: int = 20 * 1024 * 1024,
        allowed_hosts: Iterable[str] = (),
        user_agent: str = "skycache/0.1",
        max_retries: int = 3,
        backoff_base_seconds: float = 1.0,
        backoff_max_seconds: float = 30.0,
        backoff_multiplier: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the async HTTP client.

        Args:
            timeout_seconds: Per-request timeout.
            max_payload_bytes: Maximum artifact size.
            allowed_hosts: Hosts source locators may point at.
            user_agent: User-Agent header sent upstream.
            max_retries: Attempts per fetch (>= 1).
            backoff_base_seconds: Delay before the second attempt.
            backoff_max_seconds: Delay ceiling.
            backoff_multiplier: Growth factor between delays.
            transport: Optional httpx transport (tests use ``MockTransport``).
            sleep: Awaitable sleep used between attempts.
        """
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")

        self.max_payload_bytes = max_payload_bytes
        self.allowed_hosts = frozenset(host.lower() for host in allowed_hosts)
        self.max_retries = max_retries
        self.backoff_base_seconds = backoff_base_seconds
        self.backoff_max_seconds = backoff_max_seconds
        self.backoff_multiplier = backoff_multiplier
        self._sleep = sleep
        self.client = httpx.AsyncClient(
            timeout=timeout_seconds,
            headers={"User-Agent": user_agent},
            follow_redirects=True,
            transport=transport,
        )

    def _check_host(self, host: str | None, source_locator: str) -> None:
        if self.allowed_hosts and (host or "").lower() not in self.allowed_hosts:
            raise ValidationAppError(
                code="source_host_not_allowed",
                message="Source locator host is not in the allow-list",
                details={"source_locator": redact_locator(source_locator)},
            )

    def _validate_locator(self, source_locator: str) -> None:
        """Reject locators that are not absolute http(s) URLs on allowed hosts.

        Raises:
            ValidationAppError: If the locator is not acceptable.
        """
        parts = urlsplit(source_locator)
        if parts.scheme.lower() not in _ALLOWED_SCHEMES or not parts.hostname:
            raise ValidationAppError(
                code="invalid_source_locator",
                message="Source locator must be an absolute http(s) URL",
                details={"source_locator": redact_locator(source_locator)},
            )
        self._check_host(parts.hostname, source_locator)

    async def _fetch_once(self, source_locator: str) -> UpstreamPayload:
        async with self.client.stream("GET", source_locator) as response:
            # Redirects must stay on the allow-list too.
            self._check_host(response.url.host, source_locator)
            if response.status_code >= 400:
                raise _StatusError(response.status_code)

            declared = response.headers.get("Content-Length")
            if declared and declared.isdigit() and int(declared) > self.max_payload_bytes:
                raise self._too_large(source_locator, int(declared))

            chunks: list[bytes] = []
            received = 0
            async for chunk in response.aiter_bytes():
                received += len(chunk)
                if received > self.max_payload_bytes:
                    raise self._too_large(source_locator, received)
                chunks.append(chunk)

            return UpstreamPayload(
                content=b"".join(chunks),
                content_type=response.headers.get("Content-Type"),
                source_locator=source_locator,
            )

    def _too_large(self, source_locator: str, actual: int) -> UpstreamAppError:
        return UpstreamAppError(
            code="upstream_payload_too_large",
            message="Upstream artifact exceeds the maximum payload size",
            details={
                "source_locator": redact_locator(source_locator),
                "max_bytes": self.max_payload_bytes,
                "actual_bytes": actual,
            },
        )

    async def fetch(self, source_locator: str) -> UpstreamPayload:
        """Fetch an artifact, retrying transient failures.

        Args:
            source_locator: Absolute http(s) URL of the artifact.

        Returns:
            UpstreamPayload: Artifact bytes and content type.

        Raises:
            ValidationAppError: If the locator is rejected before any request.
            UpstreamAppError: If every attempt fails or the failure is permanent.
        """
        self._validate_locator(source_locator)
        redacted = redact_locator(source_locator)
        attempts = 0

        try:
            async for attempt in self._retrying(redacted):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    return await self._fetch_once(source_locator)
        except _StatusError as exc:
            raise UpstreamAppError(
                code="upstream_http_error",
                message=f"Upstream provider answered HTTP {exc.status_code}",
                details={
                    "source_locator": redacted,
                    "attempts": attempts,
                    "context": {"status_code": exc.status_code},
                },
            ) from exc
        except httpx.TransportError as exc:
            raise UpstreamAppError(
                code="upstream_unreachable",
                message=f"Upstream provider unreachable: {type(exc).__name__}",
                details={"source_locator": redacted, "attempts": attempts},
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamAppError(
                code="upstream_error",
                message=f"Upstream request failed: {exc}",
                details={"source_locator": redacted, "attempts": attempts},
            ) from exc

        # AsyncRetrying either yields an attempt that returns or reraises.
        raise UpstreamAppError(code="upstream_error", message="Upstream fetch failed")

    def _retrying(self, redacted_locator: str) -> AsyncRetrying:
        """Retry policy: transport errors, 429 and 5xx, exponential backoff."""

        def log_retry(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            if isinstance(exc, _StatusError):
                reason = f"http_{exc.status_code}"
            else:
                reason = type(exc).__name__
            logger.warning(
                "upstream.retry",
                extra={
                    "source_locator": redacted_locator,
                    "attempt": retry_state.attempt_number,
                    "max_retries": self.max_retries,
                    "delay_s": retry_state.next_action.sleep if retry_state.next_action else None,
                    "reason": reason,
                },
            )

        return AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(
                multiplier=self.backoff_base_seconds,
                exp_base=self.backoff_multiplier,
                max=self.backoff_max_seconds,
            ),
            retry=(
                retry_if_exception_type(httpx.TransportError)
                | retry_if_exception(lambda exc: isinstance(exc, _StatusError) and exc.retryable)
            ),
            sleep=self._sleep,
            before_sleep=log_retry,
            reraise=True,
        )

    async def aclose(self) -> None:
        await self.client.aclose()
