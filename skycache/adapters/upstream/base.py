from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class UpstreamPayload:
    """Artifact bytes as delivered by the upstream provider."""

    content: bytes
    content_type: str | None
    source_locator: str


class AbstractUpstreamClient(ABC):
    """Interface for clients that fetch artifacts by source locator."""

    @abstractmethod
    async def fetch(self, source_locator: str) -> UpstreamPayload:
        """Fetch the artifact addressed by ``source_locator``.

        Args:
            source_locator: Upstream address (URL) of the artifact.

        Returns:
            UpstreamPayload: Artifact bytes and reported content type.

        Raises:
            UpstreamAppError: If the provider cannot deliver the artifact.
            ValidationAppError: If the locator is not acceptable.
        """
        ...

    async def aclose(self) -> None:
        """Release network resources held by the client."""
