"""
Origin fetch client.
"""

import time
from dataclasses import dataclass
from typing import Optional

import httpx

from shared.errors import OriginError
from shared.logging import get_logger


DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class OriginResponse:
    """Body and headers of a successful origin fetch."""

    content: bytes
    content_type: str
    content_length: int
    duration_ms: float


class OriginClient:
    """Fetches remote URLs for the cache.

    Network errors, non-2xx statuses and timeouts all surface as
    ``OriginError``. No retries: a failed fetch fails the request.
    """

    def __init__(self, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout
        self.logger = get_logger("edge.origin_client")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def fetch(self, url: str) -> OriginResponse:
        start = time.perf_counter()
        try:
            response = await self._client.get(url, timeout=self.timeout)
        except httpx.TimeoutException as exc:
            self.logger.warning("Origin fetch timed out", url=url, timeout=self.timeout)
            raise OriginError(url, "timed out", details={"timeout_seconds": self.timeout}) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            self.logger.warning("Origin fetch failed", url=url, error=str(exc))
            raise OriginError(url, str(exc) or exc.__class__.__name__) from exc

        duration_ms = (time.perf_counter() - start) * 1000

        if not response.is_success:
            self.logger.warning(
                "Origin returned non-success status",
                url=url,
                status_code=response.status_code,
            )
            raise OriginError(
                url,
                f"Unexpected status {response.status_code}",
                details={"status_code": response.status_code},
            )

        content = response.content
        self.logger.debug(
            "Origin fetch completed",
            url=url,
            size_bytes=len(content),
            duration_ms=round(duration_ms, 2),
        )
        return OriginResponse(
            content=content,
            content_type=response.headers.get("content-type", DEFAULT_CONTENT_TYPE),
            content_length=len(content),
            duration_ms=duration_ms,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
