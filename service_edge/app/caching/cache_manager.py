"""
Fetch-through cache manager for origin content.
"""

import time
from typing import Callable, Optional, TYPE_CHECKING

from shared.errors import OriginError, StoreError
from shared.logging import get_logger
from ..adapters.origin_client import OriginClient
from ..stats.counters import UsageCounters
from ..store.kv_store import KeyValueStore
from .blob_store import BlobStore, sha256_hex
from .models import CachedResource
from .single_flight import SingleFlight

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


CACHE_KEY_PREFIX = "cache:"


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


class CacheManager:
    """Resolves URL keys to cached content, fetching from origin when needed.

    Entry metadata is a single hash per URL in the key-value store; payload
    bytes live in the blob store. A refresh writes the new blob first and then
    swaps the metadata in one ``hset``, so readers get either the whole old
    entry or the whole new one.
    """

    def __init__(
        self,
        store: KeyValueStore,
        blob_store: BlobStore,
        origin_client: OriginClient,
        counters: UsageCounters,
        *,
        metrics: Optional["MetricsCollector"] = None,
        clock: Callable[[], int] = wall_clock_ms,
    ):
        self.store = store
        self.blob_store = blob_store
        self.origin_client = origin_client
        self.counters = counters
        self.metrics = metrics
        self.clock = clock
        self.logger = get_logger("edge.cache_manager")
        self._single_flight: SingleFlight[CachedResource] = SingleFlight()

    @staticmethod
    def metadata_key(url_key: str) -> str:
        return f"{CACHE_KEY_PREFIX}{sha256_hex(url_key)}"

    async def record_hit(self) -> int:
        return await self.counters.record_hit()

    async def record_popularity(self, url_key: str) -> float:
        return await self.counters.record_popularity(url_key)

    async def retrieve(self, url_key: str, max_age_ms: int, *, route: str = "serve") -> CachedResource:
        """Count the request, then resolve it."""
        await self.record_hit()
        await self.record_popularity(url_key)
        return await self.resolve(url_key, max_age_ms, route=route)

    async def resolve(self, url_key: str, max_age_ms: int, *, route: str = "serve") -> CachedResource:
        """Return fresh content for ``url_key``, fetching from origin if needed.

        Raises ``OriginError`` when a required origin fetch fails; the
        existing entry is left in place but never served in that case.
        """
        if max_age_ms < 0:
            raise ValueError("max_age_ms must be non-negative")

        cached = await self.load(url_key)
        if cached is not None and cached.is_fresh(max_age_ms, self.clock()):
            self._count("cache_lookups_total", result="hit")
            resource = cached
        else:
            self._count("cache_lookups_total", result="miss" if cached is None else "stale")
            resource, shared = await self._single_flight.do(url_key, lambda: self._refresh(url_key))
            if shared:
                self._count("single_flight_waiters_total")

        await self.counters.add_bytes_served(resource.content_length)
        self._count("bytes_served_total", amount=resource.content_length, route=route)
        return resource

    async def warm(self, url_key: str, max_age_ms: int) -> str:
        """Refresh ``url_key`` if it is missing or stale, without touching usage counters.

        Returns ``"fresh"`` or ``"refreshed"``; origin failures propagate.
        """
        cached = await self.load(url_key)
        if cached is not None and cached.is_fresh(max_age_ms, self.clock()):
            return "fresh"
        await self._single_flight.do(url_key, lambda: self._refresh(url_key))
        return "refreshed"

    async def load(self, url_key: str) -> Optional[CachedResource]:
        """Read the current entry, or None if absent or unreadable."""
        metadata = await self.store.hgetall(self.metadata_key(url_key))
        if not metadata:
            return None

        try:
            blob_id = metadata["blob"]
            content_length = int(metadata["content_length"])
            fetched_at = int(metadata["fetched_at"])
            fetch_duration_ms = float(metadata.get("fetch_duration_ms", "0"))
        except (KeyError, ValueError) as exc:
            self.logger.warning("Discarding malformed cache metadata", url=url_key, error=str(exc))
            return None

        data = await self.blob_store.read(blob_id)
        if data is None:
            self.logger.warning("Cached blob missing, treating as miss", url=url_key, blob_id=blob_id)
            return None

        return CachedResource(
            url=url_key,
            data=data,
            content_type=metadata.get("content_type", ""),
            content_length=content_length,
            fetched_at=fetched_at,
            fetch_duration_ms=fetch_duration_ms,
            blob_id=blob_id,
        )

    async def _refresh(self, url_key: str) -> CachedResource:
        """Fetch from origin and replace the entry. Runs once per key at a time."""
        try:
            response = await self.origin_client.fetch(url_key)
        except OriginError:
            self._count("origin_fetches_total", result="error")
            raise
        self._count("origin_fetches_total", result="ok")
        self._observe("origin_fetch_duration_seconds", response.duration_ms / 1000)

        key_digest = sha256_hex(url_key)
        previous = await self.store.hgetall(self.metadata_key(url_key))

        resource = CachedResource(
            url=url_key,
            data=response.content,
            content_type=response.content_type,
            content_length=response.content_length,
            fetched_at=self.clock(),
            fetch_duration_ms=response.duration_ms,
            blob_id=self.blob_store.blob_id(key_digest, response.content),
        )

        previous_blob = previous.get("blob")
        await self.blob_store.write(resource.blob_id, resource.data)
        try:
            await self.store.hset(self.metadata_key(url_key), resource.metadata())
        except StoreError:
            # the old entry may still point at an identical blob
            if resource.blob_id != previous_blob:
                await self.blob_store.delete(resource.blob_id)
            raise

        previous_length = self._previous_length(previous)
        delta = resource.content_length - previous_length
        if delta:
            await self.counters.adjust_storage(delta)

        if previous_blob and previous_blob != resource.blob_id:
            await self.blob_store.delete(previous_blob)

        self.logger.info(
            "Cache entry refreshed",
            url=url_key,
            size_bytes=resource.content_length,
            replaced_bytes=previous_length,
            fetch_ms=round(response.duration_ms, 2),
        )
        return resource

    @staticmethod
    def _previous_length(metadata: dict) -> int:
        try:
            return int(metadata.get("content_length", 0))
        except ValueError:
            return 0

    def in_flight(self, url_key: str) -> bool:
        return self._single_flight.in_flight(url_key)

    def _count(self, metric_name: str, amount: float = 1, **labels) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, amount, **labels)

    def _observe(self, metric_name: str, value: float) -> None:
        if self.metrics:
            self.metrics.observe_histogram(metric_name, value)
