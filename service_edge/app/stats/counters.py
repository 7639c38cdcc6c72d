"""
Usage counters shared by every request on the node.
"""

from typing import List, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..store.kv_store import KeyValueStore


HITS_KEY = "cdnhits"
BYTES_SERVED_KEY = "cdndata"
STORAGE_KEY = "cache-storage-usage"
POPULARITY_KEY = "serveurls"


class UsageStats(BaseModel):
    """Counter snapshot, also the wire format of ``GET /stats``."""

    model_config = ConfigDict(populate_by_name=True)

    cdn_hits: int = Field(alias="cdnHits", ge=0)
    cdn_data: int = Field(alias="cdnData", ge=0)
    cache_storage_usage: int = Field(alias="cacheStorageUsage")

    def __add__(self, other: "UsageStats") -> "UsageStats":
        return UsageStats(
            cdn_hits=self.cdn_hits + other.cdn_hits,
            cdn_data=self.cdn_data + other.cdn_data,
            cache_storage_usage=self.cache_storage_usage + other.cache_storage_usage,
        )

    @classmethod
    def zero(cls) -> "UsageStats":
        return cls(cdn_hits=0, cdn_data=0, cache_storage_usage=0)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class UsageCounters:
    """Atomic counter operations on top of the key-value store."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def record_hit(self) -> int:
        """Count one request; returns the new total."""
        return await self.store.incr(HITS_KEY)

    async def record_popularity(self, url: str) -> float:
        return await self.store.zincrby(POPULARITY_KEY, 1, url)

    async def add_bytes_served(self, amount: int) -> int:
        return await self.store.incrby(BYTES_SERVED_KEY, amount)

    async def adjust_storage(self, delta: int) -> int:
        return await self.store.incrby(STORAGE_KEY, delta)

    async def snapshot(self) -> UsageStats:
        return UsageStats(
            cdn_hits=await self.store.get_int(HITS_KEY),
            cdn_data=await self.store.get_int(BYTES_SERVED_KEY),
            cache_storage_usage=await self.store.get_int(STORAGE_KEY),
        )

    async def top_urls(self, limit: int = 10) -> List[Tuple[str, int]]:
        rows = await self.store.zrevrange_withscores(POPULARITY_KEY, limit)
        return [(url, int(score)) for url, score in rows]
