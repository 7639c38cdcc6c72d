"""
Key-value store access for the edge node.

The cache, counters, leaderboard and node index only rely on the primitives
declared on ``KeyValueStore``. ``RedisStore`` is the production backend;
``MemoryStore`` keeps the same semantics in-process for local runs and tests.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError
from geopy.distance import great_circle

from shared.errors import StoreError
from shared.logging import get_logger


# Large enough to cover any point on the globe from any other point.
EARTH_CIRCUMFERENCE_KM = 40075.0


class KeyValueStore:
    """Async primitives shared by every store backend."""

    async def incr(self, key: str) -> int:
        raise NotImplementedError

    async def incrby(self, key: str, amount: int) -> int:
        raise NotImplementedError

    async def get_int(self, key: str) -> int:
        """Read an integer counter; missing keys read as 0."""
        raise NotImplementedError

    async def zincrby(self, key: str, amount: float, member: str) -> float:
        raise NotImplementedError

    async def zrevrange_withscores(self, key: str, limit: int) -> List[Tuple[str, float]]:
        """Highest scores first."""
        raise NotImplementedError

    async def geoadd(self, key: str, longitude: float, latitude: float, member: str) -> None:
        raise NotImplementedError

    async def geosearch(self, key: str, longitude: float, latitude: float, count: int) -> List[Tuple[str, float]]:
        """Members nearest to the point as ``(member, distance_km)``, ascending."""
        raise NotImplementedError

    async def hset(self, key: str, mapping: Dict[str, str]) -> None:
        raise NotImplementedError

    async def hgetall(self, key: str) -> Dict[str, str]:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError

    async def ping(self) -> bool:
        raise NotImplementedError

    async def close(self) -> None:
        pass


class RedisStore(KeyValueStore):
    """Redis-backed store using ``redis.asyncio``."""

    def __init__(self, redis_url: str, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.logger = get_logger("edge.store.redis")
        self._redis = client or redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            health_check_interval=30
        )

    @contextmanager
    def _guard(self, operation: str, key: str) -> Iterator[None]:
        try:
            yield
        except RedisError as exc:
            self.logger.error("Redis operation failed", operation=operation, key=key, error=str(exc))
            raise StoreError(f"{operation} failed", details={"key": key, "error": str(exc)}) from exc

    async def incr(self, key: str) -> int:
        with self._guard("incr", key):
            return int(await self._redis.incr(key))

    async def incrby(self, key: str, amount: int) -> int:
        with self._guard("incrby", key):
            return int(await self._redis.incrby(key, amount))

    async def get_int(self, key: str) -> int:
        with self._guard("get", key):
            value = await self._redis.get(key)
        if value is None:
            return 0
        try:
            return int(value)
        except ValueError as exc:
            raise StoreError("Counter is not an integer", details={"key": key, "value": value}) from exc

    async def zincrby(self, key: str, amount: float, member: str) -> float:
        with self._guard("zincrby", key):
            return float(await self._redis.zincrby(key, amount, member))

    async def zrevrange_withscores(self, key: str, limit: int) -> List[Tuple[str, float]]:
        with self._guard("zrevrange", key):
            rows = await self._redis.zrevrange(key, 0, limit - 1, withscores=True)
        return [(member, float(score)) for member, score in rows]

    async def geoadd(self, key: str, longitude: float, latitude: float, member: str) -> None:
        with self._guard("geoadd", key):
            await self._redis.geoadd(key, (longitude, latitude, member))

    async def geosearch(self, key: str, longitude: float, latitude: float, count: int) -> List[Tuple[str, float]]:
        with self._guard("geosearch", key):
            rows = await self._redis.geosearch(
                key,
                longitude=longitude,
                latitude=latitude,
                radius=EARTH_CIRCUMFERENCE_KM,
                unit="km",
                sort="ASC",
                count=count,
                withdist=True,
            )
        return [(member, float(distance)) for member, distance in rows]

    async def hset(self, key: str, mapping: Dict[str, str]) -> None:
        with self._guard("hset", key):
            await self._redis.hset(key, mapping=mapping)

    async def hgetall(self, key: str) -> Dict[str, str]:
        with self._guard("hgetall", key):
            return dict(await self._redis.hgetall(key))

    async def delete(self, key: str) -> None:
        with self._guard("delete", key):
            await self._redis.delete(key)

    async def ping(self) -> bool:
        with self._guard("ping", "-"):
            return bool(await self._redis.ping())

    async def close(self) -> None:
        await self._redis.aclose()


class MemoryStore(KeyValueStore):
    """In-process store.

    Every method runs to completion without awaiting, so each call is atomic
    with respect to other coroutines on the same event loop.
    """

    def __init__(self):
        self._values: Dict[str, str] = {}
        self._sorted_sets: Dict[str, Dict[str, float]] = {}
        self._geo: Dict[str, Dict[str, Tuple[float, float]]] = {}
        self._hashes: Dict[str, Dict[str, str]] = {}

    async def incr(self, key: str) -> int:
        return await self.incrby(key, 1)

    async def incrby(self, key: str, amount: int) -> int:
        value = int(self._values.get(key, "0")) + int(amount)
        self._values[key] = str(value)
        return value

    async def get_int(self, key: str) -> int:
        return int(self._values.get(key, "0"))

    async def zincrby(self, key: str, amount: float, member: str) -> float:
        members = self._sorted_sets.setdefault(key, {})
        members[member] = members.get(member, 0.0) + amount
        return members[member]

    async def zrevrange_withscores(self, key: str, limit: int) -> List[Tuple[str, float]]:
        members = self._sorted_sets.get(key, {})
        # Redis orders equal scores by member, descending, in ZREVRANGE
        ranked = sorted(members.items(), key=lambda item: (item[1], item[0]), reverse=True)
        return ranked[:limit]

    async def geoadd(self, key: str, longitude: float, latitude: float, member: str) -> None:
        self._geo.setdefault(key, {})[member] = (longitude, latitude)

    async def geosearch(self, key: str, longitude: float, latitude: float, count: int) -> List[Tuple[str, float]]:
        origin = (latitude, longitude)
        distances = [
            (member, great_circle(origin, (lat, lon)).km)
            for member, (lon, lat) in self._geo.get(key, {}).items()
        ]
        # sorted() is stable: equal distances keep insertion order
        distances.sort(key=lambda item: item[1])
        return distances[:count]

    async def hset(self, key: str, mapping: Dict[str, str]) -> None:
        self._hashes.setdefault(key, {}).update({field: str(value) for field, value in mapping.items()})

    async def hgetall(self, key: str) -> Dict[str, str]:
        return dict(self._hashes.get(key, {}))

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)
        self._sorted_sets.pop(key, None)
        self._geo.pop(key, None)
        self._hashes.pop(key, None)

    async def ping(self) -> bool:
        return True


def create_store(backend: str, redis_url: str) -> KeyValueStore:
    """Build the configured store backend."""
    if backend == "redis":
        return RedisStore(redis_url)
    if backend == "memory":
        return MemoryStore()
    raise ValueError(f"Unknown store backend: {backend}")
