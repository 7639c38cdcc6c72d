"""
Shared fixtures for edge node tests.
"""

import asyncio
from typing import List, Optional

import pytest

from shared.errors import OriginError
from service_edge.app.adapters.origin_client import OriginResponse
from service_edge.app.caching.blob_store import BlobStore
from service_edge.app.caching.cache_manager import CacheManager
from service_edge.app.stats.counters import UsageCounters
from service_edge.app.store.kv_store import MemoryStore


class StubOrigin:
    """Origin client double that records every fetch."""

    def __init__(self, body: bytes = b"console.log('hi');", content_type: str = "application/javascript"):
        self.body = body
        self.content_type = content_type
        self.calls: List[str] = []
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.delay = 0.0

    async def fetch(self, url: str) -> OriginResponse:
        self.calls.append(url)
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return OriginResponse(
            content=self.body,
            content_type=self.content_type,
            content_length=len(self.body),
            duration_ms=1.5,
        )

    def fail_with(self, url: str = "https://origin.example/x", message: str = "Unexpected status 500"):
        self.error = OriginError(url, message, details={"status_code": 500})

    async def close(self) -> None:
        pass


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def counters(store):
    return UsageCounters(store)


@pytest.fixture
def blob_store(tmp_path):
    return BlobStore(tmp_path / "blobs")


@pytest.fixture
def origin():
    return StubOrigin()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache_manager(store, blob_store, origin, counters, clock):
    return CacheManager(store, blob_store, origin, counters, clock=clock)
