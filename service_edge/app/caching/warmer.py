"""
Pre-loads the most requested URLs into the cache.
"""

import asyncio
import time
from typing import Any, Dict, Optional, TYPE_CHECKING

from shared.errors import EdgeError
from shared.logging import get_logger
from ..stats.counters import UsageCounters
from .cache_manager import CacheManager

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class CacheWarmer:
    """Refreshes the top of the popularity leaderboard.

    Warming never counts as a hit and never adds to bytes served; it only
    fetches entries that are missing or older than ``max_age_ms``.
    """

    def __init__(
        self,
        cache_manager: CacheManager,
        counters: UsageCounters,
        *,
        max_age_ms: int,
        concurrency: int = 5,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.cache_manager = cache_manager
        self.counters = counters
        self.max_age_ms = max_age_ms
        self.metrics = metrics
        self.logger = get_logger("edge.cache_warmer")
        self._semaphore = asyncio.Semaphore(max(1, concurrency))

    async def warm(self, limit: int = 20) -> Dict[str, Any]:
        """Warm up to ``limit`` URLs and return a summary of outcomes."""
        start = time.perf_counter()
        top = await self.counters.top_urls(limit)
        urls = [url for url, _ in top]

        summary: Dict[str, Any] = {
            "requested": len(urls),
            "fresh": 0,
            "refreshed": 0,
            "errors": [],
        }
        if not urls:
            self.logger.info("Leaderboard empty, cache warm skipped")
            return summary

        outcomes = await asyncio.gather(*(self._warm_entry(url) for url in urls))
        for url, outcome in zip(urls, outcomes):
            if outcome in ("fresh", "refreshed"):
                summary[outcome] += 1
            else:
                summary["errors"].append({"url": url, "error": outcome})

        self.logger.info(
            "Cache warm completed",
            requested=summary["requested"],
            fresh=summary["fresh"],
            refreshed=summary["refreshed"],
            errors=len(summary["errors"]),
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return summary

    async def _warm_entry(self, url: str) -> str:
        async with self._semaphore:
            try:
                result = await self.cache_manager.warm(url, self.max_age_ms)
            except EdgeError as exc:
                self.logger.warning("Failed to warm cache entry", url=url, error=exc.message)
                self._record("error")
                return exc.message
            self._record(result)
            return result

    def _record(self, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("cache_warm_total", result=result)
