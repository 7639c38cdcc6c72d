"""
Fleet-wide stats aggregation.
"""

import asyncio
from typing import List, Optional, Sequence, TYPE_CHECKING

from shared.errors import AggregationError
from shared.logging import get_logger
from ..adapters.peer_client import PeerStatsClient
from .counters import UsageCounters, UsageStats

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


def _normalize_url(url: str) -> str:
    return url.rstrip("/").lower()


class StatsAggregator:
    """Sums this node's counters with every peer's.

    When ``self_url`` names one of ``node_urls`` that node is read from the
    local counters instead of over HTTP. Without ``self_url`` every listed node
    is treated as a peer and local counters are not added separately.
    """

    def __init__(
        self,
        counters: UsageCounters,
        peer_client: PeerStatsClient,
        node_urls: Sequence[str],
        self_url: Optional[str] = None,
        *,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.counters = counters
        self.peer_client = peer_client
        self.self_url = self_url
        self.metrics = metrics
        self.logger = get_logger("edge.stats_aggregator")

        own = _normalize_url(self_url) if self_url else None
        self.peers: List[str] = [url for url in node_urls if _normalize_url(url) != own]

    async def local_stats(self) -> UsageStats:
        return await self.counters.snapshot()

    async def global_stats(self) -> UsageStats:
        """Sum of all nodes' counters; any peer failure fails the whole call."""
        local = self.local_stats() if self.self_url else _zero()
        results = await asyncio.gather(
            local,
            *(self.peer_client.fetch_stats(peer) for peer in self.peers),
            return_exceptions=True,
        )

        local_result, peer_results = results[0], results[1:]
        if isinstance(local_result, BaseException):
            raise local_result

        failures = {}
        for peer, result in zip(self.peers, peer_results):
            if isinstance(result, Exception):
                failures[peer] = getattr(result, "message", str(result))
                self._count("error")
            elif isinstance(result, BaseException):
                raise result
            else:
                self._count("ok")

        if failures:
            self.logger.warning("Stats aggregation failed", failed_peers=list(failures), peers=len(self.peers))
            raise AggregationError(
                f"{len(failures)} of {len(self.peers)} peers failed",
                details={"failed_peers": failures},
            )

        total = local_result
        for result in peer_results:
            total = total + result

        self.logger.debug("Stats aggregated", peers=len(self.peers), cdn_hits=total.cdn_hits)
        return total

    def _count(self, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("peer_stats_requests_total", result=result)


async def _zero() -> UsageStats:
    return UsageStats.zero()
