"""
Client for fleet peers' ``/stats`` endpoint.
"""

from typing import Dict, Optional

import httpx

from shared.circuit_breaker import CircuitBreakerManager, CircuitBreakerOpenException
from shared.errors import AggregationError
from shared.logging import get_logger
from ..stats.counters import UsageStats


class PeerStatsClient:
    """Fetches raw counters from peer nodes, one circuit breaker per peer."""

    def __init__(
        self,
        *,
        timeout: float = 5.0,
        failure_threshold: int = 3,
        recovery_timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout
        self.logger = get_logger("edge.peer_client")
        self.circuit_breakers = CircuitBreakerManager(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
        )
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def fetch_stats(self, peer_url: str) -> UsageStats:
        """Return the peer's counters or raise ``AggregationError``."""
        url = f"{peer_url.rstrip('/')}/stats"

        async def _request() -> UsageStats:
            response = await self._client.get(url, timeout=self.timeout)
            response.raise_for_status()
            return UsageStats.model_validate(response.json())

        breaker = self.circuit_breakers.get_circuit_breaker(peer_url)
        try:
            return await breaker.call(_request)
        except CircuitBreakerOpenException as exc:
            raise AggregationError("Peer circuit open", details={"peer": peer_url}) from exc
        except httpx.HTTPError as exc:
            self.logger.warning("Peer stats request failed", peer=peer_url, error=str(exc))
            raise AggregationError("Peer unreachable", details={"peer": peer_url, "error": str(exc)}) from exc
        except ValueError as exc:
            # JSON decode errors and pydantic validation errors
            self.logger.warning("Peer returned malformed stats", peer=peer_url, error=str(exc))
            raise AggregationError("Malformed peer stats", details={"peer": peer_url, "error": str(exc)}) from exc

    def breaker_states(self) -> Dict[str, str]:
        """Breaker state per peer contacted so far."""
        return {
            name: state["state"]
            for name, state in self.circuit_breakers.get_all_states().items()
        }

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
