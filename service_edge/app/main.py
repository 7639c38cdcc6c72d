"""
Edge node service: content cache, nearest-node lookup and fleet stats.
"""

from typing import Dict, Optional

from fastapi import Query, Request, Response
from fastapi.responses import RedirectResponse

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import ValidationError

from service_edge.app.adapters.geolocation_client import GeolocationClient
from service_edge.app.adapters.origin_client import OriginClient
from service_edge.app.adapters.peer_client import PeerStatsClient
from service_edge.app.caching.blob_store import BlobStore
from service_edge.app.caching.cache_manager import CacheManager
from service_edge.app.caching.warmer import CacheWarmer
from service_edge.app.domain.blacklist import Blacklist
from service_edge.app.domain.pipeline import ContentRequest, RequestPipeline, classify
from service_edge.app.geo.locator import GeoLocator, load_nodes
from service_edge.app.stats.aggregator import StatsAggregator
from service_edge.app.stats.counters import UsageCounters
from service_edge.app.store.kv_store import KeyValueStore, create_store


SERVICE_NAME = "edge"
DEFAULT_PORT = 3000


class EdgeService(BaseService):
    """Edge node service implementation.

    Collaborators can be injected for tests; anything not passed in is built
    from configuration.
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        store: Optional[KeyValueStore] = None,
        origin_client: Optional[OriginClient] = None,
        peer_client: Optional[PeerStatsClient] = None,
        geolocation_client: Optional[GeolocationClient] = None,
    ):
        super().__init__(SERVICE_NAME, DEFAULT_PORT, config)

        self.store = store or create_store(self.config.store_backend, self.config.redis_url)
        self.counters = UsageCounters(self.store)
        self.origin_client = origin_client or OriginClient(timeout=self.config.origin_timeout_seconds)
        self.cache_manager = CacheManager(
            self.store,
            BlobStore(self.config.blob_dir),
            self.origin_client,
            self.counters,
            metrics=self.metrics,
        )
        self.cache_warmer = CacheWarmer(
            self.cache_manager,
            self.counters,
            max_age_ms=self.config.serve_default_max_age_ms,
            concurrency=self.config.warm_concurrency,
            metrics=self.metrics,
        )
        self.blacklist = Blacklist.from_file(self.config.blacklist_file)
        self.pipeline = RequestPipeline(
            self.cache_manager,
            self.blacklist,
            serve_default_max_age_ms=self.config.serve_default_max_age_ms,
            count_blocked_hits=self.config.count_blocked_hits,
            metrics=self.metrics,
        )

        self.nodes = load_nodes(self.config.nodes_file)
        self.geolocation_client = geolocation_client or GeolocationClient(
            self.config.geolocation_url,
            self.config.ipstack_key,
            timeout=self.config.geolocation_timeout_seconds,
        )
        self.geo_locator = GeoLocator(
            self.store,
            self.nodes,
            self.geolocation_client,
            default_k=self.config.nearest_nodes_default,
        )

        self.peer_client = peer_client or PeerStatsClient(
            timeout=self.config.peer_timeout_seconds,
            failure_threshold=self.config.peer_failure_threshold,
            recovery_timeout=self.config.peer_recovery_timeout,
        )
        self.stats_aggregator = StatsAggregator(
            self.counters,
            self.peer_client,
            [node.url for node in self.nodes],
            self_url=self.config.self_url,
            metrics=self.metrics,
        )

        self._setup_edge_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.edge_service = self

    async def _on_startup(self) -> None:
        await self.geo_locator.register_nodes()
        self.logger.info(
            "Edge node started",
            nodes=len(self.nodes),
            peers=len(self.stats_aggregator.peers),
            blacklist_entries=len(self.blacklist),
            store_backend=self.config.store_backend,
        )

    async def _on_shutdown(self) -> None:
        await self.origin_client.close()
        await self.peer_client.close()
        await self.geolocation_client.close()
        await self.store.close()

    async def _check_dependencies(self) -> Dict[str, str]:
        await self.store.ping()
        dependencies = {"store": "ok"}
        for peer, state in self.peer_client.breaker_states().items():
            dependencies[f"peer:{peer}"] = state
        return dependencies

    def _setup_edge_routes(self):
        """Set up edge-node routes."""

        @self.app.get("/")
        async def root():
            return RedirectResponse(self.config.homepage_url)

        @self.app.get("/serve/{target:path}")
        async def serve(target: str, request: Request):
            """Cached content; ``maxAge`` (seconds) overrides the default freshness window."""
            return await self._handle_content(request)

        @self.app.get("/proxy/{target:path}")
        async def proxy(target: str, request: Request):
            """Always-refetched content, query string forwarded to origin."""
            return await self._handle_content(request)

        @self.app.get("/stats")
        async def local_stats():
            stats = await self.stats_aggregator.local_stats()
            return stats.to_wire()

        @self.app.get("/stats/top")
        async def top_urls(limit: int = Query(default=10, ge=1, le=1000)):
            rows = await self.counters.top_urls(limit)
            return [{"url": url, "hits": hits} for url, hits in rows]

        @self.app.post("/cache/warm")
        async def warm_cache(limit: Optional[int] = Query(default=None, ge=1, le=1000)):
            """Refresh the most requested URLs that are missing or stale."""
            return await self.cache_warmer.warm(limit or self.config.warm_top_urls)

        @self.app.get("/global-stats")
        async def global_stats():
            stats = await self.stats_aggregator.global_stats()
            return stats.to_wire()

        @self.app.get("/nodes")
        async def nearest_nodes(request: Request, k: Optional[int] = Query(default=None, ge=1, le=100)):
            ip = self.get_client_ip(request)
            nodes = await self.geo_locator.nearest_for_ip(ip, k)
            return [node.model_dump() for node in nodes]

    async def _handle_content(self, request: Request) -> Response:
        classified = classify(request.scope["path"])
        if classified is None:
            raise ValidationError("Not a content path", details={"path": request.scope["path"]})
        route, target = classified

        result = await self.pipeline.handle(
            ContentRequest(
                route=route,
                target=target,
                query_string=request.url.query,
                referer=request.headers.get("referer"),
                max_age=request.query_params.get("maxAge"),
            )
        )

        return Response(
            content=result.data,
            headers={"Content-Type": result.content_type},
        )


def create_app(config: Optional[ServiceConfig] = None, **collaborators):
    """Create FastAPI application."""
    service = EdgeService(config, **collaborators)
    return service.app


def main():
    service = EdgeService(get_config(SERVICE_NAME, DEFAULT_PORT))
    service.run()


if __name__ == "__main__":
    main()
