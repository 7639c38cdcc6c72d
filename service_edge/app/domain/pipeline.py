"""
Content request pipeline for ``/serve/`` and ``/proxy/`` paths.

Order of operations per request:

1. classify the route (serve keeps no query string, proxy keeps it)
2. count the hit (before the blacklist check unless ``count_blocked_hits``
   is disabled)
3. build the cache key
4. reject denied referers
5. bump the URL's popularity score
6. resolve the max age
7. resolve content through the cache manager
8. log elapsed time and throughput
"""

import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, TYPE_CHECKING

from shared.errors import BlacklistError, ValidationError
from shared.logging import get_logger, set_cache_key
from ..caching.cache_manager import CacheManager
from ..caching.models import CachedResource
from .blacklist import Blacklist

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class Route(str, Enum):
    SERVE = "serve"
    PROXY = "proxy"


ROUTE_PREFIXES = {
    Route.SERVE: "/serve/",
    Route.PROXY: "/proxy/",
}

ALLOWED_SCHEMES = ("http://", "https://")


def classify(path: str) -> Optional[Tuple[Route, str]]:
    """Split a request path into its route and target remainder."""
    for route, prefix in ROUTE_PREFIXES.items():
        if path.startswith(prefix):
            return route, path[len(prefix):]
    return None


def build_cache_key(route: Route, target: str, query_string: str = "") -> str:
    """Normalized URL used both as cache key and as origin URL."""
    if not target.lower().startswith(ALLOWED_SCHEMES):
        raise ValidationError("Target must be an absolute http(s) URL", details={"target": target})
    if route is Route.PROXY and query_string:
        return f"{target}?{query_string}"
    return target


def resolve_max_age(route: Route, raw_max_age: Optional[str], serve_default_ms: int) -> int:
    """Max age in milliseconds; ``raw_max_age`` is seconds and only honoured for serve."""
    if route is Route.PROXY:
        return 0
    if raw_max_age is None or raw_max_age == "":
        return serve_default_ms

    try:
        seconds = float(raw_max_age)
    except ValueError:
        raise ValidationError("maxAge must be a number of seconds", details={"maxAge": raw_max_age}) from None
    if not math.isfinite(seconds) or seconds < 0:
        raise ValidationError("maxAge must be a non-negative number of seconds", details={"maxAge": raw_max_age})
    return int(seconds * 1000)


@dataclass(frozen=True)
class ContentRequest:
    route: Route
    target: str
    query_string: str = ""
    referer: Optional[str] = None
    max_age: Optional[str] = None


@dataclass(frozen=True)
class ContentResponse:
    url: str
    resource: CachedResource
    hit_number: int
    elapsed_ms: float

    @property
    def content_type(self) -> str:
        return self.resource.content_type

    @property
    def content_length(self) -> int:
        return self.resource.content_length

    @property
    def data(self) -> bytes:
        return self.resource.data

    @property
    def speed_bps(self) -> float:
        seconds = self.elapsed_ms / 1000
        return self.content_length * 8 / seconds if seconds > 0 else 0.0


class RequestPipeline:
    """Decision logic behind the content routes; holds no cache state itself."""

    def __init__(
        self,
        cache_manager: CacheManager,
        blacklist: Blacklist,
        *,
        serve_default_max_age_ms: int,
        count_blocked_hits: bool = True,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.cache_manager = cache_manager
        self.blacklist = blacklist
        self.serve_default_max_age_ms = serve_default_max_age_ms
        self.count_blocked_hits = count_blocked_hits
        self.metrics = metrics
        self.logger = get_logger("edge.pipeline")

    async def handle(self, request: ContentRequest) -> ContentResponse:
        start = time.perf_counter()

        hit_number = 0
        if self.count_blocked_hits:
            hit_number = await self.cache_manager.record_hit()

        url_key = build_cache_key(request.route, request.target, request.query_string)
        set_cache_key(url_key)

        try:
            self.blacklist.check_referer(request.referer)
        except BlacklistError as exc:
            if self.metrics:
                self.metrics.increment_counter("blacklist_rejections_total")
            self.logger.warning("Referer blocked", url=url_key, referer=request.referer, hostname=exc.hostname)
            raise

        if not self.count_blocked_hits:
            hit_number = await self.cache_manager.record_hit()

        await self.cache_manager.record_popularity(url_key)

        max_age_ms = resolve_max_age(request.route, request.max_age, self.serve_default_max_age_ms)
        resource = await self.cache_manager.resolve(url_key, max_age_ms, route=request.route.value)

        response = ContentResponse(
            url=url_key,
            resource=resource,
            hit_number=hit_number,
            elapsed_ms=(time.perf_counter() - start) * 1000,
        )

        self.logger.info(
            "Content served",
            hit=hit_number,
            route=request.route.value,
            url=url_key,
            referer=request.referer,
            size_bytes=response.content_length,
            time_ms=round(response.elapsed_ms, 2),
            speed_bps=round(response.speed_bps),
        )
        return response
