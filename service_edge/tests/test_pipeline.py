"""
Unit tests for the content request pipeline.
"""

import pytest

from shared.errors import BlacklistError, OriginError, ValidationError
from service_edge.app.domain.blacklist import Blacklist
from service_edge.app.domain.pipeline import (
    ContentRequest,
    RequestPipeline,
    Route,
    build_cache_key,
    classify,
    resolve_max_age,
)
from service_edge.app.stats.counters import HITS_KEY, POPULARITY_KEY

DEFAULT_MS = 86_400_000
TARGET = "https://cdn.example.com/lib.js"


def make_pipeline(cache_manager, count_blocked_hits=True) -> RequestPipeline:
    return RequestPipeline(
        cache_manager,
        Blacklist(["evil.example"]),
        serve_default_max_age_ms=DEFAULT_MS,
        count_blocked_hits=count_blocked_hits,
    )


class TestRouting:
    """Test cases for path classification and key building."""

    def test_classify(self):
        assert classify("/serve/https://a.example/x") == (Route.SERVE, "https://a.example/x")
        assert classify("/proxy/http://a.example/") == (Route.PROXY, "http://a.example/")
        assert classify("/stats") is None

    def test_serve_key_drops_query_string(self):
        assert build_cache_key(Route.SERVE, TARGET, "maxAge=60&v=2") == TARGET

    def test_proxy_key_keeps_query_string(self):
        assert build_cache_key(Route.PROXY, TARGET, "a=1&b=2") == TARGET + "?a=1&b=2"
        assert build_cache_key(Route.PROXY, TARGET, "") == TARGET

    @pytest.mark.parametrize("target", ["cdn.example.com/lib.js", "ftp://a.example/x", ""])
    def test_non_http_target_rejected(self, target):
        with pytest.raises(ValidationError):
            build_cache_key(Route.SERVE, target)


class TestMaxAge:
    """Test cases for max age resolution."""

    def test_serve_default(self):
        assert resolve_max_age(Route.SERVE, None, DEFAULT_MS) == DEFAULT_MS
        assert resolve_max_age(Route.SERVE, "", DEFAULT_MS) == DEFAULT_MS

    def test_serve_seconds_to_ms(self):
        assert resolve_max_age(Route.SERVE, "60", DEFAULT_MS) == 60_000
        assert resolve_max_age(Route.SERVE, "0.5", DEFAULT_MS) == 500
        assert resolve_max_age(Route.SERVE, "0", DEFAULT_MS) == 0

    def test_proxy_always_zero(self):
        assert resolve_max_age(Route.PROXY, "3600", DEFAULT_MS) == 0

    @pytest.mark.parametrize("raw", ["abc", "-1", "inf", "nan"])
    def test_invalid_values(self, raw):
        with pytest.raises(ValidationError):
            resolve_max_age(Route.SERVE, raw, DEFAULT_MS)


class TestRequestPipeline:
    """Test cases for RequestPipeline."""

    @pytest.mark.asyncio
    async def test_serve_request(self, cache_manager, origin, store):
        """A serve request counts a hit and popularity and returns content."""
        pipeline = make_pipeline(cache_manager)

        response = await pipeline.handle(ContentRequest(Route.SERVE, TARGET, query_string="v=1"))

        assert response.url == TARGET
        assert response.data == origin.body
        assert response.hit_number == 1
        assert origin.calls == [TARGET]
        assert await store.zrevrange_withscores(POPULARITY_KEY, 10) == [(TARGET, 1.0)]

    @pytest.mark.asyncio
    async def test_serve_uses_cache_within_max_age(self, cache_manager, origin, clock):
        pipeline = make_pipeline(cache_manager)

        await pipeline.handle(ContentRequest(Route.SERVE, TARGET, max_age="60"))
        clock.advance(30_000)
        await pipeline.handle(ContentRequest(Route.SERVE, TARGET, max_age="60"))
        clock.advance(30_000)
        await pipeline.handle(ContentRequest(Route.SERVE, TARGET, max_age="60"))

        assert len(origin.calls) == 2

    @pytest.mark.asyncio
    async def test_proxy_always_refetches_with_query(self, cache_manager, origin):
        """Proxy requests go to origin every time, query string included."""
        pipeline = make_pipeline(cache_manager)

        for _ in range(2):
            await pipeline.handle(ContentRequest(Route.PROXY, TARGET, query_string="a=1", max_age="3600"))

        assert origin.calls == [TARGET + "?a=1", TARGET + "?a=1"]

    @pytest.mark.asyncio
    async def test_blacklisted_referer_counts_hit_only(self, cache_manager, origin, store):
        """Blocked requests never reach origin or the popularity board."""
        pipeline = make_pipeline(cache_manager)

        with pytest.raises(BlacklistError):
            await pipeline.handle(ContentRequest(Route.SERVE, TARGET, referer="https://evil.example/page"))

        assert origin.calls == []
        assert await store.get_int(HITS_KEY) == 1
        assert await store.zrevrange_withscores(POPULARITY_KEY, 10) == []

    @pytest.mark.asyncio
    async def test_blocked_hits_excluded_when_configured(self, cache_manager, store):
        pipeline = make_pipeline(cache_manager, count_blocked_hits=False)

        with pytest.raises(BlacklistError):
            await pipeline.handle(ContentRequest(Route.SERVE, TARGET, referer="https://evil.example/"))

        assert await store.get_int(HITS_KEY) == 0

    @pytest.mark.asyncio
    async def test_invalid_max_age_fails_before_fetch(self, cache_manager, origin):
        pipeline = make_pipeline(cache_manager)

        with pytest.raises(ValidationError):
            await pipeline.handle(ContentRequest(Route.SERVE, TARGET, max_age="soon"))

        assert origin.calls == []

    @pytest.mark.asyncio
    async def test_origin_failure_propagates(self, cache_manager, origin):
        origin.fail_with(TARGET)
        pipeline = make_pipeline(cache_manager)

        with pytest.raises(OriginError):
            await pipeline.handle(ContentRequest(Route.SERVE, TARGET))

    @pytest.mark.asyncio
    async def test_blacklist_rejection_metric(self, cache_manager):
        from shared.metrics import MetricsCollector

        metrics = MetricsCollector("edge")
        pipeline = RequestPipeline(
            cache_manager,
            Blacklist(["evil.example"]),
            serve_default_max_age_ms=DEFAULT_MS,
            metrics=metrics,
        )

        with pytest.raises(BlacklistError):
            await pipeline.handle(ContentRequest(Route.SERVE, TARGET, referer="http://evil.example"))

        assert metrics.registry.get_sample_value("blacklist_rejections_total") == 1
