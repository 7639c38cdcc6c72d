#!/usr/bin/env python3
"""
Warm the edge cache for the most requested URLs.

Runs the same warm-up as ``POST /cache/warm`` but from a workstation or a
cron job. Settings come from the usual ``EDGE_*`` environment variables; the
flags below override the ones that matter for a one-off run.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

from shared.config import get_config
from shared.logging import configure_logging
from service_edge.app.adapters.origin_client import OriginClient
from service_edge.app.caching.blob_store import BlobStore
from service_edge.app.caching.cache_manager import CacheManager
from service_edge.app.caching.warmer import CacheWarmer
from service_edge.app.stats.counters import UsageCounters
from service_edge.app.store.kv_store import create_store


async def warm(
    *,
    redis_url: Optional[str],
    blob_dir: Optional[str],
    limit: int,
    concurrency: int,
    dry_run: bool,
) -> dict:
    """Execute cache warming and return the summary."""
    overrides = {}
    if redis_url:
        overrides["redis_url"] = redis_url
    if blob_dir:
        overrides["blob_dir"] = blob_dir
    config = get_config("edge", 3000, **overrides)
    configure_logging("edge", config.log_level, config.log_format)

    store = create_store(config.store_backend, config.redis_url)
    counters = UsageCounters(store)
    origin_client = OriginClient(timeout=config.origin_timeout_seconds)
    try:
        if dry_run:
            top = await counters.top_urls(limit)
            return {"planned": [{"url": url, "hits": hits} for url, hits in top]}

        manager = CacheManager(store, BlobStore(config.blob_dir), origin_client, counters)
        warmer = CacheWarmer(
            manager,
            counters,
            max_age_ms=config.serve_default_max_age_ms,
            concurrency=concurrency,
        )
        return await warmer.warm(limit)
    finally:
        await origin_client.close()
        await store.close()


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Warm the edge cache for the most requested URLs.")
    parser.add_argument("--redis-url", default=None, help="Redis connection URL (default: EDGE_REDIS_URL)")
    parser.add_argument("--blob-dir", default=None, help="Blob directory (default: EDGE_BLOB_DIR)")
    parser.add_argument("--limit", type=int, default=20, help="Number of leaderboard URLs to warm")
    parser.add_argument("--concurrency", type=int, default=5, help="Concurrent origin fetches")
    parser.add_argument("--dry-run", action="store_true", help="List the URLs that would be warmed without fetching")
    parser.add_argument("--output", type=Path, default=None, help="Optional path to write JSON summary")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    try:
        summary = asyncio.run(
            warm(
                redis_url=args.redis_url,
                blob_dir=args.blob_dir,
                limit=args.limit,
                concurrency=args.concurrency,
                dry_run=args.dry_run,
            )
        )
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[cache-warm] failed: {exc}", file=sys.stderr)
        return 1

    if args.dry_run:
        print("[cache-warm] DRY RUN - no origin fetches executed")

    print(json.dumps(summary, indent=2))

    if args.output:
        args.output.write_text(json.dumps(summary, indent=2))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
