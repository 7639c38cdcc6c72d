"""
Edge node service package.

The node fronts origin URLs with a fetch-through cache and reports usage
counters that can be summed across the fleet:

- Content: /serve/ and /proxy/ routes through the request pipeline
- Geo routing: nearest fleet nodes for the caller's location
- Stats: local counters, popularity leaderboard and fleet-wide aggregation

Structure:
- app.main: FastAPI app, routes, and collaborator wiring.
- app.domain: Request pipeline and referer denylist.
- app.caching: Cache manager, single-flight registry, blob storage, warmer.
- app.geo: Node list loading and nearest-node ranking.
- app.stats: Usage counters and fleet aggregation.
- app.adapters: HTTP clients for origin, peers and geolocation.
- app.store: Key-value store backends.
"""
