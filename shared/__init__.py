"""
Shared utilities for the edge cache node.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- circuit_breaker: Resilient peer call protection
- base_service: FastAPI app skeleton (CORS, timing, health, error handlers)

Do not import from service_* packages into shared/.
"""
