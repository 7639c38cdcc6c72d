"""
Shared error handling for the edge cache node.

Every error is terminal for the request that raised it. The transport maps
``status_code`` onto the HTTP response and renders ``to_response()`` as the
body; nothing here is retried automatically.
"""

from typing import Dict, Any, Optional

from opentelemetry import trace
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class EdgeError(Exception):
    """Base exception for edge node errors."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(EdgeError):
    """Malformed request input."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class BlacklistError(EdgeError):
    """Referer hostname is on the static denylist."""

    status_code = 403

    def __init__(self, hostname: str, details: Optional[Dict[str, Any]] = None):
        self.hostname = hostname
        super().__init__("BLACKLIST_ERROR", "Hostname on blacklist", {"hostname": hostname, **(details or {})})


class OriginError(EdgeError):
    """Origin unreachable, non-success status, or timed out."""

    status_code = 502

    def __init__(self, url: str, message: str = "Origin fetch failed", details: Optional[Dict[str, Any]] = None):
        self.url = url
        super().__init__("ORIGIN_ERROR", f"{url}: {message}", details)


# The cache contract names both; they are the same failure.
FetchError = OriginError


class GeolocationError(EdgeError):
    """Client location could not be resolved."""

    status_code = 502

    def __init__(self, message: str = "Client location unresolvable", details: Optional[Dict[str, Any]] = None):
        super().__init__("GEOLOCATION_ERROR", message, details)


class AggregationError(EdgeError):
    """One or more peers failed during stats aggregation."""

    status_code = 502

    def __init__(self, message: str = "Stats aggregation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AGGREGATION_ERROR", message, details)


class StoreError(EdgeError):
    """Key-value store unavailable or returned unexpected data."""

    status_code = 503

    def __init__(self, message: str = "Key-value store error", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_ERROR", message, details)
