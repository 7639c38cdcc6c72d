"""
Shared configuration management for the edge cache node.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


ONE_DAY_MS = 24 * 60 * 60 * 1000


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="EDGE_",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    log_format: str = Field(default="json")

    # Key-value store
    store_backend: str = Field(default="redis")
    redis_url: str = Field(default="redis://localhost:6379/0")

    # Payload storage
    blob_dir: str = Field(default="./data/blobs")

    # Static fleet data
    nodes_file: str = Field(default="./config/nodes.yaml")
    blacklist_file: str = Field(default="./config/blacklist.txt")
    self_url: Optional[str] = Field(default=None)
    homepage_url: str = Field(default="https://ovsoinc.github.io/yacdn.org")

    # Collaborator timeouts
    origin_timeout_seconds: float = Field(default=30.0)
    peer_timeout_seconds: float = Field(default=5.0)
    geolocation_timeout_seconds: float = Field(default=5.0)

    # Geolocation lookup
    geolocation_url: str = Field(default="http://api.ipstack.com")
    ipstack_key: Optional[str] = Field(default=None)

    # Cache policy
    serve_default_max_age_ms: int = Field(default=ONE_DAY_MS)
    nearest_nodes_default: int = Field(default=5)
    count_blocked_hits: bool = Field(default=True)

    # Cache warming
    warm_top_urls: int = Field(default=20)
    warm_concurrency: int = Field(default=5)

    # Peer circuit breaker
    peer_failure_threshold: int = Field(default=3)
    peer_recovery_timeout: float = Field(default=30.0)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
