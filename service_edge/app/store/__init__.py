"""Key-value store backends."""

from .kv_store import KeyValueStore, MemoryStore, RedisStore, create_store

__all__ = ["KeyValueStore", "MemoryStore", "RedisStore", "create_store"]
