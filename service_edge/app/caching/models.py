"""
Cached resource model.
"""

from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class CachedResource:
    """A complete cached origin response.

    ``fetched_at`` is wall-clock epoch milliseconds so entries written by one
    process can be aged by another sharing the same store.
    """

    url: str
    data: bytes
    content_type: str
    content_length: int
    fetched_at: int
    fetch_duration_ms: float
    blob_id: str = ""

    def age_ms(self, now_ms: int) -> int:
        return now_ms - self.fetched_at

    def is_fresh(self, max_age_ms: int, now_ms: int) -> bool:
        """Fresh while younger than ``max_age_ms``; a max age of 0 is never fresh."""
        return self.age_ms(now_ms) < max_age_ms

    def metadata(self) -> Dict[str, str]:
        """Flat string mapping persisted in the key-value store."""
        return {
            "url": self.url,
            "blob": self.blob_id,
            "content_type": self.content_type,
            "content_length": str(self.content_length),
            "fetched_at": str(self.fetched_at),
            "fetch_duration_ms": f"{self.fetch_duration_ms:.3f}",
        }
