"""
Static referer denylist.
"""

from pathlib import Path
from typing import FrozenSet, Iterable, Optional, Union
from urllib.parse import urlsplit

from shared.errors import BlacklistError
from shared.logging import get_logger


logger = get_logger("edge.blacklist")


class Blacklist:
    """Immutable set of denied referer hostnames, built once at startup."""

    def __init__(self, hostnames: Iterable[str] = ()):
        self._hostnames: FrozenSet[str] = frozenset(
            host.strip().lower() for host in hostnames if host.strip()
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Blacklist":
        """One hostname per line; blank lines are ignored."""
        try:
            text = Path(path).read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.warning("Blacklist file not found, denylist is empty", path=str(path))
            return cls()

        blacklist = cls(text.splitlines())
        logger.info("Blacklist loaded", path=str(path), entries=len(blacklist))
        return blacklist

    def __len__(self) -> int:
        return len(self._hostnames)

    def __contains__(self, hostname: object) -> bool:
        return isinstance(hostname, str) and self.is_blacklisted(hostname)

    def is_blacklisted(self, hostname: str) -> bool:
        return hostname.lower() in self._hostnames

    def check_referer(self, referer: Optional[str]) -> None:
        """Raise ``BlacklistError`` if the referer's hostname is denied."""
        if not referer:
            return
        try:
            hostname = urlsplit(referer).hostname
        except ValueError:
            return
        if hostname and self.is_blacklisted(hostname):
            raise BlacklistError(hostname, details={"referer": referer})
