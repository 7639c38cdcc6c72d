"""
Nearest-node lookup over the static fleet.
"""

from pathlib import Path
from typing import List, Optional, Sequence, Union

import yaml
from pydantic import BaseModel, Field

from shared.errors import ValidationError
from shared.logging import get_logger
from ..adapters.geolocation_client import GeolocationClient
from ..store.kv_store import KeyValueStore


NODES_KEY = "nodes"
DEFAULT_NEAREST = 5


class Node(BaseModel):
    """A fleet member, identified by its base URL."""

    model_config = {"frozen": True}

    url: str
    longitude: float = Field(ge=-180, le=180)
    latitude: float = Field(ge=-90, le=90)


class NodeDistance(BaseModel):
    url: str
    distance: float


def load_nodes(path: Union[str, Path]) -> List[Node]:
    """Load the fleet from YAML: either a list or a mapping with a ``nodes`` list."""
    with open(path, "r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or []

    if isinstance(raw, dict):
        raw = raw.get("nodes", [])
    if not isinstance(raw, list):
        raise ValueError(f"{path}: expected a list of nodes")

    return [Node.model_validate(entry) for entry in raw]


class GeoLocator:
    """Ranks fleet nodes by great-circle distance from a point.

    The geospatial index is written once by ``register_nodes`` at startup and
    never changes while the process runs.
    """

    def __init__(
        self,
        store: KeyValueStore,
        nodes: Sequence[Node],
        geolocation_client: Optional[GeolocationClient] = None,
        *,
        default_k: int = DEFAULT_NEAREST,
    ):
        self.store = store
        self.nodes = list(nodes)
        self.geolocation_client = geolocation_client
        self.default_k = default_k
        self.logger = get_logger("edge.geo_locator")
        self._order = {node.url: index for index, node in enumerate(self.nodes)}

    async def register_nodes(self) -> None:
        for node in self.nodes:
            await self.store.geoadd(NODES_KEY, node.longitude, node.latitude, node.url)
        self.logger.info("Node index built", nodes=len(self.nodes))

    async def nearest(self, longitude: float, latitude: float, k: Optional[int] = None) -> List[NodeDistance]:
        """Up to ``k`` nodes, nearest first; ties keep registration order."""
        k = self.default_k if k is None else k
        if k < 1:
            raise ValidationError("k must be at least 1", details={"k": k})
        if not -180 <= longitude <= 180 or not -90 <= latitude <= 90:
            raise ValidationError(
                "Coordinates out of range",
                details={"longitude": longitude, "latitude": latitude},
            )

        rows = await self.store.geosearch(NODES_KEY, longitude, latitude, k)
        unknown = len(self._order)
        ranked = sorted(rows, key=lambda row: (row[1], self._order.get(row[0], unknown)))
        return [NodeDistance(url=url, distance=distance) for url, distance in ranked[:k]]

    async def nearest_for_ip(self, ip: str, k: Optional[int] = None) -> List[NodeDistance]:
        """Geolocate ``ip`` and rank nodes from there."""
        if self.geolocation_client is None:
            raise RuntimeError("GeoLocator has no geolocation client")
        coordinates = await self.geolocation_client.locate(ip)
        return await self.nearest(coordinates.longitude, coordinates.latitude, k)
