"""
IP geolocation client (ipstack-compatible API).
"""

from dataclasses import dataclass
from typing import Optional

import httpx

from shared.errors import GeolocationError
from shared.logging import get_logger


@dataclass(frozen=True)
class Coordinates:
    longitude: float
    latitude: float


class GeolocationClient:
    """Resolves a client IP to coordinates via ``GET {base}/{ip}``."""

    def __init__(
        self,
        base_url: str,
        access_key: Optional[str] = None,
        *,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.access_key = access_key
        self.timeout = timeout
        self.logger = get_logger("edge.geolocation_client")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def locate(self, ip: str) -> Coordinates:
        params = {"access_key": self.access_key} if self.access_key else {}
        url = f"{self.base_url}/{ip}"

        try:
            response = await self._client.get(url, params=params)
        except httpx.HTTPError as exc:
            self.logger.error("Geolocation lookup failed", ip=ip, error=str(exc))
            raise GeolocationError(details={"ip": ip, "error": str(exc)}) from exc

        if response.status_code != 200:
            raise GeolocationError(
                f"Geolocation service returned {response.status_code}",
                details={"ip": ip, "status_code": response.status_code},
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise GeolocationError("Geolocation response is not JSON", details={"ip": ip}) from exc

        # ipstack reports API errors with a 200 status and success=false
        if not isinstance(payload, dict) or payload.get("success") is False:
            error = payload.get("error") if isinstance(payload, dict) else None
            raise GeolocationError("Geolocation service rejected the lookup", details={"ip": ip, "error": error})

        longitude = payload.get("longitude")
        latitude = payload.get("latitude")
        if longitude is None or latitude is None:
            raise GeolocationError("No coordinates for client address", details={"ip": ip})

        try:
            coordinates = Coordinates(longitude=float(longitude), latitude=float(latitude))
        except (TypeError, ValueError) as exc:
            raise GeolocationError("Malformed coordinates", details={"ip": ip}) from exc

        self.logger.debug("Client located", ip=ip, longitude=coordinates.longitude, latitude=coordinates.latitude)
        return coordinates

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
