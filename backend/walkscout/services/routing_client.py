import logging

import httpx

from walkscout.config import settings
from walkscout.exceptions import NoRouteFoundError, RoutingError, RoutingRateLimitedError
from walkscout.schemas.poi import Coordinate, WalkingRoute

logger = logging.getLogger(__name__)


class OpenRouteServiceClient:
    """Foot-walking directions from OpenRouteService. One call per origin/destination pair."""

    def __init__(self, url: str | None = None, api_key: str | None = None, timeout: float = 30.0):
        self.url = url or settings.ors_url
        self.api_key = api_key if api_key is not None else settings.ors_api_key
        self.timeout = timeout

    async def route(self, origin: Coordinate, destination: Coordinate) -> WalkingRoute:
        payload = {
            # ORS takes [lng, lat]
            "coordinates": [[origin.lng, origin.lat], [destination.lng, destination.lat]],
            "units": "m",
            "geometry": True,
            "instructions": False,
        }
        headers = {"Authorization": self.api_key, "Content-Type": "application/json"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(self.url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise RoutingError(f"OpenRouteService request failed: {e}") from e

        if resp.status_code == 429:
            raise RoutingRateLimitedError("OpenRouteService rate limit exceeded")

        if resp.status_code != 200:
            raise RoutingError(f"OpenRouteService error {resp.status_code}: {resp.text[:200]}")

        data = resp.json()
        routes = data.get("routes") or []
        if not routes:
            raise NoRouteFoundError(
                f"No walking route from {origin.lat},{origin.lng} to {destination.lat},{destination.lng}"
            )

        first = routes[0]
        summary = first.get("summary") or {}
        geometry = first.get("geometry")
        return WalkingRoute(
            duration_minutes=round((summary.get("duration") or 0) / 60),
            distance_meters=round(summary.get("distance") or 0),
            encoded_path=geometry if isinstance(geometry, str) else "",
        )
