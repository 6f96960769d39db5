import logging
from dataclasses import dataclass

import httpx

from walkscout.config import settings
from walkscout.exceptions import AddressNotFoundError, GeocodingUnavailableError
from walkscout.schemas.poi import Coordinate, RegionCode
from walkscout.services.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

STATE_NAMES = {
    "New South Wales": RegionCode.NSW,
    "Victoria": RegionCode.VIC,
    "Queensland": RegionCode.QLD,
    "Western Australia": RegionCode.WA,
    "South Australia": RegionCode.SA,
    "Tasmania": RegionCode.TAS,
    "Australian Capital Territory": RegionCode.ACT,
    "Northern Territory": RegionCode.NT,
}

# (low, high, region); ACT ranges overlap NSW and are checked first
_POSTCODE_RANGES = [
    (2600, 2620, RegionCode.ACT),
    (2000, 2999, RegionCode.NSW),
    (3000, 3999, RegionCode.VIC),
    (4000, 4999, RegionCode.QLD),
    (5000, 5999, RegionCode.SA),
    (6000, 6999, RegionCode.WA),
    (7000, 7999, RegionCode.TAS),
    (800, 999, RegionCode.NT),
]


@dataclass(frozen=True)
class GeocodeResult:
    location: Coordinate
    region: RegionCode
    display_name: str


def extract_region(result: dict) -> RegionCode:
    """State from a Nominatim result: address.state, then display name, then postcode."""
    address = result.get("address") or {}
    state_name = address.get("state")
    if state_name:
        if state_name in STATE_NAMES:
            return STATE_NAMES[state_name]
        if state_name in RegionCode.__members__:
            return RegionCode(state_name)

    display_name = result.get("display_name", "")
    for name, region in STATE_NAMES.items():
        if name in display_name:
            return region

    postcode = address.get("postcode", "")
    if postcode.strip().isdigit():
        pc = int(postcode)
        for low, high, region in _POSTCODE_RANGES:
            if low <= pc <= high:
                return region

    logger.warning("Could not determine state for %r, defaulting to NSW", display_name)
    return RegionCode.NSW


class NominatimClient:
    """Address search restricted to Australia. Nominatim allows one request per second."""

    def __init__(self, url: str | None = None, min_interval_s: float | None = None):
        self.url = url or settings.nominatim_url
        interval = settings.nominatim_min_interval_s if min_interval_s is None else min_interval_s
        self.rate_limiter = RateLimiter(interval, name="nominatim")

    async def geocode(self, address: str) -> GeocodeResult:
        params = {
            "q": address,
            "format": "json",
            "addressdetails": "1",
            "countrycodes": "au",
            "limit": "1",
        }

        await self.rate_limiter.wait()
        try:
            async with httpx.AsyncClient(
                timeout=15.0, headers={"User-Agent": settings.user_agent}
            ) as client:
                resp = await client.get(self.url, params=params)
        except httpx.HTTPError as e:
            raise GeocodingUnavailableError(f"Nominatim request failed: {e}") from e

        if resp.status_code != 200:
            raise GeocodingUnavailableError(f"Nominatim error {resp.status_code}")

        results = resp.json()
        if not results:
            raise AddressNotFoundError(address)

        first = results[0]
        return GeocodeResult(
            location=Coordinate(lat=float(first["lat"]), lng=float(first["lon"])),
            region=extract_region(first),
            display_name=first.get("display_name", address),
        )
