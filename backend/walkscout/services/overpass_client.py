import logging
import re

import httpx

from walkscout.config import settings
from walkscout.exceptions import OverpassError, OverpassRateLimitedError
from walkscout.schemas.poi import Coordinate, POICategory, PointOfInterest
from walkscout.services.rate_limit import RateLimiter
from walkscout.utils.geo import haversine

logger = logging.getLogger(__name__)

OVERPASS_TIMEOUT_S = 60
OVERPASS_MAX_SIZE_BYTES = 268435456  # 256 MB, keeps the server from answering 504

_STORE_NUMBER = re.compile(r"\s+(Store|Branch|Outlet)\s*#?\d+", re.IGNORECASE)
_TRAILING_NUMBER = re.compile(r"\s+#?\d+$")
_STREET_SUFFIX = re.compile(r"\s+(Street|St|Road|Rd|Avenue|Ave|Drive|Dr|Boulevard|Blvd)$", re.IGNORECASE)


def _build_query(lat: float, lng: float, radius_m: int) -> str:
    return f"""
[out:json][timeout:{OVERPASS_TIMEOUT_S}][maxsize:{OVERPASS_MAX_SIZE_BYTES}];
(
  node(around:{radius_m},{lat},{lng})["shop"="supermarket"];
  way(around:{radius_m},{lat},{lng})["shop"="supermarket"];
);
out tags center;
"""


def _element_position(element: dict) -> tuple[float | None, float | None]:
    center = element.get("center") or {}
    return center.get("lat", element.get("lat")), center.get("lon", element.get("lon"))


def format_supermarket_name(element: dict, origin: Coordinate) -> str:
    """
    Name a supermarket so that several branches of one chain can be told apart.

    Priority: full_name extending the name, suburb, street, branch, postcode,
    and finally the straight-line distance from the origin.
    """
    tags = element.get("tags", {})
    base_name = tags.get("name") or "Supermarket"
    clean_name = _TRAILING_NUMBER.sub("", _STORE_NUMBER.sub("", base_name)).strip() or base_name

    full_name = tags.get("full_name")
    if full_name and full_name != base_name and base_name in full_name:
        if full_name.replace(base_name, "").strip():
            return full_name

    if tags.get("addr:suburb"):
        return f"{clean_name} - {tags['addr:suburb']}"
    if tags.get("addr:street"):
        return f"{clean_name} - {_STREET_SUFFIX.sub('', tags['addr:street'])}"
    if tags.get("branch"):
        return f"{clean_name} - {tags['branch']}"
    if tags.get("addr:postcode"):
        return f"{clean_name} - {tags['addr:postcode']}"

    lat, lng = _element_position(element)
    distance = haversine(origin.lat, origin.lng, lat, lng)
    return f"{clean_name} ({distance:.2f}km)"


def _parse_element(element: dict, origin: Coordinate) -> PointOfInterest | None:
    lat, lng = _element_position(element)
    if lat is None or lng is None:
        return None

    tags = element.get("tags", {})
    suburb = tags.get("addr:suburb")
    postcode = tags.get("addr:postcode")
    details = ", ".join(p for p in (suburb, postcode) if p) or None
    return PointOfInterest(
        id=f"supermarket-{element['id']}",
        name=format_supermarket_name(element, origin),
        category=POICategory.SUPERMARKET,
        location=Coordinate(lat=lat, lng=lng),
        suburb=suburb,
        postcode=postcode,
        details=details,
    )


class OverpassClient:
    """Nearby supermarkets from OpenStreetMap. Throttled to one call per interval."""

    def __init__(self, url: str | None = None, min_interval_s: float | None = None):
        self.url = url or settings.overpass_url
        interval = settings.overpass_min_interval_s if min_interval_s is None else min_interval_s
        self.rate_limiter = RateLimiter(interval, name="overpass")

    async def find_supermarkets(
        self, origin: Coordinate, radius_m: int | None = None
    ) -> list[PointOfInterest]:
        radius_m = radius_m or settings.supermarket_radius_m
        query = _build_query(origin.lat, origin.lng, radius_m)

        await self.rate_limiter.wait()
        try:
            async with httpx.AsyncClient(timeout=OVERPASS_TIMEOUT_S + 5.0) as client:
                resp = await client.post(self.url, data={"data": query})
        except httpx.TimeoutException:
            raise OverpassError("Overpass API timeout")
        except httpx.HTTPError as e:
            raise OverpassError(f"Overpass API request failed: {e}") from e

        if resp.status_code == 429:
            raise OverpassRateLimitedError("Overpass API rate limit, retry later")

        if resp.status_code != 200:
            raise OverpassError(f"Overpass API error {resp.status_code}: {resp.text[:200]}")

        elements = resp.json().get("elements", [])
        supermarkets = []
        for el in elements:
            parsed = _parse_element(el, origin)
            if parsed:
                supermarkets.append(parsed)

        logger.info("Overpass returned %d supermarkets within %dm", len(supermarkets), radius_m)
        return supermarkets
