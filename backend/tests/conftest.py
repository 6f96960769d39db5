"""Shared fixtures: POI builders and in-memory fakes for the external services."""

import asyncio

import pytest

from walkscout.exceptions import DatasetUnavailableError
from walkscout.schemas.poi import (
    Coordinate,
    POICategory,
    PointOfInterest,
    RegionCode,
    SchoolLevel,
    SchoolSector,
    WalkingRoute,
)
from walkscout.services.dataset_loader import DatasetLoader
from walkscout.services.geocoding_client import GeocodeResult
from walkscout.services.route_cache import RouteCache
from walkscout.services.route_sequencer import RouteFetchSequencer

SYDNEY = Coordinate(lat=-33.87, lng=151.21)
KM_PER_DEG_LAT = 111.19492664455873  # 6371 * pi / 180

# "_p~iF~ps|U_ulLnnqC_mqNvxq`@" is the reference polyline from Google's docs
SAMPLE_PATH = "_p~iF~ps|U_ulLnnqC_mqNvxq`@"


def north_of(origin: Coordinate, km: float) -> Coordinate:
    return Coordinate(lat=origin.lat + km / KM_PER_DEG_LAT, lng=origin.lng)


def make_school(
    name: str,
    location: Coordinate,
    sector: SchoolSector = SchoolSector.GOVERNMENT,
    level: SchoolLevel = SchoolLevel.PRIMARY,
) -> PointOfInterest:
    return PointOfInterest(
        id=f"school-{name}-2000",
        name=name,
        category=POICategory.SCHOOL,
        location=location,
        sector=sector,
        level=level,
        suburb="Sydney",
        postcode="2000",
    )


def make_poi(name: str, location: Coordinate, category: POICategory = POICategory.STATION) -> PointOfInterest:
    return PointOfInterest(id=f"{category.value}-{name}", name=name, category=category, location=location)


class FakeRouter:
    """Routing service double. ``failures`` maps 1-based call numbers to exceptions."""

    def __init__(self, failures: dict | None = None, gate: asyncio.Event | None = None):
        self.failures = failures or {}
        self.gate = gate
        self.calls: list[tuple[Coordinate, Coordinate]] = []

    async def route(self, origin: Coordinate, destination: Coordinate) -> WalkingRoute:
        self.calls.append((origin, destination))
        number = len(self.calls)
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if number in self.failures:
            raise self.failures[number]
        return WalkingRoute(duration_minutes=5 + number, distance_meters=400 * number, encoded_path=SAMPLE_PATH)


class FakeDatasetSource:
    def __init__(self, schools=None, stations=None, fail: bool = False):
        self.schools = schools or []
        self.stations = stations or []
        self.fail = fail
        self.calls: list[tuple[RegionCode, str]] = []

    async def fetch_dataset(self, region, kind):
        self.calls.append((region, kind))
        await asyncio.sleep(0)
        if self.fail:
            raise DatasetUnavailableError(region.value, kind)
        return list(self.schools if kind == "schools" else self.stations)


class FakeGeocoder:
    def __init__(self, results: dict | None = None, delay: float = 0):
        self.results = results or {}
        self.delay = delay
        self.calls: list[str] = []
        self.cancelled: list[str] = []

    async def geocode(self, address: str) -> GeocodeResult:
        self.calls.append(address)
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled.append(address)
            raise
        outcome = self.results[address]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeSupermarkets:
    def __init__(self, supermarkets=None, error: Exception | None = None):
        self.supermarkets = supermarkets or []
        self.error = error
        self.calls: list[Coordinate] = []

    async def find_supermarkets(self, origin: Coordinate):
        self.calls.append(origin)
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return list(self.supermarkets)


@pytest.fixture()
def router() -> FakeRouter:
    return FakeRouter()


@pytest.fixture()
def cache() -> RouteCache:
    return RouteCache()


@pytest.fixture()
def sequencer(router: FakeRouter, cache: RouteCache) -> RouteFetchSequencer:
    return RouteFetchSequencer(router, cache, delay_s=0)


@pytest.fixture()
def sydney_pois() -> dict:
    return {
        "schools": [
            make_school("Near Public", north_of(SYDNEY, 0.5)),
            make_school("Far Public", north_of(SYDNEY, 3.0)),
            make_school("St Mary's", north_of(SYDNEY, 0.8), sector=SchoolSector.CATHOLIC),
            make_school("Grammar", north_of(SYDNEY, 1.2), sector=SchoolSector.INDEPENDENT,
                        level=SchoolLevel.SECONDARY),
        ],
        "stations": [
            make_poi("Town Hall", north_of(SYDNEY, 0.3)),
            make_poi("Central", north_of(SYDNEY, 1.1)),
        ],
        "supermarkets": [
            make_poi("Coles - Sydney", north_of(SYDNEY, 0.2), POICategory.SUPERMARKET),
            make_poi("Woolworths - Sydney", north_of(SYDNEY, 0.6), POICategory.SUPERMARKET),
        ],
    }


@pytest.fixture()
def dataset_loader(sydney_pois) -> DatasetLoader:
    return DatasetLoader(FakeDatasetSource(sydney_pois["schools"], sydney_pois["stations"]))


@pytest.fixture()
def anyio_backend() -> str:
    # The fakes and services use asyncio primitives directly.
    return "asyncio"
