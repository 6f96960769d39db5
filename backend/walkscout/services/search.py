import asyncio
import logging
import re
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Protocol

from walkscout.exceptions import (
    DatasetUnavailableError,
    GeocodingError,
    InvalidLocationError,
    InvalidSelectionError,
)
from walkscout.schemas.poi import (
    Coordinate,
    POICategory,
    PointOfInterest,
    RankedResult,
    RegionCode,
    SchoolLevel,
    SchoolSector,
    WalkingRoute,
)
from walkscout.schemas.search import (
    CategoryResults,
    FilterResponse,
    LocationResponse,
    RankedPOIResponse,
    SearchSnapshot,
)
from walkscout.services.dataset_loader import DatasetLoader
from walkscout.services.geocoding_client import GeocodeResult
from walkscout.services.preferences import (
    FilterPreferences,
    PreferenceStore,
    load_filter_preferences,
    load_last_location,
    save_filter_preferences,
    save_last_location,
)
from walkscout.services.ranker import SchoolFilter, rank
from walkscout.services.route_sequencer import RouteFetchSequencer, RouteRequest, RouteStatus
from walkscout.utils.geo import in_australia, region_for_coordinate

logger = logging.getLogger(__name__)

MAX_QUERY_LENGTH = 200
MIN_QUERY_LENGTH = 3
_URL = re.compile(r"https?://\S+")


class Geocoder(Protocol):
    async def geocode(self, address: str) -> GeocodeResult: ...


class SupermarketFinder(Protocol):
    async def find_supermarkets(self, origin: Coordinate) -> list[PointOfInterest]: ...


class SearchPhase(str, Enum):
    IDLE = "idle"
    RESOLVING_LOCATION = "resolving_location"
    LOADING_REGION_DATA = "loading_region_data"
    RANKING = "ranking"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class SearchLocation:
    location: Coordinate
    region: RegionCode
    display_name: str


def sanitize_query(raw: str | None) -> str:
    """Strip embedded URLs and angle brackets from a free-text address."""
    cleaned = _URL.sub("", raw or "").strip()
    if not cleaned:
        raise InvalidLocationError("Please enter an address")
    cleaned = cleaned[:MAX_QUERY_LENGTH].replace("<", "").replace(">", "").strip()
    if len(cleaned) < MIN_QUERY_LENGTH:
        raise InvalidLocationError("Address is too short")
    return cleaned


def _location_response(where: SearchLocation | None) -> LocationResponse | None:
    if where is None:
        return None
    return LocationResponse(
        lat=where.location.lat,
        lng=where.location.lng,
        region=where.region,
        display_name=where.display_name,
    )


class SearchOrchestrator:
    """
    Drives one user's search: location, region data, ranking, selection,
    and background route enrichment of the selected results.

    A newer search supersedes an older one. Each search bumps ``generation``;
    background work from an older generation is ignored when it completes.
    """

    def __init__(
        self,
        geocoder: Geocoder,
        datasets: DatasetLoader,
        supermarkets: SupermarketFinder,
        sequencer: RouteFetchSequencer,
        preferences: PreferenceStore | None = None,
    ):
        self.geocoder = geocoder
        self.datasets = datasets
        self.supermarkets = supermarkets
        self.sequencer = sequencer
        self.preferences = preferences

        self.phase = SearchPhase.IDLE
        self.generation = 0
        self.location: SearchLocation | None = None
        self.last_location: SearchLocation | None = None
        self.error: str | None = None
        self.filters = FilterPreferences()
        self.results: dict[POICategory, list[RankedResult]] = {c: [] for c in POICategory}
        self.selection: dict[POICategory, int] = {c: 0 for c in POICategory}
        self.category_errors: dict[POICategory, str] = {}
        self.route_errors: dict[POICategory, str] = {}

        self._candidates: dict[POICategory, list[PointOfInterest]] = {c: [] for c in POICategory}
        self._geocode_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()

    async def start(self) -> None:
        """Rehydrate persisted school filters and the last searched location."""
        if self.preferences is None:
            return
        self.filters = await load_filter_preferences(self.preferences)
        last = await load_last_location(self.preferences)
        if last is not None:
            self.last_location = SearchLocation(*last)

    # ── Searching ─────────────────────────────────────────────────

    async def search_address(self, address: str) -> SearchSnapshot | None:
        """
        Geocode *address* and run the search.

        Returns None if a newer search superseded this one while it was
        geocoding. Raises GeocodingError when the address cannot be resolved.
        """
        query = sanitize_query(address)
        generation = self._begin_search()
        self.phase = SearchPhase.RESOLVING_LOCATION

        task = asyncio.ensure_future(self.geocoder.geocode(query))
        self._geocode_task = task
        try:
            result = await task
        except asyncio.CancelledError:
            if generation != self.generation:
                logger.info("Search for %r superseded", query)
                return None
            raise
        except GeocodingError as e:
            if generation != self.generation:
                return None
            self.phase = SearchPhase.ERROR
            self.error = str(e)
            raise
        finally:
            if self._geocode_task is task:
                self._geocode_task = None

        if generation != self.generation:
            return None

        if not in_australia(result.location):
            self.phase = SearchPhase.ERROR
            self.error = f"{result.display_name} is outside Australia"
            raise InvalidLocationError(self.error)

        logger.info("Geocoded %r to %s,%s (%s)", query, result.location.lat,
                    result.location.lng, result.region.value)
        return await self._run_search(
            SearchLocation(result.location, result.region, result.display_name), generation
        )

    async def search_coordinates(
        self,
        location: Coordinate,
        region: RegionCode | None = None,
        display_name: str = "Current Location",
    ) -> SearchSnapshot | None:
        generation = self._begin_search()
        if not in_australia(location):
            self.phase = SearchPhase.ERROR
            self.error = "Location is outside Australia"
            raise InvalidLocationError(self.error)

        region = region or region_for_coordinate(location)
        return await self._run_search(SearchLocation(location, region, display_name), generation)

    def _begin_search(self) -> int:
        if self._geocode_task is not None and not self._geocode_task.done():
            self._geocode_task.cancel()
        self._geocode_task = None
        self.generation += 1
        self.error = None
        return self.generation

    async def _run_search(self, where: SearchLocation, generation: int) -> SearchSnapshot | None:
        self.phase = SearchPhase.LOADING_REGION_DATA
        self.location = where
        self.category_errors = {}
        self.route_errors = {}

        dataset, supermarkets = await asyncio.gather(
            self.datasets.load_region(where.region),
            self.supermarkets.find_supermarkets(where.location),
            return_exceptions=True,
        )
        if generation != self.generation:
            return None

        for outcome in (dataset, supermarkets):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome

        if isinstance(dataset, Exception) and isinstance(supermarkets, Exception):
            self.phase = SearchPhase.ERROR
            self.error = str(dataset)
            logger.warning("No data at all for %s: %s / %s", where.region.value, dataset, supermarkets)
            if isinstance(dataset, DatasetUnavailableError):
                raise dataset
            raise DatasetUnavailableError(where.region.value, str(dataset)) from dataset

        if isinstance(dataset, Exception):
            logger.warning("Schools and stations unavailable: %s", dataset)
            self.category_errors[POICategory.SCHOOL] = str(dataset)
            self.category_errors[POICategory.STATION] = str(dataset)
            self._candidates[POICategory.SCHOOL] = []
            self._candidates[POICategory.STATION] = []
        else:
            self._candidates[POICategory.SCHOOL] = dataset.schools
            self._candidates[POICategory.STATION] = dataset.stations

        if isinstance(supermarkets, Exception):
            logger.warning("Supermarkets unavailable: %s", supermarkets)
            self.category_errors[POICategory.SUPERMARKET] = str(supermarkets)
            self._candidates[POICategory.SUPERMARKET] = []
        else:
            self._candidates[POICategory.SUPERMARKET] = supermarkets

        self.phase = SearchPhase.RANKING
        for category in POICategory:
            self.results[category] = self._rank(category)
        self.selection = {c: 0 for c in POICategory}
        self.phase = SearchPhase.READY

        logger.info(
            "Search ready: %d schools, %d stations, %d supermarkets",
            len(self.results[POICategory.SCHOOL]),
            len(self.results[POICategory.STATION]),
            len(self.results[POICategory.SUPERMARKET]),
        )
        self._enrich(list(POICategory))
        self.last_location = where
        if self.preferences is not None:
            await save_last_location(self.preferences, where.location, where.region, where.display_name)
        return self.snapshot()

    def _rank(self, category: POICategory) -> list[RankedResult]:
        predicate = None
        if category is POICategory.SCHOOL:
            predicate = SchoolFilter(self.filters.sectors, self.filters.levels)
        return rank(self._candidates[category], self.location.location, predicate)

    # ── Selection and filters ─────────────────────────────────────

    def select(self, category: POICategory, index: int) -> SearchSnapshot:
        results = self.results[category]
        if not 0 <= index < len(results):
            raise InvalidSelectionError(category.value, index, len(results))
        self.selection[category] = index
        self.route_errors.pop(category, None)
        self._enrich([category])
        return self.snapshot()

    async def set_school_filter(
        self,
        sectors: set[SchoolSector] | None = None,
        levels: set[SchoolLevel] | None = None,
    ) -> SearchSnapshot:
        if sectors is not None and not sectors:
            raise ValueError("At least one school sector must be selected")
        if levels is not None and not levels:
            raise ValueError("At least one school type must be selected")
        await self._apply_filters(FilterPreferences(
            sectors=frozenset(sectors) if sectors is not None else self.filters.sectors,
            levels=frozenset(levels) if levels is not None else self.filters.levels,
        ))
        return self.snapshot()

    async def toggle_sector(self, sector: SchoolSector) -> SearchSnapshot:
        await self._apply_filters(self.filters.toggle_sector(sector))
        return self.snapshot()

    async def toggle_level(self, level: SchoolLevel) -> SearchSnapshot:
        await self._apply_filters(self.filters.toggle_level(level))
        return self.snapshot()

    async def _apply_filters(self, filters: FilterPreferences) -> None:
        if filters == self.filters:
            return
        self.filters = filters
        if self.preferences is not None:
            await save_filter_preferences(self.preferences, filters)
        if self.phase is not SearchPhase.READY:
            return
        self.results[POICategory.SCHOOL] = self._rank(POICategory.SCHOOL)
        self.selection[POICategory.SCHOOL] = 0
        self.route_errors.pop(POICategory.SCHOOL, None)
        self._enrich([POICategory.SCHOOL])

    # ── Route enrichment ──────────────────────────────────────────

    def selected(self, category: POICategory) -> RankedResult | None:
        results = self.results[category]
        index = self.selection[category]
        return results[index] if index < len(results) else None

    def route_for(self, category: POICategory) -> WalkingRoute | None:
        current = self.selected(category)
        if current is None or self.location is None:
            return None
        return self.sequencer.cache.get(self.location.location, current.poi)

    def _enrich(self, categories: list[POICategory]) -> asyncio.Task | None:
        """Queue one route request per category for its selected result, as one batch."""
        requests = []
        batch = []
        for category in categories:
            current = self.selected(category)
            if current is None:
                continue
            if self.sequencer.cache.contains(self.location.location, current.poi):
                continue
            requests.append(RouteRequest(self.location.location, current.poi))
            batch.append((category, current.poi.id))

        if not requests:
            return None

        task = self.sequencer.enqueue(requests)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        task.add_done_callback(partial(self._on_enrichment_done, self.generation, batch))
        return task

    def _on_enrichment_done(
        self, generation: int, batch: list[tuple[POICategory, str]], task: asyncio.Task
    ) -> None:
        if task.cancelled():
            return
        if task.exception() is not None:
            logger.warning("Route enrichment failed: %s", task.exception())
            return
        if generation != self.generation:
            logger.debug("Discarding route results from superseded search %d", generation)
            return
        for (category, poi_id), state in zip(batch, task.result()):
            current = self.selected(category)
            if current is None or current.poi.id != poi_id:
                continue
            if state is not None and state.status is RouteStatus.FAILED:
                self.route_errors[category] = state.reason.value if state.reason else "failed"
            else:
                self.route_errors.pop(category, None)

    async def wait_for_routes(self) -> None:
        """Wait for queued background enrichment. Mostly useful to tests and shutdown."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ── Presentation ──────────────────────────────────────────────

    def snapshot(self) -> SearchSnapshot:
        categories = {}
        for category in POICategory:
            items = [self._describe(r) for r in self.results[category]]
            current = self.selected(category)
            loading = False
            if current is not None and self.location is not None:
                state = self.sequencer.status(self.location.location, current.poi)
                loading = state is not None and state.loading
            categories[category] = CategoryResults(
                results=items,
                selected_index=self.selection[category],
                error=self.category_errors.get(category),
                route_loading=loading,
                route_error=self.route_errors.get(category),
            )

        return SearchSnapshot(
            phase=self.phase.value,
            generation=self.generation,
            location=_location_response(self.location),
            last_location=_location_response(self.last_location),
            error=self.error,
            categories=categories,
            filters=FilterResponse(
                sectors=sorted(self.filters.sectors, key=lambda s: s.value),
                levels=sorted(self.filters.levels, key=lambda lv: lv.value),
            ),
        )

    def _describe(self, result: RankedResult) -> RankedPOIResponse:
        poi = result.poi
        item = RankedPOIResponse(
            id=poi.id,
            name=poi.name,
            category=poi.category,
            lat=poi.location.lat,
            lng=poi.location.lng,
            details=poi.details,
            sector=poi.sector,
            level=poi.level,
            distance_km=round(result.distance_km, 3),
            estimated_walking_minutes=result.estimated_walking_minutes,
        )
        state = self.sequencer.status(self.location.location, poi)
        if state is not None:
            item.route_status = state.status
            item.route_failure = state.reason
        route = self.sequencer.cache.get(self.location.location, poi)
        if route is not None:
            item.walking_minutes = route.duration_minutes
            item.walking_distance_meters = route.distance_meters
            item.encoded_path = route.encoded_path
        return item
