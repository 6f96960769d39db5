"""
Per-state schools and stations data.

The datasets are static JSON files partitioned by state, served as
``<base>/<state>/schools.json`` and ``<base>/<state>/stations.json``.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Literal

import httpx
from pydantic import ValidationError

from walkscout.config import settings
from walkscout.exceptions import DatasetUnavailableError
from walkscout.schemas.poi import (
    Coordinate,
    POICategory,
    PointOfInterest,
    RegionCode,
    SchoolLevel,
    SchoolSector,
)

logger = logging.getLogger(__name__)

DatasetKind = Literal["schools", "stations"]


@dataclass(frozen=True)
class RegionDataset:
    region: RegionCode
    schools: list[PointOfInterest] = field(default_factory=list)
    stations: list[PointOfInterest] = field(default_factory=list)


def _parse_school(record: dict) -> PointOfInterest:
    sector = SchoolSector(record["sector"])
    level = SchoolLevel(record["type"])
    suburb = record.get("suburb") or ""
    postcode = str(record.get("postcode") or "")
    return PointOfInterest(
        id=f"school-{record['name']}-{postcode}",
        name=record["name"],
        category=POICategory.SCHOOL,
        location=Coordinate(lat=record["latitude"], lng=record["longitude"]),
        sector=sector,
        level=level,
        suburb=suburb or None,
        postcode=postcode or None,
        details=f"{suburb}, {sector.value}, {level.value}",
    )


def _parse_station(record: dict) -> PointOfInterest:
    state = record.get("state") or ""
    return PointOfInterest(
        id=f"station-{record['name']}-{state}",
        name=record["name"],
        category=POICategory.STATION,
        location=Coordinate(lat=record["latitude"], lng=record["longitude"]),
        details=state or None,
    )


_PARSERS = {"schools": _parse_school, "stations": _parse_station}


def parse_records(records: list[dict], kind: DatasetKind) -> list[PointOfInterest]:
    parser = _PARSERS[kind]
    pois = []
    skipped = 0
    for record in records:
        try:
            pois.append(parser(record))
        except (KeyError, TypeError, ValueError, ValidationError):
            skipped += 1
    if skipped:
        logger.warning("Skipped %d malformed %s records", skipped, kind)
    return pois


class StaticDatasetSource:
    def __init__(self, base_url: str | None = None, timeout: float = 30.0):
        self.base_url = (base_url or settings.dataset_base_url).rstrip("/")
        self.timeout = timeout

    async def fetch_dataset(self, region: RegionCode, kind: DatasetKind) -> list[PointOfInterest]:
        url = f"{self.base_url}/{region.value.lower()}/{kind}.json"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(url)
        except httpx.HTTPError as e:
            raise DatasetUnavailableError(region.value, f"{kind}: {e}") from e

        if resp.status_code != 200:
            raise DatasetUnavailableError(region.value, f"{kind}: HTTP {resp.status_code}")

        return parse_records(resp.json(), kind)


class DatasetLoader:
    """
    Loads and memoizes region datasets for the lifetime of the process.

    Concurrent requests for a region that is still loading share one task,
    so each region is fetched at most once unless the load fails.
    """

    def __init__(self, source: StaticDatasetSource | None = None):
        self.source = source or StaticDatasetSource()
        self._loaded: dict[RegionCode, RegionDataset] = {}
        self._pending: dict[RegionCode, asyncio.Task] = {}

    def is_loaded(self, region: RegionCode) -> bool:
        return region in self._loaded

    async def load_region(self, region: RegionCode) -> RegionDataset:
        if region in self._loaded:
            return self._loaded[region]

        task = self._pending.get(region)
        if task is None:
            task = asyncio.ensure_future(self._fetch_region(region))
            self._pending[region] = task
            task.add_done_callback(lambda _t, r=region: self._pending.pop(r, None))

        # shield so one cancelled caller does not abort the load for the others
        return await asyncio.shield(task)

    async def _fetch_region(self, region: RegionCode) -> RegionDataset:
        try:
            schools, stations = await asyncio.gather(
                self.source.fetch_dataset(region, "schools"),
                self.source.fetch_dataset(region, "stations"),
            )
        except DatasetUnavailableError:
            logger.warning("Dataset load failed for %s", region.value)
            raise
        except Exception as e:
            logger.warning("Dataset load failed for %s: %s", region.value, e)
            raise DatasetUnavailableError(region.value, str(e)) from e

        dataset = RegionDataset(region=region, schools=schools, stations=stations)
        self._loaded[region] = dataset
        logger.info(
            "Loaded %s data: %d schools, %d stations", region.value, len(schools), len(stations)
        )
        return dataset

    def clear(self) -> None:
        self._loaded.clear()
