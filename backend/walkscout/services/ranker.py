from collections.abc import Callable, Iterable
from dataclasses import dataclass

from walkscout.config import settings
from walkscout.schemas.poi import (
    Coordinate,
    PointOfInterest,
    RankedResult,
    SchoolLevel,
    SchoolSector,
)
from walkscout.utils.geo import distance_km, estimate_walking_minutes

POIPredicate = Callable[[PointOfInterest], bool]


@dataclass(frozen=True)
class SchoolFilter:
    """Keep schools whose sector and level are both selected."""

    sectors: frozenset[SchoolSector] = frozenset(SchoolSector)
    levels: frozenset[SchoolLevel] = frozenset(SchoolLevel)

    def __call__(self, poi: PointOfInterest) -> bool:
        return poi.sector in self.sectors and poi.level in self.levels


def rank(
    pois: Iterable[PointOfInterest],
    origin: Coordinate,
    predicate: POIPredicate | None = None,
    max_results: int | None = None,
    max_distance_km: float | None = None,
) -> list[RankedResult]:
    """
    Rank candidates by straight-line distance from *origin*.

    Candidates failing *predicate* or further than *max_distance_km* are
    dropped. The sort is stable, so equidistant candidates keep their input
    order. An empty list is a valid result.
    """
    if max_results is None:
        max_results = settings.max_results_per_category
    if max_distance_km is None:
        max_distance_km = settings.max_walking_distance_km

    ranked = []
    for poi in pois:
        if predicate is not None and not predicate(poi):
            continue
        dist = distance_km(origin, poi.location)
        if not dist <= max_distance_km:
            continue
        ranked.append(
            RankedResult(
                poi=poi,
                distance_km=dist,
                estimated_walking_minutes=estimate_walking_minutes(dist),
            )
        )

    ranked.sort(key=lambda r: r.distance_km)
    return ranked[:max_results]
