import pytest

from conftest import SYDNEY, make_poi, make_school, north_of

from walkscout.schemas.poi import Coordinate, POICategory, SchoolLevel, SchoolSector
from walkscout.services.ranker import SchoolFilter, rank


def test_sector_filter_and_distance_ceiling():
    near = make_school("Near Public", north_of(SYDNEY, 0.5))
    far = make_school("Far Public", north_of(SYDNEY, 3.0))

    ranked = rank([far, near], SYDNEY, SchoolFilter(sectors=frozenset({SchoolSector.GOVERNMENT})))

    assert [r.poi.id for r in ranked] == [near.id]
    assert ranked[0].distance_km == pytest.approx(0.5)
    assert ranked[0].estimated_walking_minutes == 8


def test_sector_filter_excludes_other_sectors():
    gov = make_school("Public", north_of(SYDNEY, 0.5))
    catholic = make_school("St Mary's", north_of(SYDNEY, 0.2), sector=SchoolSector.CATHOLIC)

    ranked = rank([gov, catholic], SYDNEY, SchoolFilter(sectors=frozenset({SchoolSector.GOVERNMENT})))

    assert [r.poi.name for r in ranked] == ["Public"]


def test_level_filter():
    primary = make_school("Primary", north_of(SYDNEY, 0.5))
    secondary = make_school("High", north_of(SYDNEY, 0.4), level=SchoolLevel.SECONDARY)

    ranked = rank([primary, secondary], SYDNEY, SchoolFilter(levels=frozenset({SchoolLevel.SECONDARY})))

    assert [r.poi.name for r in ranked] == ["High"]


def test_sorted_ascending_and_capped():
    stations = [make_poi(f"s{i}", north_of(SYDNEY, 2.0 - i * 0.1)) for i in range(15)]

    ranked = rank(stations, SYDNEY, max_results=10)

    assert len(ranked) == 10
    distances = [r.distance_km for r in ranked]
    assert distances == sorted(distances)
    assert ranked[0].poi.name == "s14"


def test_never_exceeds_ceiling():
    stations = [make_poi(f"s{i}", north_of(SYDNEY, i * 0.4)) for i in range(12)]

    ranked = rank(stations, SYDNEY)

    assert ranked
    assert all(r.distance_km <= 2.5 for r in ranked)
    assert len(ranked) == 7  # 0.0 .. 2.4 km


def test_ties_keep_input_order():
    spot = north_of(SYDNEY, 0.7)
    first = make_poi("first", spot)
    second = make_poi("second", spot)
    third = make_poi("third", spot)

    ranked = rank([second, first, third], SYDNEY)

    assert [r.poi.name for r in ranked] == ["second", "first", "third"]


def test_idempotent(sydney_pois):
    schools = sydney_pois["schools"]
    predicate = SchoolFilter()

    assert rank(schools, SYDNEY, predicate) == rank(schools, SYDNEY, predicate)


def test_empty_result_is_a_list():
    far = make_poi("far", Coordinate(lat=-37.81, lng=144.96), POICategory.SUPERMARKET)

    assert rank([far], SYDNEY) == []
    assert rank([], SYDNEY) == []
