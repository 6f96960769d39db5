import math

import pytest

from walkscout.schemas.poi import Coordinate, RegionCode
from walkscout.utils.geo import (
    distance_km,
    estimate_walking_minutes,
    haversine,
    in_australia,
    region_for_coordinate,
)

SYDNEY = Coordinate(lat=-33.8688, lng=151.2093)
MELBOURNE = Coordinate(lat=-37.8136, lng=144.9631)
PERTH = Coordinate(lat=-31.9505, lng=115.8605)


class TestDistance:
    def test_sydney_to_melbourne(self):
        assert distance_km(SYDNEY, MELBOURNE) == pytest.approx(713.4, abs=2)

    @pytest.mark.parametrize("a,b", [(SYDNEY, MELBOURNE), (SYDNEY, PERTH), (MELBOURNE, PERTH)])
    def test_symmetric(self, a, b):
        assert distance_km(a, b) == distance_km(b, a)

    @pytest.mark.parametrize("point", [SYDNEY, MELBOURNE, PERTH, Coordinate(lat=0, lng=0)])
    def test_same_point_is_zero(self, point):
        assert distance_km(point, point) == 0

    def test_one_degree_of_latitude(self):
        assert haversine(0, 0, 1, 0) == pytest.approx(111.195, abs=0.001)

    def test_nan_propagates(self):
        assert math.isnan(haversine(float("nan"), 0, 0, 0))


class TestWalkingEstimate:
    @pytest.mark.parametrize("km", [0, 0.1, 0.37, 1.0, 1.234, 2.5, 10])
    def test_formula(self, km):
        assert estimate_walking_minutes(km) == round(km * 1.4 / 5 * 60)

    def test_one_kilometre(self):
        assert estimate_walking_minutes(1.0) == 17

    def test_ceiling_distance(self):
        assert estimate_walking_minutes(2.5) == 42


class TestRegions:
    @pytest.mark.parametrize(
        "lat,lng,region",
        [
            (-33.87, 151.21, RegionCode.NSW),
            (-37.81, 144.96, RegionCode.VIC),
            (-27.47, 153.03, RegionCode.QLD),
            (-35.28, 149.13, RegionCode.ACT),
            (-42.88, 147.33, RegionCode.TAS),
            (-31.95, 115.86, RegionCode.WA),
            (-34.93, 138.60, RegionCode.SA),
            (-12.46, 130.84, RegionCode.NT),
        ],
    )
    def test_capitals(self, lat, lng, region):
        assert region_for_coordinate(Coordinate(lat=lat, lng=lng)) is region

    def test_in_australia(self):
        assert in_australia(SYDNEY)
        assert not in_australia(Coordinate(lat=51.5, lng=-0.12))
        assert not in_australia(Coordinate(lat=-8.0, lng=115.0))
