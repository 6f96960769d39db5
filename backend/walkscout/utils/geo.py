import math

from walkscout.schemas.poi import Coordinate, RegionCode

EARTH_RADIUS_KM = 6371.0
WALKING_SPEED_KMH = 5.0
PATH_MULTIPLIER = 1.4  # real walking paths are ~1.3-1.5x the straight line

# Continental Australia, Tasmania included
AUSTRALIA_LAT = (-45.0, -10.0)
AUSTRALIA_LNG = (110.0, 155.0)

# (region, south, north, west, east); ACT sits inside NSW so it is checked first
_REGION_BOXES = [
    (RegionCode.ACT, -35.92, -35.12, 148.76, 149.4),
    (RegionCode.TAS, -43.6, -39.2, 143.8, 148.5),
    (RegionCode.QLD, -29.0, -10.0, 138.0, 154.0),
    (RegionCode.NT, -26.0, -10.5, 129.0, 138.0),
    (RegionCode.WA, -35.0, -13.5, 113.0, 129.0),
    (RegionCode.SA, -38.0, -26.0, 129.0, 141.0),
    (RegionCode.VIC, -39.2, -33.98, 140.96, 150.0),
]


def haversine(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Distance in km between two points."""
    lat1, lng1, lat2, lng2 = map(math.radians, [lat1, lng1, lat2, lng2])
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def distance_km(a: Coordinate, b: Coordinate) -> float:
    return haversine(a.lat, a.lng, b.lat, b.lng)


def estimate_walking_minutes(distance: float) -> int:
    """
    Heuristic walking time for a straight-line distance in km.

    Applies the path multiplier over a 5 km/h walking speed and rounds half up,
    so 0.5 minutes becomes 1.
    """
    minutes = distance * PATH_MULTIPLIER / WALKING_SPEED_KMH * 60
    return int(math.floor(minutes + 0.5))


def in_australia(coord: Coordinate) -> bool:
    return (
        AUSTRALIA_LAT[0] <= coord.lat <= AUSTRALIA_LAT[1]
        and AUSTRALIA_LNG[0] <= coord.lng <= AUSTRALIA_LNG[1]
    )


def region_for_coordinate(coord: Coordinate) -> RegionCode:
    """Coarse state/territory lookup by bounding box. Anything unmatched is NSW."""
    for region, south, north, west, east in _REGION_BOXES:
        if south <= coord.lat <= north and west <= coord.lng <= east:
            return region
    return RegionCode.NSW
