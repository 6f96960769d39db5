from walkscout.schemas.poi import Coordinate, PointOfInterest, WalkingRoute

KEY_PRECISION = 6  # ~0.1 m, absorbs float jitter from re-geocoding the same address

RouteKey = tuple[float, float, float, float]


def route_key(origin: Coordinate, poi: PointOfInterest) -> RouteKey:
    dest = poi.location
    return (
        round(origin.lat, KEY_PRECISION),
        round(origin.lng, KEY_PRECISION),
        round(dest.lat, KEY_PRECISION),
        round(dest.lng, KEY_PRECISION),
    )


class RouteCache:
    """Walking routes keyed by rounded origin/destination pair. Unbounded."""

    def __init__(self):
        self._routes: dict[RouteKey, WalkingRoute] = {}

    def get(self, origin: Coordinate, poi: PointOfInterest) -> WalkingRoute | None:
        return self._routes.get(route_key(origin, poi))

    def put(self, origin: Coordinate, poi: PointOfInterest, route: WalkingRoute) -> None:
        self._routes[route_key(origin, poi)] = route

    def contains(self, origin: Coordinate, poi: PointOfInterest) -> bool:
        return route_key(origin, poi) in self._routes

    def clear(self) -> None:
        self._routes.clear()

    def __len__(self) -> int:
        return len(self._routes)
