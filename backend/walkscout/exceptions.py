"""Exception hierarchy for walkscout."""


class WalkscoutError(Exception):
    """Base exception for all walkscout errors."""


class InvalidLocationError(WalkscoutError):
    """The search input is not a usable address or Australian coordinate."""


class GeocodingError(WalkscoutError):
    pass


class AddressNotFoundError(GeocodingError):
    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Address not found: '{address}'")


class GeocodingUnavailableError(GeocodingError):
    pass


class DatasetUnavailableError(WalkscoutError):
    """Schools/stations data could not be loaded for a region."""

    def __init__(self, region: str, detail: str = ""):
        self.region = region
        msg = f"Data unavailable for region {region}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class OverpassError(WalkscoutError):
    pass


class OverpassRateLimitedError(OverpassError):
    pass


class RoutingError(WalkscoutError):
    pass


class RoutingRateLimitedError(RoutingError):
    pass


class NoRouteFoundError(RoutingError):
    pass


class InvalidSelectionError(WalkscoutError):
    def __init__(self, category: str, index: int, size: int):
        self.category = category
        self.index = index
        super().__init__(f"No {category} result at index {index} (have {size})")


class UnknownSessionError(WalkscoutError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Unknown search session: {session_id}")
