from pydantic import BaseModel, Field, model_validator

from walkscout.schemas.poi import POICategory, RegionCode, SchoolLevel, SchoolSector
from walkscout.services.route_sequencer import FailureReason, RouteStatus


class SearchRequest(BaseModel):
    address: str | None = Field(None, max_length=2000)
    lat: float | None = Field(None, ge=-90, le=90)
    lng: float | None = Field(None, ge=-180, le=180)
    display_name: str | None = None

    @model_validator(mode="after")
    def check_address_or_coordinates(self) -> "SearchRequest":
        has_coords = self.lat is not None and self.lng is not None
        if not self.address and not has_coords:
            raise ValueError("either address or both lat and lng are required")
        if (self.lat is None) != (self.lng is None):
            raise ValueError("lat and lng must be given together")
        return self


class SelectRequest(BaseModel):
    category: POICategory
    index: int = Field(..., ge=0)


class FilterRequest(BaseModel):
    sectors: list[SchoolSector] | None = Field(None, min_length=1)
    levels: list[SchoolLevel] | None = Field(None, min_length=1)


class SessionResponse(BaseModel):
    session_id: str


class LocationResponse(BaseModel):
    lat: float
    lng: float
    region: RegionCode
    display_name: str


class RankedPOIResponse(BaseModel):
    id: str
    name: str
    category: POICategory
    lat: float
    lng: float
    details: str | None
    sector: SchoolSector | None
    level: SchoolLevel | None
    distance_km: float
    estimated_walking_minutes: int
    route_status: RouteStatus | None = None
    route_failure: FailureReason | None = None
    walking_minutes: int | None = None
    walking_distance_meters: int | None = None
    encoded_path: str | None = None


class CategoryResults(BaseModel):
    results: list[RankedPOIResponse]
    selected_index: int
    error: str | None = None
    route_loading: bool = False
    route_error: str | None = None


class FilterResponse(BaseModel):
    sectors: list[SchoolSector]
    levels: list[SchoolLevel]


class SearchSnapshot(BaseModel):
    phase: str
    generation: int
    location: LocationResponse | None
    error: str | None
    categories: dict[POICategory, CategoryResults]
    filters: FilterResponse
    last_location: LocationResponse | None = None
