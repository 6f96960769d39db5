from enum import Enum

import polyline as polyline_codec
from pydantic import BaseModel, ConfigDict, Field


class RegionCode(str, Enum):
    NSW = "NSW"
    VIC = "VIC"
    QLD = "QLD"
    WA = "WA"
    SA = "SA"
    TAS = "TAS"
    ACT = "ACT"
    NT = "NT"


class POICategory(str, Enum):
    SCHOOL = "school"
    STATION = "station"
    SUPERMARKET = "supermarket"


class SchoolSector(str, Enum):
    GOVERNMENT = "Government"
    CATHOLIC = "Catholic"
    INDEPENDENT = "Independent"


class SchoolLevel(str, Enum):
    PRIMARY = "Primary"
    SECONDARY = "Secondary"
    COMBINED = "Combined"


class Coordinate(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class PointOfInterest(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category: POICategory
    location: Coordinate
    sector: SchoolSector | None = None
    level: SchoolLevel | None = None
    suburb: str | None = None
    postcode: str | None = None
    details: str | None = None


class RankedResult(BaseModel):
    poi: PointOfInterest
    distance_km: float
    estimated_walking_minutes: int


class WalkingRoute(BaseModel):
    model_config = ConfigDict(frozen=True)

    duration_minutes: int
    distance_meters: int
    encoded_path: str = ""

    def path(self) -> list[list[float]]:
        """Decoded route geometry as [lng, lat] pairs (OpenRouteService uses precision 5)."""
        if not self.encoded_path:
            return []
        return [[lng, lat] for lat, lng in polyline_codec.decode(self.encoded_path, 5)]
