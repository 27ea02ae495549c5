"""Pydantic models for the trip route generation backend."""

import math
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

# A (longitude, latitude) pair, in the order routing services expect.
Coordinate = tuple[float, float]


class TripType(str, Enum):
    """Supported trip variants.

    ``"trek"`` is accepted as an input alias for ``WALK``; lookups are
    case-insensitive.
    """

    BIKE = "bike"
    WALK = "walk"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized == "trek":
                return cls.WALK
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class RoutingProfile(str, Enum):
    """Travel profile passed to the routing service."""

    CYCLING = "cycling"
    FOOT = "foot"


class WaypointRole(str, Enum):
    START = "start"
    INTEREST = "interest"
    OVERNIGHT = "overnight"
    END = "end"


class Destination(BaseModel):
    """Where the trip takes place. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    country: str
    city: str | None = None
    """Defaults to the country when omitted."""

    coordinates: Coordinate | None = None
    """(lon, lat); resolved from the first route point after routing."""

    @field_validator("country")
    @classmethod
    def _country_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("country must not be empty")
        return value

    @field_validator("city")
    @classmethod
    def _strip_city(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    def with_defaults(self) -> "Destination":
        """Returns a copy whose ``city`` falls back to the country."""
        if self.city:
            return self
        return self.model_copy(update={"city": self.country})

    def normalized(self) -> str:
        """Case- and whitespace-insensitive form used for request keys."""
        city = self.city or self.country
        return f"{self.country.lower()}/{city.lower()}"


class Waypoint(BaseModel):
    """A named, day-tagged point proposed before any road path exists."""

    day: int = Field(ge=1)
    name: str = Field(min_length=1)
    coordinates: Coordinate
    role: WaypointRole = WaypointRole.INTEREST

    @field_validator("coordinates")
    @classmethod
    def _finite(cls, value: Coordinate) -> Coordinate:
        if not all(math.isfinite(v) for v in value):
            raise ValueError("coordinates must be finite numbers")
        return value


class TripMetadata(BaseModel):
    """Descriptive fields returned alongside the suggested waypoints."""

    title: str | None = None
    description: str | None = None
    region: str | None = None
    start_city: str | None = None
    difficulty: str | None = None


class RouteSegment(BaseModel):
    """One day's real-road path.

    Created by the road router; only the constraint adjuster produces
    modified copies of it.
    """

    geometry: list[Coordinate] = Field(min_length=2)
    distance_km: float = Field(ge=0)
    duration_min: float = Field(ge=0)
    day: int = 1
    description: str = ""
    waypoint_names: list[str] = Field(default_factory=list)
    engine: str = "OSRM"
    profile: RoutingProfile = RoutingProfile.CYCLING
    adjusted: bool = False
    original_distance_km: float = 0
    shortened: bool = False
    """True when the segment came from the half-length repair retry."""

    circular: bool = False


class RoutingInfo(BaseModel):
    engine: str
    real_roads: bool = True
    ai_planned: bool = True
    waypoints_from: str
    routing_from: str


class Trip(BaseModel):
    """A fully assembled and validated trip."""

    routes: list[RouteSegment]
    destination: Destination
    trip_type: TripType
    total_distance_km: float
    duration_label: str
    title: str
    description: str
    difficulty: str
    generated_at: datetime
    source: str
    routing: RoutingInfo


# ---------------------------------------------------------------------------
# HTTP request / response models
# ---------------------------------------------------------------------------


class GenerateTripRequest(BaseModel):
    """Request body for the /trips/generate endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    destination: Destination
    trip_type: TripType = Field(alias="tripType")
    request_id: str | None = Field(default=None, alias="requestId")


class GeneratedFor(BaseModel):
    user_id: str
    request_id: str | None = None
    timestamp: datetime


class GenerateTripResponse(BaseModel):
    """Response from the /trips/generate endpoint."""

    trip: Trip
    message: str = "Trip generated successfully."
    generated_for: GeneratedFor


class GenerationStatusResponse(BaseModel):
    status: str = "operational"
    service: dict
    timestamp: datetime
