"""Trip-type policies.

Everything that differs between a bike trip and a walk (routing profile,
distance limits, day count, prompt shape) lives in one ``TripPolicy`` per
trip type. Pipeline stages look the policy up with ``get_policy`` instead of
branching on the trip type themselves.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict

from models import RoutingProfile, TripType


class OverLimitAction(str, Enum):
    TRUNCATE = "truncate"   # cut the geometry down to the max distance
    RELABEL = "relabel"     # overwrite the reported distance only


class TripPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    trip_type: TripType
    profile: RoutingProfile
    day_count: int
    min_day_km: float
    max_day_km: float
    over_limit: OverLimitAction
    average_speed_kmh: float
    """Used to recompute duration after an adjustment."""

    final_min_day_km: float
    final_max_day_km: float
    """Bounds checked by the final validator (per day)."""

    min_points_per_day: int = 2
    circular: bool = False
    waypoints_per_day: str
    duration_label: str
    default_title: str
    default_difficulty: str = "moderate"


BIKE_POLICY = TripPolicy(
    trip_type=TripType.BIKE,
    profile=RoutingProfile.CYCLING,
    day_count=2,
    min_day_km=35,
    max_day_km=60,
    over_limit=OverLimitAction.TRUNCATE,
    average_speed_kmh=20,
    # Looser than min_day_km: only a safety net behind the adjuster.
    final_min_day_km=10,
    final_max_day_km=60,
    waypoints_per_day="4-6",
    duration_label="2 consecutive days",
    default_title="Cycling trip",
)

WALK_POLICY = TripPolicy(
    trip_type=TripType.WALK,
    profile=RoutingProfile.FOOT,
    day_count=1,
    min_day_km=5,
    max_day_km=15,
    over_limit=OverLimitAction.RELABEL,
    average_speed_kmh=4,
    final_min_day_km=5,
    final_max_day_km=15,
    circular=True,
    waypoints_per_day="5-7",
    duration_label="1 day",
    default_title="Walking trip",
    default_difficulty="easy",
)

_POLICIES: dict[TripType, TripPolicy] = {
    TripType.BIKE: BIKE_POLICY,
    TripType.WALK: WALK_POLICY,
}


def get_policy(trip_type: TripType | str) -> TripPolicy:
    """Returns the policy for ``trip_type`` (aliases such as "trek" accepted)."""
    return _POLICIES[TripType(trip_type)]
