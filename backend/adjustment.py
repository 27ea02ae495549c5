"""Distance constraint adjustment.

Brings each day segment inside its trip policy's [min, max] distance range:

  over max,  truncate policy: cut the geometry proportionally to fit.
  over max,  relabel policy : report the max distance, geometry untouched.
  under min                 : report the min distance, geometry untouched.

The under-limit "extension" only rewrites the reported distance and duration;
no extra road is routed, so the reported figure can exceed the real path
length. ``original_distance_km`` keeps the routed value for traceability.
"""

import logging
import math

from models import RouteSegment, TripType
from policies import OverLimitAction, TripPolicy, get_policy

logger = logging.getLogger(__name__)


def adjust(routes: list[RouteSegment], trip_type: TripType) -> list[RouteSegment]:
    """Returns adjusted copies of ``routes``; the inputs are not modified.

    Every returned segment records the routed distance in
    ``original_distance_km`` and sets ``adjusted`` when the final distance
    differs from it.
    """
    policy = get_policy(trip_type)
    logger.info("Adjusting %d %s routes to distance limits", len(routes), policy.trip_type.value)
    return [_adjust_segment(route, policy) for route in routes]


def _adjust_segment(route: RouteSegment, policy: TripPolicy) -> RouteSegment:
    current = route.distance_km

    if current > policy.max_day_km:
        if policy.over_limit is OverLimitAction.TRUNCATE:
            logger.info(
                "Cutting day %d route from %.0fkm to max %.0fkm",
                route.day, current, policy.max_day_km,
            )
            adjusted = truncate(route, policy.max_day_km, policy.average_speed_kmh)
        else:
            logger.info(
                "Adjusting day %d route from %.0fkm to %.0fkm",
                route.day, current, policy.max_day_km,
            )
            adjusted = relabel(route, policy.max_day_km, policy.average_speed_kmh)
    elif current < policy.min_day_km:
        logger.info(
            "Extending day %d route from %.0fkm to min %.0fkm",
            route.day, current, policy.min_day_km,
        )
        adjusted = relabel(route, policy.min_day_km, policy.average_speed_kmh)
    else:
        adjusted = route

    return adjusted.model_copy(
        update={
            "original_distance_km": current,
            "adjusted": adjusted.distance_km != current,
        }
    )


def truncate(route: RouteSegment, max_km: float, speed_kmh: float) -> RouteSegment:
    """Keeps the leading share of the geometry that fits ``max_km``.

    The share is ``max_km / distance_km`` of the coordinates, rounded up and
    never fewer than two points.
    """
    ratio = max_km / route.distance_km
    keep = max(2, math.ceil(len(route.geometry) * ratio))
    return route.model_copy(
        update={
            "geometry": route.geometry[:keep],
            "distance_km": max_km,
            "duration_min": _duration_min(max_km, speed_kmh),
        }
    )


def relabel(route: RouteSegment, target_km: float, speed_kmh: float) -> RouteSegment:
    """Reports ``target_km`` for the route without changing its geometry."""
    return route.model_copy(
        update={
            "distance_km": target_km,
            "duration_min": _duration_min(target_km, speed_kmh),
        }
    )


def _duration_min(distance_km: float, speed_kmh: float) -> int:
    return round(distance_km / speed_kmh * 60)
