"""Final trip assembly and validation."""

import logging
from datetime import datetime, timezone

from errors import ConstraintViolationError
from models import (
    Destination,
    RouteSegment,
    RoutingInfo,
    Trip,
    TripMetadata,
    TripType,
)
from policies import get_policy

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION: str = "Custom generated route"
# Bike totals above this are logged; individual days are what is enforced.
HIGH_BIKE_TOTAL_KM: float = 120


def assemble(
    routes: list[RouteSegment],
    destination: Destination,
    trip_type: TripType,
    metadata: TripMetadata | None = None,
    *,
    waypoints_from: str = "AI suggestions",
) -> Trip:
    """Builds the final ``Trip`` after validating ``routes``.

    The destination's coordinates are taken from the first point of the
    first route when not already known.

    Raises:
        ConstraintViolationError: If the routes break the trip policy. No
            partial trip is returned.
    """
    policy = get_policy(trip_type)
    metadata = metadata or TripMetadata()

    validate_trip(routes, trip_type)

    if destination.coordinates is None:
        destination = destination.model_copy(
            update={"coordinates": routes[0].geometry[0]}
        )

    engine = routes[0].engine
    return Trip(
        routes=routes,
        destination=destination,
        trip_type=policy.trip_type,
        total_distance_km=sum(route.distance_km for route in routes),
        duration_label=policy.duration_label,
        title=metadata.title or policy.default_title,
        description=metadata.description or DEFAULT_DESCRIPTION,
        difficulty=metadata.difficulty or policy.default_difficulty,
        generated_at=datetime.now(timezone.utc),
        source=f"{waypoints_from} + {engine}",
        routing=RoutingInfo(
            engine=engine,
            waypoints_from=waypoints_from,
            routing_from=engine,
        ),
    )


def validate_trip(routes: list[RouteSegment], trip_type: TripType) -> None:
    """Checks day count and distance bounds for the trip type.

    Bike trips are checked per day; single-day trips are checked on their
    total distance. Bounds are inclusive.
    """
    policy = get_policy(trip_type)
    kind = policy.trip_type.value

    if len(routes) != policy.day_count:
        raise ConstraintViolationError(
            f"A {kind} trip must have {policy.day_count} route(s), got {len(routes)}."
        )

    total = sum(route.distance_km for route in routes)

    if policy.day_count == 1:
        if not policy.final_min_day_km <= total <= policy.final_max_day_km:
            raise ConstraintViolationError(
                f"{kind.capitalize()} distance {total:.0f}km must be between "
                f"{policy.final_min_day_km:.0f}-{policy.final_max_day_km:.0f}km.",
                day=routes[0].day,
                distance_km=total,
            )
        logger.info("%s trip validated: %.0fkm", kind.capitalize(), total)
        return

    for index, route in enumerate(routes, start=1):
        distance = route.distance_km
        if distance > policy.final_max_day_km:
            raise ConstraintViolationError(
                f"Day {index} distance {distance:.0f}km exceeds the "
                f"{policy.final_max_day_km:.0f}km limit.",
                day=index,
                distance_km=distance,
            )
        if distance < policy.final_min_day_km:
            raise ConstraintViolationError(
                f"Day {index} distance {distance:.0f}km is below the "
                f"{policy.final_min_day_km:.0f}km minimum.",
                day=index,
                distance_km=distance,
            )

    if total > HIGH_BIKE_TOTAL_KM:
        logger.warning(
            "Total distance %.0fkm is high, but individual days are within limits",
            total,
        )
    logger.info(
        "%s trip validated: %s, total=%.0fkm",
        kind.capitalize(),
        ", ".join(f"day{r.day}={r.distance_km:.0f}km" for r in routes),
        total,
    )
