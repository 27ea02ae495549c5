"""Trip generation pipeline.

Five-step async pipeline:
  1.  Reserve the request with the generation guard (refuse duplicates).
  2.  The suggestion service proposes named, day-tagged waypoints.
  3.  Each day's waypoints are routed on real roads (days run concurrently);
      implausible or failed routes get one repair retry.
  4.  Day distances are adjusted to the trip policy's limits.
  5.  The trip is assembled and validated.

The whole call is bounded by an overall timeout. Any failure releases the
guard reservation so the caller can retry at once; no partial trip is ever
returned.
"""

import asyncio
import logging
import math
import os
from typing import Any

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from adjustment import adjust
from assembly import assemble
from errors import (
    DuplicateRequestError,
    GenerationTimeoutError,
    InsufficientWaypointsError,
)
from generation_guard import GenerationGuard, make_key
from models import Destination, RouteSegment, Trip, TripType, Waypoint, WaypointRole
from plausibility import PlausibilityCheck, is_plausible
from policies import TripPolicy, get_policy
from routing import GoogleMapsRouter, OsrmRouter, Router, route_day
from waypoints import (
    OPENAI_SUGGESTION_MODEL,
    PROVIDER_ANTHROPIC,
    PROVIDER_OPENAI,
    SUGGESTION_MODEL,
    propose_waypoints,
)

logger = logging.getLogger(__name__)

# Overall budget for one generation call.
GENERATION_TIMEOUT_S: float = 30.0

ENGINE_OSRM = "osrm"
ENGINE_GOOGLE = "google"

_PROVIDER_LABELS: dict[str, str] = {
    PROVIDER_ANTHROPIC: "Anthropic Claude",
    PROVIDER_OPENAI: "OpenAI-compatible LLM",
}

# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


async def generate(
    destination: Destination,
    trip_type: TripType | str,
    *,
    requester_id: str,
    guard: GenerationGuard,
    suggestion_client: AsyncAnthropic | AsyncOpenAI | None = None,
    provider: str | None = None,
    router: Router | None = None,
    timeout: float | None = None,
    check: PlausibilityCheck = is_plausible,
) -> Trip:
    """Generates a validated trip for ``destination``.

    Args:
        destination: Country and optional city; city defaults to the country.
        trip_type: ``bike``, ``walk`` or the alias ``trek``.
        requester_id: Identity of the caller, used for deduplication only.
        guard: Deduplication guard shared across requests.
        suggestion_client: Optional pre-constructed suggestion client. Built
            from ``SUGGESTION_PROVIDER`` and the matching API key if omitted.
        provider: ``anthropic`` or ``openai``; read from
            ``SUGGESTION_PROVIDER`` if omitted.
        router: Optional routing backend. Built from ``ROUTING_ENGINE`` if
            omitted.
        timeout: Overall budget in seconds; ``GENERATION_TIMEOUT_S`` env var
            or 30s if omitted.
        check: Plausibility heuristic applied to each routed day.

    Returns:
        The assembled ``Trip``.

    Raises:
        DuplicateRequestError: If the same request was made within the
            guard's window.
        InsufficientWaypointsError: If too few usable waypoints were proposed.
        RoutingUnavailableError: If a day could not be routed, even after
            repair.
        ConstraintViolationError: If the final trip breaks its policy.
        GenerationTimeoutError: If the overall budget was exceeded.
    """
    trip_type = TripType(trip_type)
    destination = destination.with_defaults()
    key = make_key(requester_id, destination, trip_type)

    if not guard.check_and_reserve(key):
        retry_after = math.ceil(guard.remaining(key))
        raise DuplicateRequestError(
            "An identical trip request was made moments ago. "
            f"Please wait {retry_after}s before generating another.",
            retry_after=retry_after,
        )

    budget = timeout if timeout is not None else float(
        os.environ.get("GENERATION_TIMEOUT_S", GENERATION_TIMEOUT_S)
    )
    logger.info(
        "Trip generation started: %s trip in %s, %s for %s",
        trip_type.value, destination.city, destination.country, requester_id,
    )

    succeeded = False
    try:
        provider = provider or os.environ.get("SUGGESTION_PROVIDER", PROVIDER_ANTHROPIC)
        _client = suggestion_client or _default_suggestion_client(provider)
        _router = router or default_router()
        trip = await asyncio.wait_for(
            _run_pipeline(destination, trip_type, _client, provider, _router, check),
            budget,
        )
        succeeded = True
    except asyncio.TimeoutError as exc:
        # In-flight requests are abandoned; their results are never used.
        raise GenerationTimeoutError(
            f"Trip generation took longer than {budget:.0f}s."
        ) from exc
    finally:
        if not succeeded:
            guard.release(key)

    logger.info(
        "Trip generation complete: %d routes, %.0fkm",
        len(trip.routes), trip.total_distance_km,
    )
    return trip


async def _run_pipeline(
    destination: Destination,
    trip_type: TripType,
    suggestion_client: AsyncAnthropic | AsyncOpenAI,
    provider: str,
    router: Router,
    check: PlausibilityCheck,
) -> Trip:
    policy = get_policy(trip_type)

    # Step 2: waypoint ideas from the suggestion service.
    waypoints, metadata = await propose_waypoints(
        destination,
        trip_type,
        client=suggestion_client,
        provider=provider,
        model=os.environ.get("SUGGESTION_MODEL") or None,
    )
    logger.info("Suggestion service provided %d waypoints", len(waypoints))

    # Step 3: real roads, one request per day. The first failing day cancels
    # the others.
    groups = group_waypoints(waypoints, policy)
    try:
        async with asyncio.TaskGroup() as task_group:
            tasks = [
                task_group.create_task(_route_group(day, group, policy, router, check))
                for day, group in enumerate(groups, start=1)
            ]
    except ExceptionGroup as group_error:
        raise group_error.exceptions[0] from None
    routes = [task.result() for task in tasks]

    # Step 4: distance limits. Needs every day, since checks span days.
    adjusted = adjust(routes, trip_type)

    # Step 5: assemble and validate.
    return assemble(
        adjusted,
        destination,
        trip_type,
        metadata,
        waypoints_from=_PROVIDER_LABELS.get(provider, provider),
    )


# ---------------------------------------------------------------------------
# Day segmentation
# ---------------------------------------------------------------------------


def group_waypoints(waypoints: list[Waypoint], policy: TripPolicy) -> list[list[Waypoint]]:
    """Splits waypoints into one ordered group per day.

    Single-day circular trips use every waypoint and are closed back to the
    start. Multi-day trips group by the waypoints' ``day`` tag.

    Raises:
        InsufficientWaypointsError: If a day has fewer points than the policy
            requires.
    """
    if policy.day_count == 1:
        groups = [list(waypoints)]
    else:
        groups = [
            [wp for wp in waypoints if wp.day == day]
            for day in range(1, policy.day_count + 1)
        ]

    for day, group in enumerate(groups, start=1):
        if len(group) < policy.min_points_per_day:
            raise InsufficientWaypointsError(
                f"Day {day} has {len(group)} waypoint(s); "
                f"at least {policy.min_points_per_day} are required.",
                day=day,
            )

    if policy.circular:
        groups = [close_loop(group) for group in groups]
    return groups


def close_loop(waypoints: list[Waypoint]) -> list[Waypoint]:
    """Returns ``waypoints`` ending where they start.

    An already-closed list is returned as is; otherwise a copy of the first
    waypoint is appended as the end point.
    """
    first, last = waypoints[0], waypoints[-1]
    if first.coordinates == last.coordinates:
        return waypoints
    logger.info("Making route circular by adding a return to the start")
    return [
        *waypoints,
        first.model_copy(
            update={"name": f"Return to {first.name}", "role": WaypointRole.END}
        ),
    ]


async def _route_group(
    day: int,
    group: list[Waypoint],
    policy: TripPolicy,
    router: Router,
    check: PlausibilityCheck,
) -> RouteSegment:
    logger.info("Creating day %d route with %d waypoints", day, len(group))
    segment = await route_day(
        [wp.coordinates for wp in group],
        policy.profile,
        router=router,
        day=day,
        check=check,
    )
    if policy.circular:
        description = f"Circular walk: {group[0].name}"
    else:
        description = f"Day {day}: {group[0].name} → {group[-1].name}"
    return segment.model_copy(
        update={
            "day": day,
            "description": description,
            "waypoint_names": [wp.name for wp in group],
            "circular": policy.circular,
        }
    )


# ---------------------------------------------------------------------------
# Collaborator construction and status
# ---------------------------------------------------------------------------


def default_router() -> Router:
    """Builds the router named by ``ROUTING_ENGINE`` (osrm or google)."""
    engine = os.environ.get("ROUTING_ENGINE", ENGINE_OSRM).strip().lower()
    if engine == ENGINE_OSRM:
        return OsrmRouter()
    if engine == ENGINE_GOOGLE:
        return GoogleMapsRouter()
    raise ValueError(f"Unknown ROUTING_ENGINE: {engine!r}")


def _default_suggestion_client(provider: str) -> AsyncAnthropic | AsyncOpenAI:
    if provider == PROVIDER_ANTHROPIC:
        return AsyncAnthropic(api_key=os.environ.get("ANTHROPIC_API_KEY", ""))
    if provider == PROVIDER_OPENAI:
        return AsyncOpenAI(
            api_key=os.environ.get("OPENAI_API_KEY", ""),
            base_url=os.environ.get("OPENAI_BASE_URL") or None,
        )
    raise ValueError(f"Unknown SUGGESTION_PROVIDER: {provider!r}")


def service_status() -> dict[str, Any]:
    """Reports which collaborators the pipeline is configured to use."""
    provider = os.environ.get("SUGGESTION_PROVIDER", PROVIDER_ANTHROPIC)
    key_var = "OPENAI_API_KEY" if provider == PROVIDER_OPENAI else "ANTHROPIC_API_KEY"
    default_model = (
        OPENAI_SUGGESTION_MODEL if provider == PROVIDER_OPENAI else SUGGESTION_MODEL
    )
    engine = os.environ.get("ROUTING_ENGINE", ENGINE_OSRM).strip().lower()
    return {
        "suggestion_provider": provider,
        "suggestion_model": os.environ.get("SUGGESTION_MODEL") or default_model,
        "suggestion_configured": bool(os.environ.get(key_var)),
        "routing_engine": engine,
        "routing_configured": (
            bool(os.environ.get("GOOGLE_MAPS_API_KEY"))
            if engine == ENGINE_GOOGLE
            else True
        ),
        "timeout_s": float(os.environ.get("GENERATION_TIMEOUT_S", GENERATION_TIMEOUT_S)),
    }
