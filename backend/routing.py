"""Real-road routing for day segments.

Turns an ordered list of (lon, lat) points into a road-following path with
distance and duration. Two engines are available:

  OsrmRouter       : the public OSRM HTTP API (or a self-hosted instance).
  GoogleMapsRouter : Google Directions via the googlemaps client.

``route_day`` wraps one routing call with the plausibility check and a
single repair retry on the first half of the points.
"""

import asyncio
import logging
import math
import os
from collections.abc import Sequence
from typing import Any, Protocol

import googlemaps
import httpx
from pydantic import BaseModel

from errors import RoutingUnavailableError
from models import Coordinate, RouteSegment, RoutingProfile
from plausibility import PlausibilityCheck, is_plausible

logger = logging.getLogger(__name__)

DEFAULT_OSRM_URL: str = "https://router.project-osrm.org"
# Per-request budgets. The repair retry gets a shorter one so that a slow
# first call still leaves room for it inside the overall generation timeout.
PRIMARY_TIMEOUT_S: float = 12.0
REPAIR_TIMEOUT_S: float = 8.0
# Cycling routes longer than this are logged before adjustment.
LONG_CYCLING_ROUTE_KM: int = 80
# OSRM error codes that mean "no route" rather than a service failure.
OSRM_NO_ROUTE_CODES: frozenset = frozenset({"NoRoute", "NoSegment"})


class RawRoute(BaseModel):
    """A routing-service answer before unit conversion."""

    geometry: list[Coordinate]
    distance_m: float
    duration_s: float


class Router(Protocol):
    """A routing backend. Returns None when the service finds no route."""

    engine: str

    async def fetch(
        self,
        coordinates: Sequence[Coordinate],
        profile: RoutingProfile,
        *,
        timeout: float,
    ) -> RawRoute | None: ...


# ---------------------------------------------------------------------------
# OSRM
# ---------------------------------------------------------------------------


class OsrmRouter:
    """Routes through an OSRM server's ``/route/v1`` endpoint."""

    engine = "OSRM"

    def __init__(
        self,
        base_url: str | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = (
            base_url or os.environ.get("OSRM_BASE_URL", DEFAULT_OSRM_URL)
        ).rstrip("/")
        self._client = http_client

    async def fetch(
        self,
        coordinates: Sequence[Coordinate],
        profile: RoutingProfile,
        *,
        timeout: float,
    ) -> RawRoute | None:
        coord_str = ";".join(f"{lon},{lat}" for lon, lat in coordinates)
        url = f"{self.base_url}/route/v1/{profile.value}/{coord_str}"
        params = {"overview": "full", "geometries": "geojson"}
        logger.info(
            "Calling OSRM for %s route with %d points",
            profile.value, len(coordinates),
        )

        try:
            if self._client is not None:
                response = await self._client.get(url, params=params, timeout=timeout)
            else:
                async with httpx.AsyncClient(timeout=timeout) as client:
                    response = await client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise RoutingUnavailableError(f"OSRM request failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        routes = data.get("routes") or []
        if not routes:
            if response.is_error and data.get("code") not in OSRM_NO_ROUTE_CODES:
                raise RoutingUnavailableError(
                    f"OSRM returned HTTP {response.status_code}: "
                    f"{data.get('message', response.reason_phrase)}"
                )
            return None

        route = routes[0]
        geometry = [
            (float(lon), float(lat))
            for lon, lat in route.get("geometry", {}).get("coordinates", [])
        ]
        return RawRoute(
            geometry=geometry,
            distance_m=float(route.get("distance", 0)),
            duration_s=float(route.get("duration", 0)),
        )


# ---------------------------------------------------------------------------
# Google Directions
# ---------------------------------------------------------------------------


class GoogleMapsRouter:
    """Routes through the Google Directions API."""

    engine = "Google Maps"

    _MODES = {
        RoutingProfile.CYCLING: "bicycling",
        RoutingProfile.FOOT: "walking",
    }

    def __init__(self, maps_client: googlemaps.Client | None = None) -> None:
        self._maps = maps_client or googlemaps.Client(
            key=os.environ.get("GOOGLE_MAPS_API_KEY", "")
        )

    async def fetch(
        self,
        coordinates: Sequence[Coordinate],
        profile: RoutingProfile,
        *,
        timeout: float,
    ) -> RawRoute | None:
        # googlemaps expects (lat, lng); our coordinates are (lon, lat).
        points = [(lat, lon) for lon, lat in coordinates]
        logger.info(
            "Calling Directions API for %s route with %d points",
            profile.value, len(points),
        )
        try:
            # The googlemaps client is synchronous.
            result = await asyncio.to_thread(
                self._maps.directions,
                origin=points[0],
                destination=points[-1],
                waypoints=points[1:-1],
                mode=self._MODES[profile],
                optimize_waypoints=False,
            )
        except (
            googlemaps.exceptions.ApiError,
            googlemaps.exceptions.TransportError,
            googlemaps.exceptions.Timeout,
        ) as exc:
            raise RoutingUnavailableError(
                f"Directions API request failed: {exc}"
            ) from exc

        if not result:
            return None

        route = result[0]
        legs = route.get("legs", [])
        return RawRoute(
            geometry=[(lng, lat) for lat, lng in _route_points(route)],
            distance_m=sum(leg["distance"]["value"] for leg in legs),
            duration_s=sum(leg["duration"]["value"] for leg in legs),
        )


def _route_points(directions_route: dict[str, Any]) -> list[tuple[float, float]]:
    """Returns the (lat, lng) path of a Directions route.

    Step polylines follow the road; the overview polyline is simplified and
    is only used when no step polylines are present.
    """
    all_points: list[tuple[float, float]] = []
    for leg in directions_route.get("legs", []):
        for step in leg.get("steps", []):
            step_points = _decode_polyline(step.get("polyline", {}).get("points", ""))
            if not step_points:
                continue
            # Step boundaries share endpoints.
            if all_points and step_points[0] == all_points[-1]:
                step_points = step_points[1:]
            all_points.extend(step_points)

    if all_points:
        return all_points
    return _decode_polyline(
        directions_route.get("overview_polyline", {}).get("points", "")
    )


def _decode_polyline(encoded: str) -> list[tuple[float, float]]:
    """Decodes a Google-encoded polyline string to a list of (lat, lng) points.

    See: https://developers.google.com/maps/documentation/utilities/polylinealgorithm
    """
    result: list[tuple[float, float]] = []
    index = 0
    lat = 0
    lng = 0

    while index < len(encoded):
        deltas = []
        for _ in range(2):
            shift = 0
            value = 0
            while True:
                b = ord(encoded[index]) - 63
                index += 1
                value |= (b & 0x1F) << shift
                shift += 5
                if b < 0x20:
                    break
            deltas.append(~(value >> 1) if (value & 1) else (value >> 1))
        lat += deltas[0]
        lng += deltas[1]
        result.append((lat / 1e5, lng / 1e5))

    return result


# ---------------------------------------------------------------------------
# Routing, plausibility and repair
# ---------------------------------------------------------------------------


async def compute_route(
    coordinates: Sequence[Coordinate],
    profile: RoutingProfile,
    *,
    router: Router,
    timeout: float = PRIMARY_TIMEOUT_S,
) -> RouteSegment:
    """Routes ``coordinates`` in order and returns an unlabelled segment.

    Distance is rounded to whole kilometres and duration to whole minutes.

    Raises:
        RoutingUnavailableError: If the service returns no route, fails, or
            does not answer within ``timeout`` seconds.
    """
    if len(coordinates) < 2:
        raise RoutingUnavailableError("At least two coordinates are required.")

    try:
        raw = await asyncio.wait_for(
            router.fetch(coordinates, profile, timeout=timeout), timeout
        )
    except asyncio.TimeoutError as exc:
        raise RoutingUnavailableError(
            f"{router.engine} did not answer within {timeout:.0f}s."
        ) from exc

    if raw is None or len(raw.geometry) < 2:
        raise RoutingUnavailableError(f"{router.engine} returned no route.")

    distance_km = round(raw.distance_m / 1000)
    duration_min = round(raw.duration_s / 60)
    if profile is RoutingProfile.CYCLING and distance_km > LONG_CYCLING_ROUTE_KM:
        logger.warning(
            "%s route is long: %dkm, will be adjusted", router.engine, distance_km
        )
    logger.info(
        "%s route created: %dkm, %dmin", router.engine, distance_km, duration_min
    )

    return RouteSegment(
        geometry=raw.geometry,
        distance_km=distance_km,
        duration_min=duration_min,
        engine=router.engine,
        profile=profile,
        original_distance_km=distance_km,
    )


async def repair(
    original_coordinates: Sequence[Coordinate],
    profile: RoutingProfile,
    *,
    router: Router,
) -> RouteSegment | None:
    """Retries routing with only the first half (rounded up) of the points.

    Returns None if the retry also fails; there is no second retry.
    """
    shorter = list(original_coordinates[:math.ceil(len(original_coordinates) / 2)])
    if len(shorter) < 2:
        logger.warning("Too few points (%d) left to repair the route", len(shorter))
        return None

    logger.info("Retrying with %d of %d points", len(shorter), len(original_coordinates))
    try:
        segment = await compute_route(
            shorter, profile, router=router, timeout=REPAIR_TIMEOUT_S
        )
    except RoutingUnavailableError as exc:
        logger.warning("Shorter route also failed: %s", exc)
        return None
    return segment.model_copy(update={"shortened": True})


async def route_day(
    coordinates: Sequence[Coordinate],
    profile: RoutingProfile,
    *,
    router: Router,
    day: int,
    check: PlausibilityCheck = is_plausible,
) -> RouteSegment:
    """Routes one day segment, repairing it at most once.

    A repair is attempted when the first route looks implausible or when the
    first routing call fails outright.

    Raises:
        RoutingUnavailableError: If neither attempt produced a route.
    """
    try:
        segment = await compute_route(coordinates, profile, router=router)
    except RoutingUnavailableError as exc:
        logger.warning("Day %d routing failed (%s); trying a shorter route", day, exc)
    else:
        if check(segment.geometry, segment.distance_km):
            return segment
        logger.warning("Day %d route appears to cross water; trying a shorter route", day)

    repaired = await repair(coordinates, profile, router=router)
    if repaired is None:
        raise RoutingUnavailableError(
            f"No usable {profile.value} route could be found for day {day}.",
            day=day,
        )
    return repaired
