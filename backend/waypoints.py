"""Waypoint proposal via an AI suggestion service.

The suggestion service only supplies ideas: named points with rough GPS
coordinates, grouped by day. Real road geometry is computed later by the
router. Two providers are supported:

  anthropic: Claude via the Messages API (default).
  openai   : any OpenAI-compatible Chat Completions endpoint, e.g. Groq
              when ``OPENAI_BASE_URL`` points at it.
"""

import json
import logging
import math
from typing import Any

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from errors import InsufficientWaypointsError, SuggestionFormatError
from models import Destination, TripMetadata, TripType, Waypoint, WaypointRole
from policies import get_policy

logger = logging.getLogger(__name__)

# Claude model used for waypoint suggestions.
SUGGESTION_MODEL: str = "claude-sonnet-4-6"
# Default model for the OpenAI-compatible provider (Groq hosts Llama models).
OPENAI_SUGGESTION_MODEL: str = "llama-3.1-8b-instant"
SUGGESTION_MAX_TOKENS: int = 2000
SUGGESTION_TEMPERATURE: float = 0.9
# Fewer valid waypoints than this is fatal for the whole generation.
MIN_VALID_WAYPOINTS: int = 2

PROVIDER_ANTHROPIC = "anthropic"
PROVIDER_OPENAI = "openai"

_SYSTEM_PROMPT = (
    "You are a local travel expert with deep knowledge of real places, "
    "landmarks and geography. Suggest actual waypoints with real GPS "
    "coordinates for travel routes. Focus on interesting, accessible "
    "locations. Always respond with valid JSON only."
)

_BIKE_PROMPT = """\
I need waypoints for a 2-day cycling trip in {city}, {country}.

CRITICAL REQUIREMENTS:
- Day 1: Start in {city} center, end in a different nearby town/city
- Day 2: Start from that town, end in another destination
- MAXIMUM {max_km:.0f}km per day (very important!)
- Each day needs {per_day} interesting waypoints: parks, landmarks, small \
towns, scenic spots
- Use real place names and actual GPS coordinates
- ALL waypoints must be on LAND (no coordinates over water/sea)
- Consider cycling-friendly routes on roads, not water
- Keep routes reasonably short to stay under {max_km:.0f}km per day

Provide ONLY this JSON:
{{
  "waypoints": [
    {{"day": 1, "name": "{city} Central Square", "coordinates": [lon, lat], "type": "start"}},
    {{"day": 1, "name": "Real Park Name", "coordinates": [lon, lat], "type": "interest"}},
    {{"day": 1, "name": "Real Village/Town", "coordinates": [lon, lat], "type": "interest"}},
    {{"day": 1, "name": "Nearby Town Name", "coordinates": [lon, lat], "type": "overnight"}},
    {{"day": 2, "name": "Nearby Town Center", "coordinates": [lon, lat], "type": "start"}},
    {{"day": 2, "name": "Historic Site Name", "coordinates": [lon, lat], "type": "interest"}},
    {{"day": 2, "name": "Scenic Viewpoint", "coordinates": [lon, lat], "type": "interest"}},
    {{"day": 2, "name": "Final Destination Town", "coordinates": [lon, lat], "type": "end"}}
  ],
  "metadata": {{
    "title": "Cycling Adventure in {country}",
    "description": "Two-day cycling journey through the {city} region",
    "region": "{country}",
    "startCity": "{city}",
    "difficulty": "moderate"
  }}
}}

CRITICAL: All coordinates must be on land, not water. Maximum {max_km:.0f}km \
cycling distance per day.
"""

_WALK_PROMPT = """\
I need waypoints for a circular walking trail in {city}, {country}.

Requirements:
- Single day circular walk: {min_km:.0f}-{max_km:.0f}km total
- Must start and end at the same location
- {per_day} interesting waypoints: landmarks, parks, viewpoints, historic \
sites, markets
- Use real place names and actual GPS coordinates
- Walking-friendly locations within the city/town

Provide ONLY this JSON:
{{
  "waypoints": [
    {{"day": 1, "name": "{city} Main Square", "coordinates": [lon, lat], "type": "start"}},
    {{"day": 1, "name": "Historic Cathedral/Church", "coordinates": [lon, lat], "type": "interest"}},
    {{"day": 1, "name": "City Park/Garden", "coordinates": [lon, lat], "type": "interest"}},
    {{"day": 1, "name": "Museum/Cultural Site", "coordinates": [lon, lat], "type": "interest"}},
    {{"day": 1, "name": "Scenic Overlook/Bridge", "coordinates": [lon, lat], "type": "interest"}},
    {{"day": 1, "name": "Local Market/Old Town", "coordinates": [lon, lat], "type": "interest"}},
    {{"day": 1, "name": "{city} Main Square", "coordinates": [lon, lat], "type": "end"}}
  ],
  "metadata": {{
    "title": "Walking Tour of {city}",
    "description": "Discover {city} highlights on foot",
    "region": "{country}",
    "startCity": "{city}",
    "difficulty": "easy"
  }}
}}
"""


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


async def propose_waypoints(
    destination: Destination,
    trip_type: TripType,
    *,
    client: AsyncAnthropic | AsyncOpenAI,
    provider: str = PROVIDER_ANTHROPIC,
    model: str | None = None,
) -> tuple[list[Waypoint], TripMetadata]:
    """Asks the suggestion service for day-tagged waypoints.

    No retry happens here: a bad response fails the whole generation.

    Args:
        destination: Where the trip takes place. ``city`` should already be
            defaulted to the country.
        trip_type: Bike or walk; selects the prompt shape.
        client: Pre-constructed Anthropic or OpenAI-compatible client.
        provider: ``"anthropic"`` or ``"openai"``; selects the API used
            on ``client``.
        model: Overrides the provider's default model.

    Returns:
        Tuple of (valid waypoints in suggestion order, metadata).

    Raises:
        InsufficientWaypointsError: If fewer than two valid waypoints remain.
        SuggestionFormatError: If the response holds no waypoint JSON.
    """
    prompt = build_prompt(destination, trip_type)
    logger.info(
        "Requesting %s waypoints for %s, %s from %s",
        trip_type.value, destination.city, destination.country, provider,
    )
    raw = await _complete(client, provider, prompt, model=model)
    logger.info("Suggestion response: %s", raw[:300])
    return parse_suggestion(raw)


def build_prompt(destination: Destination, trip_type: TripType) -> str:
    """Returns the profile-specific waypoint prompt for ``destination``."""
    policy = get_policy(trip_type)
    template = _BIKE_PROMPT if policy.trip_type is TripType.BIKE else _WALK_PROMPT
    return template.format(
        city=destination.city or destination.country,
        country=destination.country,
        min_km=policy.min_day_km,
        max_km=policy.max_day_km,
        per_day=policy.waypoints_per_day,
    )


async def _complete(
    client: AsyncAnthropic | AsyncOpenAI,
    provider: str,
    prompt: str,
    *,
    model: str | None = None,
) -> str:
    """Sends ``prompt`` to the suggestion service and returns the raw text."""
    if provider == PROVIDER_ANTHROPIC:
        response = await client.messages.create(
            model=model or SUGGESTION_MODEL,
            max_tokens=SUGGESTION_MAX_TOKENS,
            temperature=SUGGESTION_TEMPERATURE,
            system=_SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )
        return response.content[0].text.strip()
    if provider == PROVIDER_OPENAI:
        response = await client.chat.completions.create(
            model=model or OPENAI_SUGGESTION_MODEL,
            max_tokens=SUGGESTION_MAX_TOKENS,
            temperature=SUGGESTION_TEMPERATURE,
            messages=[
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        )
        return (response.choices[0].message.content or "").strip()
    raise ValueError(f"Unknown suggestion provider: {provider!r}")


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def _extract_json_object(text: str) -> dict[str, Any] | None:
    """Extracts the JSON object from text that may carry extra commentary.

    Models sometimes wrap the JSON in prose or markdown fences; the object is
    taken to span from the first ``{`` to the last ``}``.
    """
    text = text.strip()
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        text = text[start:end + 1]
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def _is_coordinate(value: Any) -> bool:
    """True for a 2-element list of finite, non-boolean numbers."""
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        return False
    return all(
        isinstance(v, (int, float))
        and not isinstance(v, bool)
        and math.isfinite(v)
        for v in value
    )


def _to_waypoint(entry: Any) -> Waypoint | None:
    if not isinstance(entry, dict):
        return None
    name = entry.get("name")
    if not isinstance(name, str) or not name.strip():
        return None
    coordinates = entry.get("coordinates")
    if not _is_coordinate(coordinates):
        return None

    day = entry.get("day", 1)
    if not isinstance(day, int) or isinstance(day, bool) or day < 1:
        day = 1
    try:
        role = WaypointRole(entry.get("type") or entry.get("role"))
    except ValueError:
        role = WaypointRole.INTEREST

    return Waypoint(
        day=day,
        name=name.strip(),
        coordinates=(float(coordinates[0]), float(coordinates[1])),
        role=role,
    )


def parse_suggestion(raw: str) -> tuple[list[Waypoint], TripMetadata]:
    """Parses a suggestion-service reply into waypoints and metadata.

    Waypoints without a usable name or a numeric [lon, lat] pair are dropped.
    """
    payload = _extract_json_object(raw)
    if payload is None or not isinstance(payload.get("waypoints"), list):
        raise SuggestionFormatError(
            "Suggestion service did not return a waypoints JSON object."
        )

    entries = payload["waypoints"]
    waypoints = [wp for wp in map(_to_waypoint, entries) if wp is not None]
    dropped = len(entries) - len(waypoints)
    if dropped:
        logger.warning("Discarded %d invalid waypoints", dropped)

    if len(waypoints) < MIN_VALID_WAYPOINTS:
        raise InsufficientWaypointsError(
            f"Only {len(waypoints)} valid waypoints were suggested; "
            f"at least {MIN_VALID_WAYPOINTS} are required."
        )

    meta = payload.get("metadata")
    meta = meta if isinstance(meta, dict) else {}
    metadata = TripMetadata(
        title=_str_or_none(meta.get("title")),
        description=_str_or_none(meta.get("description")),
        region=_str_or_none(meta.get("region")),
        start_city=_str_or_none(meta.get("startCity") or meta.get("start_city")),
        difficulty=_str_or_none(meta.get("difficulty")),
    )
    logger.info("Parsed %d valid waypoints", len(waypoints))
    return waypoints, metadata


def _str_or_none(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None
