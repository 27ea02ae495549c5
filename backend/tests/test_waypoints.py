"""Tests for waypoints.py.

The suggestion services are replaced with mocks so tests run offline.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

import waypoints
from errors import InsufficientWaypointsError, SuggestionFormatError
from models import Destination, TripType, WaypointRole

_ROME = Destination(country="Italy", city="Rome")

_BIKE_PAYLOAD = {
    "waypoints": [
        {"day": 1, "name": "Piazza Venezia", "coordinates": [12.4823, 41.8955], "type": "start"},
        {"day": 1, "name": "Appia Antica Park", "coordinates": [12.5244, 41.8585], "type": "interest"},
        {"day": 1, "name": "Frascati", "coordinates": [12.6810, 41.8086], "type": "overnight"},
        {"day": 2, "name": "Frascati Centre", "coordinates": [12.6810, 41.8086], "type": "start"},
        {"day": 2, "name": "Lake Albano", "coordinates": [12.6647, 41.7497], "type": "interest"},
        {"day": 2, "name": "Velletri", "coordinates": [12.7770, 41.6867], "type": "end"},
    ],
    "metadata": {
        "title": "Cycling the Castelli Romani",
        "description": "Two days south of Rome",
        "region": "Italy",
        "startCity": "Rome",
        "difficulty": "moderate",
    },
}


def _claude_client(text: str) -> MagicMock:
    """Mock AsyncAnthropic whose messages.create returns ``text``."""
    response = SimpleNamespace(content=[SimpleNamespace(text=text)])
    client = MagicMock()
    client.messages = MagicMock()
    client.messages.create = AsyncMock(return_value=response)
    return client


def _openai_client(text: str) -> MagicMock:
    """Mock AsyncOpenAI whose chat.completions.create returns ``text``."""
    message = SimpleNamespace(content=text)
    response = SimpleNamespace(choices=[SimpleNamespace(message=message)])
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response)
    return client


# ---------------------------------------------------------------------------
# build_prompt()
# ---------------------------------------------------------------------------


def test_bike_prompt_requests_two_days_capped_at_60km():
    prompt = waypoints.build_prompt(_ROME, TripType.BIKE)
    assert "2-day cycling trip in Rome, Italy" in prompt
    assert "MAXIMUM 60km per day" in prompt
    assert "4-6 interesting waypoints" in prompt
    assert '"day": 2' in prompt


def test_walk_prompt_requests_circular_route():
    prompt = waypoints.build_prompt(
        Destination(country="Greece", city="Athens"), TripType.WALK
    )
    assert "circular walking trail in Athens, Greece" in prompt
    assert "5-15km total" in prompt
    assert "5-7 interesting waypoints" in prompt
    assert '"day": 2' not in prompt


# ---------------------------------------------------------------------------
# parse_suggestion()
# ---------------------------------------------------------------------------


def test_parse_tolerates_text_around_json():
    raw = "Sure! Here is your route:\n" + json.dumps(_BIKE_PAYLOAD) + "\nEnjoy."
    wps, metadata = waypoints.parse_suggestion(raw)
    assert len(wps) == 6
    assert wps[0].name == "Piazza Venezia"
    assert wps[0].coordinates == (12.4823, 41.8955)
    assert wps[2].role is WaypointRole.OVERNIGHT
    assert [wp.day for wp in wps] == [1, 1, 1, 2, 2, 2]
    assert metadata.title == "Cycling the Castelli Romani"
    assert metadata.start_city == "Rome"


def test_parse_discards_invalid_waypoints():
    payload = {
        "waypoints": [
            {"day": 1, "name": "Good A", "coordinates": [12.5, 41.9]},
            {"day": 1, "name": "", "coordinates": [12.5, 41.9]},
            {"day": 1, "name": "No coords"},
            {"day": 1, "name": "Three coords", "coordinates": [1, 2, 3]},
            {"day": 1, "name": "String coords", "coordinates": ["12.5", "41.9"]},
            {"day": 1, "name": "Bool coords", "coordinates": [True, False]},
            {"day": 1, "name": "Good B", "coordinates": [12, 42]},
        ]
    }
    wps, _ = waypoints.parse_suggestion(json.dumps(payload))
    assert [wp.name for wp in wps] == ["Good A", "Good B"]
    assert wps[1].coordinates == (12.0, 42.0)


def test_parse_defaults_unknown_role_to_interest():
    payload = {
        "waypoints": [
            {"day": 1, "name": "A", "coordinates": [12.5, 41.9], "type": "lunch"},
            {"day": 1, "name": "B", "coordinates": [12.6, 41.8]},
        ]
    }
    wps, metadata = waypoints.parse_suggestion(json.dumps(payload))
    assert all(wp.role is WaypointRole.INTEREST for wp in wps)
    assert metadata.title is None


def test_parse_raises_when_fewer_than_two_valid():
    payload = {
        "waypoints": [
            {"day": 1, "name": "Only one", "coordinates": [12.5, 41.9]},
            {"day": 1, "name": "", "coordinates": [12.6, 41.8]},
        ]
    }
    with pytest.raises(InsufficientWaypointsError, match="Only 1 valid"):
        waypoints.parse_suggestion(json.dumps(payload))


def test_parse_raises_format_error_on_non_json():
    with pytest.raises(SuggestionFormatError):
        waypoints.parse_suggestion("I cannot help with that request.")


def test_parse_raises_format_error_without_waypoints_array():
    with pytest.raises(SuggestionFormatError):
        waypoints.parse_suggestion('{"metadata": {"title": "x"}}')


def test_format_error_is_an_insufficient_waypoints_error():
    with pytest.raises(InsufficientWaypointsError):
        waypoints.parse_suggestion("")


# ---------------------------------------------------------------------------
# propose_waypoints()
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_propose_with_anthropic_provider():
    client = _claude_client(json.dumps(_BIKE_PAYLOAD))

    wps, metadata = await waypoints.propose_waypoints(
        _ROME, TripType.BIKE, client=client
    )

    assert len(wps) == 6
    assert metadata.difficulty == "moderate"
    kwargs = client.messages.create.call_args.kwargs
    assert kwargs["model"] == waypoints.SUGGESTION_MODEL
    assert "Rome, Italy" in kwargs["messages"][0]["content"]


@pytest.mark.asyncio
async def test_propose_with_openai_provider():
    client = _openai_client("```json\n" + json.dumps(_BIKE_PAYLOAD) + "\n```")

    wps, _ = await waypoints.propose_waypoints(
        _ROME, TripType.BIKE, client=client, provider="openai", model="llama3-70b"
    )

    assert len(wps) == 6
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "llama3-70b"
    assert kwargs["messages"][0]["role"] == "system"


@pytest.mark.asyncio
async def test_propose_rejects_unknown_provider():
    with pytest.raises(ValueError, match="Unknown suggestion provider"):
        await waypoints.propose_waypoints(
            _ROME, TripType.WALK, client=MagicMock(), provider="carrier-pigeon"
        )
