"""Tests for adjustment.py."""

import pytest

import adjustment
from models import RouteSegment, RoutingProfile, TripType


def _segment(distance_km, points=100, day=1, duration_min=None, profile=RoutingProfile.CYCLING):
    geometry = [(12.0 + i * 0.001, 41.0 + i * 0.001) for i in range(points)]
    return RouteSegment(
        geometry=geometry,
        distance_km=distance_km,
        duration_min=duration_min if duration_min is not None else distance_km * 3,
        day=day,
        profile=profile,
        original_distance_km=distance_km,
    )


# ---------------------------------------------------------------------------
# Bike
# ---------------------------------------------------------------------------


def test_bike_over_limit_is_truncated_to_60km():
    route = _segment(72, points=200)

    [adjusted] = adjustment.adjust([route], TripType.BIKE)

    assert adjusted.distance_km == 60
    assert adjusted.adjusted
    assert adjusted.original_distance_km == 72
    # ceil(200 * 60 / 72) = 167
    assert len(adjusted.geometry) == 167
    assert adjusted.geometry == route.geometry[:167]
    # 60km at 20km/h.
    assert adjusted.duration_min == 180


def test_truncation_never_leaves_fewer_than_two_points():
    [adjusted] = adjustment.adjust([_segment(600, points=2)], TripType.BIKE)
    assert len(adjusted.geometry) == 2

    truncated = adjustment.truncate(_segment(6000, points=3), 60, 20)
    assert len(truncated.geometry) == 2


def test_bike_under_limit_is_relabelled_without_new_geometry():
    route = _segment(22, points=50)

    [adjusted] = adjustment.adjust([route], TripType.BIKE)

    assert adjusted.distance_km == 35
    assert adjusted.duration_min == 105
    assert adjusted.geometry == route.geometry
    assert adjusted.original_distance_km == 22
    assert adjusted.adjusted


def test_bike_in_range_is_untouched():
    route = _segment(48, duration_min=170)

    [adjusted] = adjustment.adjust([route], TripType.BIKE)

    assert adjusted.distance_km == 48
    assert adjusted.duration_min == 170
    assert not adjusted.adjusted
    assert adjusted.original_distance_km == 48


@pytest.mark.parametrize("distance_km", [35, 60])
def test_bike_bounds_are_inclusive(distance_km):
    [adjusted] = adjustment.adjust([_segment(distance_km)], TripType.BIKE)
    assert not adjusted.adjusted


def test_each_bike_day_is_adjusted_independently():
    day1, day2 = _segment(72, points=200, day=1), _segment(45, day=2)

    adjusted = adjustment.adjust([day1, day2], TripType.BIKE)

    assert [r.distance_km for r in adjusted] == [60, 45]
    assert [r.adjusted for r in adjusted] == [True, False]
    assert [r.day for r in adjusted] == [1, 2]


def test_inputs_are_not_modified():
    route = _segment(72, points=200)
    adjustment.adjust([route], TripType.BIKE)
    assert route.distance_km == 72
    assert len(route.geometry) == 200


# ---------------------------------------------------------------------------
# Walk
# ---------------------------------------------------------------------------


def test_walk_under_limit_is_relabelled_to_5km():
    route = _segment(3, points=60, profile=RoutingProfile.FOOT)

    [adjusted] = adjustment.adjust([route], TripType.WALK)

    assert adjusted.distance_km == 5
    assert adjusted.duration_min == 75
    assert adjusted.geometry == route.geometry
    assert adjusted.adjusted


def test_walk_over_limit_is_relabelled_not_truncated():
    route = _segment(19, points=300, profile=RoutingProfile.FOOT)

    [adjusted] = adjustment.adjust([route], TripType.WALK)

    assert adjusted.distance_km == 15
    assert adjusted.duration_min == 225
    assert len(adjusted.geometry) == 300
    assert adjusted.original_distance_km == 19


def test_walk_in_range_is_untouched():
    [adjusted] = adjustment.adjust([_segment(9, profile=RoutingProfile.FOOT)], TripType.WALK)
    assert adjusted.distance_km == 9
    assert not adjusted.adjusted


def test_trek_alias_uses_walk_policy():
    [adjusted] = adjustment.adjust([_segment(3)], "trek")
    assert adjusted.distance_km == 5
