"""Tests for generation_guard.py."""

import asyncio

import pytest

from generation_guard import GenerationGuard, InMemoryReservationStore, make_key
from models import Destination, TripType


class _Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


_KEY = make_key("user-1", Destination(country="Italy", city="Rome"), TripType.BIKE)


def test_key_is_normalized():
    a = make_key("u", Destination(country=" Italy ", city="ROME"), TripType.BIKE)
    b = make_key("u", Destination(country="italy", city="rome"), "bike")
    assert a == b


def test_key_distinguishes_trip_type_and_requester():
    rome = Destination(country="Italy", city="Rome")
    assert make_key("u", rome, "bike") != make_key("u", rome, "walk")
    assert make_key("u", rome, "bike") != make_key("v", rome, "bike")
    # "trek" is the same request as "walk".
    assert make_key("u", rome, "trek") == make_key("u", rome, "walk")


def test_second_request_within_window_is_refused():
    clock = _Clock()
    guard = GenerationGuard(clock=clock)

    assert guard.check_and_reserve(_KEY)
    clock.now += 5
    assert not guard.check_and_reserve(_KEY)
    assert guard.remaining(_KEY) == pytest.approx(10)


def test_request_after_window_is_accepted():
    clock = _Clock()
    guard = GenerationGuard(clock=clock)

    guard.check_and_reserve(_KEY)
    clock.now += 15
    assert guard.check_and_reserve(_KEY)


def test_release_allows_immediate_retry():
    guard = GenerationGuard(clock=_Clock())

    guard.check_and_reserve(_KEY)
    guard.release(_KEY)

    assert guard.remaining(_KEY) == 0
    assert guard.check_and_reserve(_KEY)


def test_release_of_unknown_key_is_harmless():
    GenerationGuard().release("never-reserved")


def test_sweep_removes_only_stale_reservations():
    clock = _Clock()
    store = InMemoryReservationStore()
    guard = GenerationGuard(store, clock=clock)

    guard.check_and_reserve("old")
    clock.now += 20
    guard.check_and_reserve("recent")
    clock.now += 11  # "old" is now 31s old, "recent" 11s.

    assert guard.sweep() == 1
    assert store.get("old") is None
    assert store.get("recent") is not None
    assert len(store) == 1


def test_custom_store_is_used():
    class _RecordingStore(InMemoryReservationStore):
        def __init__(self):
            super().__init__()
            self.writes = []

        def set(self, key, timestamp):
            self.writes.append(key)
            super().set(key, timestamp)

    store = _RecordingStore()
    GenerationGuard(store).check_and_reserve(_KEY)
    assert store.writes == [_KEY]


@pytest.mark.asyncio
async def test_run_sweeper_sweeps_until_cancelled():
    clock = _Clock()
    guard = GenerationGuard(clock=clock)
    guard.check_and_reserve(_KEY)
    clock.now += 60

    task = asyncio.create_task(guard.run_sweeper(interval_s=0.01))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert guard.store.get(_KEY) is None
