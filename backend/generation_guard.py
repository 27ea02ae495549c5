"""Short-window deduplication of trip generation requests.

A reservation is keyed by requester, destination and trip type. While a
reservation is younger than the window, the same request is refused. The
reservation store is injectable so it can be swapped for a shared store.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Iterator
from typing import Protocol

from models import Destination, TripType

logger = logging.getLogger(__name__)

# Identical requests inside this window are refused.
DEDUP_WINDOW_S: float = 15.0
# How often the background sweep runs.
SWEEP_INTERVAL_S: float = 30.0


def make_key(requester_id: str, destination: Destination, trip_type: TripType) -> str:
    """Returns the generation key for a request."""
    return f"{requester_id}|{destination.normalized()}|{TripType(trip_type).value}"


class ReservationStore(Protocol):
    """Minimal mapping of generation key to reservation time."""

    def get(self, key: str) -> float | None: ...

    def set(self, key: str, timestamp: float) -> None: ...

    def delete(self, key: str) -> None: ...

    def items(self) -> Iterator[tuple[str, float]]: ...


class InMemoryReservationStore:
    """Process-local reservation store."""

    def __init__(self) -> None:
        self._data: dict[str, float] = {}

    def get(self, key: str) -> float | None:
        return self._data.get(key)

    def set(self, key: str, timestamp: float) -> None:
        self._data[key] = timestamp

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def items(self) -> Iterator[tuple[str, float]]:
        # Snapshot so callers may delete while iterating.
        return iter(list(self._data.items()))

    def __len__(self) -> int:
        return len(self._data)


class GenerationGuard:
    """Refuses repeat generation requests within a short window."""

    def __init__(
        self,
        store: ReservationStore | None = None,
        *,
        window_s: float = DEDUP_WINDOW_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store if store is not None else InMemoryReservationStore()
        self.window_s = window_s
        self._clock = clock

    def check_and_reserve(self, key: str) -> bool:
        """Reserves ``key`` and returns True, or returns False if it is taken."""
        now = self._clock()
        reserved_at = self.store.get(key)
        if reserved_at is not None and now - reserved_at < self.window_s:
            logger.info("Duplicate generation request refused: %s", key)
            return False
        self.store.set(key, now)
        return True

    def remaining(self, key: str) -> float:
        """Seconds left before ``key`` may be reserved again (0 if free)."""
        reserved_at = self.store.get(key)
        if reserved_at is None:
            return 0.0
        return max(0.0, self.window_s - (self._clock() - reserved_at))

    def release(self, key: str) -> None:
        """Drops the reservation so the request can be retried at once."""
        self.store.delete(key)

    def sweep(self) -> int:
        """Removes reservations older than twice the window.

        Returns:
            The number of reservations removed.
        """
        cutoff = self._clock() - 2 * self.window_s
        stale = [key for key, reserved_at in self.store.items() if reserved_at < cutoff]
        for key in stale:
            self.store.delete(key)
        if stale:
            logger.debug("Swept %d stale generation reservations", len(stale))
        return len(stale)

    async def run_sweeper(self, interval_s: float = SWEEP_INTERVAL_S) -> None:
        """Sweeps forever; run as a background task and cancel on shutdown."""
        while True:
            await asyncio.sleep(interval_s)
            self.sweep()
