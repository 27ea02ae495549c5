"""Exception types raised by the trip generation pipeline.

Every fatal error aborts the pipeline and propagates to the caller with
enough context (day, measured distance) to build a specific message.
"""


class TripGenerationError(Exception):
    """Base class for all pipeline failures."""

    def __init__(
        self,
        message: str,
        *,
        day: int | None = None,
        distance_km: float | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.day = day
        self.distance_km = distance_km


class InsufficientWaypointsError(TripGenerationError):
    """The suggestion service did not yield enough usable waypoints."""


class SuggestionFormatError(InsufficientWaypointsError):
    """The suggestion response contained no parseable waypoint JSON."""


class RoutingUnavailableError(TripGenerationError):
    """The routing service returned no route and repair did not help."""


class ConstraintViolationError(TripGenerationError):
    """The assembled trip still breaks a distance or day-count rule."""


class DuplicateRequestError(TripGenerationError):
    """An identical generation request is already in flight or too recent.

    Not a processing failure: ``retry_after`` tells the caller how many
    seconds remain in the deduplication window.
    """

    def __init__(self, message: str, *, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after


class GenerationTimeoutError(TripGenerationError, TimeoutError):
    """The whole generation call exceeded its time budget."""
