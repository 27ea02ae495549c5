"""Route plausibility heuristic.

A road-following route has many geometry points per kilometre. A long route
with very few points is most likely a straight line the router drew across
water. This is a density heuristic, not real water detection; false
positives and negatives are expected.
"""

import logging
from collections.abc import Callable, Sequence

from models import Coordinate

logger = logging.getLogger(__name__)

# Fewer points per km than this, on a long route, marks it implausible.
MIN_POINTS_PER_KM: float = 2.0
# Routes up to this length are never flagged.
MIN_CHECKED_DISTANCE_KM: float = 20.0

# Any callable with this shape can replace ``is_plausible`` in the router.
PlausibilityCheck = Callable[[Sequence[Coordinate], float], bool]


def is_plausible(coordinates: Sequence[Coordinate], distance_km: float) -> bool:
    """Returns False when the route looks like it cuts across water."""
    if distance_km <= MIN_CHECKED_DISTANCE_KM:
        return True
    points_per_km = len(coordinates) / distance_km
    if points_per_km < MIN_POINTS_PER_KM:
        logger.warning(
            "Route has very few points (%d) for its distance (%.0fkm); "
            "it may cross water",
            len(coordinates),
            distance_km,
        )
        return False
    return True
