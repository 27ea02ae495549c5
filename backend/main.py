"""Trip route generation backend service.

Exposes endpoints for multi-day trip generation and service status. Requester
identity comes from the ``X-User-Id`` header set by the upstream auth layer.
"""

import asyncio
import contextlib
import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

import trip_generation
from errors import (
    ConstraintViolationError,
    DuplicateRequestError,
    GenerationTimeoutError,
    InsufficientWaypointsError,
    RoutingUnavailableError,
    TripGenerationError,
)
from generation_guard import GenerationGuard
from models import (
    GeneratedFor,
    GenerateTripRequest,
    GenerateTripResponse,
    GenerationStatusResponse,
)

logging.basicConfig(level=logging.INFO)

guard = GenerationGuard()

# Seconds a client should wait before retrying after the routing service failed.
ROUTING_RETRY_AFTER_S: int = 30


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    sweeper = asyncio.create_task(guard.run_sweeper())
    try:
        yield
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper


app = FastAPI(
    title="Trip Route Backend",
    description="AI-planned cycling and walking trips on real roads.",
    version="0.1.0",
    lifespan=lifespan,
)

# HTTP status per error kind; first match wins.
_ERROR_STATUS: list[tuple[type[TripGenerationError], int]] = [
    (DuplicateRequestError, 429),
    (GenerationTimeoutError, 408),
    (ConstraintViolationError, 422),
    (RoutingUnavailableError, 503),
    (InsufficientWaypointsError, 502),
]


@app.exception_handler(TripGenerationError)
async def trip_generation_error_handler(
    request: Request, exc: TripGenerationError
) -> JSONResponse:
    """Turns pipeline errors into a JSON body with retry hints."""
    status_code = next(
        (code for error_type, code in _ERROR_STATUS if isinstance(exc, error_type)),
        500,
    )

    body = {
        "error": type(exc).__name__,
        "message": exc.message,
        "can_retry": status_code != 422,
    }
    headers = {}
    if exc.day is not None:
        body["day"] = exc.day
    if exc.distance_km is not None:
        body["distance_km"] = exc.distance_km
    retry_after = None
    if isinstance(exc, DuplicateRequestError):
        retry_after = exc.retry_after
    elif isinstance(exc, RoutingUnavailableError):
        retry_after = ROUTING_RETRY_AFTER_S
    if retry_after is not None:
        body["retry_after"] = retry_after
        headers["Retry-After"] = str(retry_after)

    logging.warning("Trip generation failed (%d): %s", status_code, exc.message)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint used to verify the service is live."""
    return {"status": "ok"}


@app.post("/trips/generate", response_model=GenerateTripResponse)
async def generate_trip(
    request: GenerateTripRequest,
    x_user_id: str | None = Header(default=None),
) -> GenerateTripResponse:
    """Generates a bike (2-day) or walk (circular, 1-day) trip.

    Runs the five-step pipeline in ``trip_generation.generate``: dedup
    guard, AI waypoint suggestion, real-road routing with one repair retry,
    distance adjustment, and final validation.

    Args:
        request: ``GenerateTripRequest`` with destination and trip type.
        x_user_id: Requester identity from the ``X-User-Id`` header.

    Returns:
        ``GenerateTripResponse`` with the assembled trip.

    Raises:
        HTTPException 400: If the requester identity is missing.
        HTTPException 502: On unexpected upstream failures.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=400,
            detail="X-User-Id header must not be empty.",
        )
    try:
        trip = await trip_generation.generate(
            request.destination,
            request.trip_type,
            requester_id=x_user_id.strip(),
            guard=guard,
        )
    except TripGenerationError:
        raise
    except Exception as exc:  # noqa: BLE001
        logging.exception("trip_generation.generate failed")
        raise HTTPException(
            status_code=502,
            detail="Failed to generate a trip. Please try again.",
        ) from exc

    return GenerateTripResponse(
        trip=trip,
        generated_for=GeneratedFor(
            user_id=x_user_id.strip(),
            request_id=request.request_id,
            timestamp=datetime.now(timezone.utc),
        ),
    )


@app.get("/trips/status/generation", response_model=GenerationStatusResponse)
async def generation_status() -> GenerationStatusResponse:
    """Reports the configured suggestion provider and routing engine."""
    return GenerationStatusResponse(
        service=trip_generation.service_status(),
        timestamp=datetime.now(timezone.utc),
    )
