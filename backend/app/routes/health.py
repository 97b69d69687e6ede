"""
CustomTees Backend — Health Check Route
=========================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Checks the database and reports the UPS circuit breaker state.
Who:   Docker health checks, load balancers, uptime monitors.

Status levels:
    - healthy:   database reachable, UPS circuit closed
    - degraded:  database reachable, UPS circuit open or half open
    - unhealthy: database unreachable
"""

import logging
import time

from fastapi import APIRouter
from sqlalchemy import text

from app import __version__
from app.database import engine
from app.schemas.common import HealthResponse
from app.services.ups_service import ups_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description=(
        "Returns the health of the backend and its dependencies. The UPS state is "
        "read from the circuit breaker; no UPS call is made."
    ),
)
async def health_check() -> HealthResponse:
    db_status = "connected"
    overall = "healthy"

    # ── Check Database ────────────────────────────────────────────────────
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    # ── Check UPS circuit ─────────────────────────────────────────────────
    carrier_state = ups_service.circuit_breaker.state
    if carrier_state != "closed" and overall == "healthy":
        overall = "degraded"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        carrier=carrier_state,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
