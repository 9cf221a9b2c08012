"""
Inceptra Backend — Health Check Routes
========================================

What:  Liveness (GET / and GET /api/health) and dependency health (GET /health).
Why:   Load balancers need a cheap liveness probe; monitoring needs to know
       whether the database and the inference providers are usable.
How:   /health runs SELECT 1 and asks each provider for a quota-free health
       check.

Status levels:
    healthy:   database and every provider OK          (HTTP 200)
    degraded:  database OK, at least one provider down (HTTP 200)
    unhealthy: database unreachable                    (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Response
from sqlalchemy import text

from app import __version__
from app.database import engine
from app.schemas.generation import HealthResponse
from app.services.generation_service import generation_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get("/", summary="Liveness probe")
@router.get("/api/health", summary="Liveness probe")
async def liveness() -> dict:
    return {"status": "ok", "message": "Inceptra API is running"}


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service and dependency health",
)
async def health_check(response: Response) -> HealthResponse:
    db_status = "connected"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    providers = {}
    for name, provider in generation_service.providers.items():
        available = await provider.health_check()
        providers[name] = "available" if available else "unavailable"
        if not available and overall == "healthy":
            overall = "degraded"

    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        providers=providers,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
