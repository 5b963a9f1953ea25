"""
RecipeShare Backend: Health Check Route
========================================

What:  GET /api/health for container health checks and load balancers.
How:   Pings MongoDB (the only critical dependency) and reports uptime.

    healthy    database reachable    → 200
    unhealthy  database unreachable  → 503
"""

import logging
import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from recipe_api import __version__
from recipe_api.database import mongo
from recipe_api.schemas.recipe import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
    summary="Service health check",
)
async def health_check():
    database_ok = await mongo.ping()
    if not database_ok:
        logger.warning("Health check: database unreachable")

    body = HealthResponse(
        status="healthy" if database_ok else "unhealthy",
        version=__version__,
        database="connected" if database_ok else "disconnected",
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if not database_ok:
        return JSONResponse(status_code=503, content=body.model_dump())
    return body
