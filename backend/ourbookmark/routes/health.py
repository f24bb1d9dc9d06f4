"""
OurBookmark Backend: Health Check Route
========================================

What:  Liveness/readiness probe for Docker and load balancers.
How:   SELECT 1 against the database; reports whether the ISBNdb key is set
       without calling ISBNdb (the probe must not spend upstream quota).

Status levels:
    - healthy:   database reachable and ISBNdb key configured
    - degraded:  database reachable, ISBNdb key missing (search answers 500)
    - unhealthy: database unreachable
"""

import logging
import time

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ourbookmark import __version__
from ourbookmark.database import engine
from ourbookmark.schemas.common import HealthResponse
from ourbookmark.services.isbndb_proxy import isbndb_proxy

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check() -> HealthResponse:
    db_status = "connected"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    isbndb_status = "configured" if isbndb_proxy.configured else "missing_key"
    if isbndb_status == "missing_key" and overall == "healthy":
        overall = "degraded"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        isbndb=isbndb_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
