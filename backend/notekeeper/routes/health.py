"""
NoteKeeper Backend — Health Check Route
=========================================

What:  Liveness/readiness probe for load balancers and container health checks.
How:   `SELECT 1` through a request session; reports the in-process cache
       size and uptime. 200 when the database answers, 503 otherwise.
"""

import logging
import time

from fastapi import APIRouter, Depends, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notekeeper import __version__
from notekeeper.database import get_db_session
from notekeeper.routes.deps import get_note_cache
from notekeeper.schemas.note import HealthResponse
from notekeeper.services.note_cache import NoteCache

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check(
    response: Response,
    db: AsyncSession = Depends(get_db_session),
    cache: NoteCache = Depends(get_note_cache),
) -> HealthResponse:
    db_status = "connected"
    overall = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        await db.rollback()
        db_status = "disconnected"
        overall = "unhealthy"
        response.status_code = 503
        logger.warning("Health check: database unreachable: %s", type(e).__name__)

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        cache_entries=cache.size,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
