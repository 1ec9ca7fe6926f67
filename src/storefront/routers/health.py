"""
Storefront - Health Check Router
HTTP layer

This module implements liveness, readiness and metrics endpoints.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Dict, Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from ..dependencies import get_cache, get_database_manager, get_invalidator
from ...shared.caching import CacheInvalidator, RedisCache
from ...shared.metrics_collector import get_metrics_collector
from ...shared.schemas import HealthResponse, ReadinessResponse
from ...stockroom.database import DatabaseManager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """
    Liveness endpoint. Succeeds whenever the process is serving requests.

    Returns:
        Status, current time and seconds since startup
    """
    started = getattr(request.app.state, "start_time", time.monotonic())
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc),
        uptime_seconds=round(time.monotonic() - started, 3)
    )


@router.get("/ready", response_model=ReadinessResponse, response_model_exclude_none=True)
async def readiness_check(
    db_manager: DatabaseManager = Depends(get_database_manager),
    cache: RedisCache = Depends(get_cache)
):
    """
    Readiness endpoint for container orchestration.

    The service is ready when the store answers; the cache state is reported
    but never makes the service unready.
    """
    cache_state = "connected" if cache.available else "disconnected"

    if not await db_manager.health_check():
        logger.warning("Readiness check failed: database unreachable")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=ReadinessResponse(
                status="not ready",
                database="disconnected",
                cache=cache_state,
                timestamp=datetime.now(timezone.utc),
                error="Database unreachable"
            ).model_dump(mode="json")
        )

    return ReadinessResponse(
        status="ready",
        database="connected",
        cache=cache_state,
        timestamp=datetime.now(timezone.utc)
    )


@router.get("/metrics")
async def metrics(
    cache: RedisCache = Depends(get_cache),
    invalidator: CacheInvalidator = Depends(get_invalidator)
) -> Dict[str, Any]:
    """In-process counters, cache statistics and invalidation statistics."""
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "metrics": get_metrics_collector().get_metrics_summary(),
        "cache": cache.get_stats(),
        "invalidation": invalidator.get_stats()
    }
