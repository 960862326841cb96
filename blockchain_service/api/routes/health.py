"""
Health check route.
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
import structlog

from blockchain_service.api.dependencies import ServiceContainer, get_services


logger = structlog.get_logger(__name__)
router = APIRouter()

_started_at = time.monotonic()


async def _check_database(services: ServiceContainer) -> Dict[str, Any]:
    start = time.perf_counter()
    try:
        async with services.session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        return {"status": "unhealthy", "message": str(e)}
    return {
        "status": "healthy",
        "message": "Connected",
        "responseTime": round((time.perf_counter() - start) * 1000, 2),
    }


async def _check_redis(services: ServiceContainer) -> Dict[str, Any]:
    result = await services.redis.health_check()
    if result.get("status") != "healthy":
        return {"status": "unhealthy", "message": result.get("error", "Connection failed")}
    return {
        "status": "healthy",
        "message": "Connected",
        "responseTime": result.get("ping_ms"),
        "queue": await services.queue.get_counts(),
    }


async def _check_rabbitmq(services: ServiceContainer) -> Dict[str, Any]:
    try:
        connected = await services.publisher.health_check()
    except Exception as e:
        return {"status": "unhealthy", "message": str(e)}
    if not connected:
        return {"status": "unhealthy", "message": "Connection not established"}
    return {"status": "healthy", "message": "Connected"}


@router.get("/health", tags=["System"], summary="Health Check")
async def health_check(services: ServiceContainer = Depends(get_services)):
    """
    Check database, Redis and RabbitMQ connectivity.

    The database is required (503 when down); a broker outage only degrades
    the service.
    """
    start = time.perf_counter()
    checks = {
        "database": await _check_database(services),
        "redis": await _check_redis(services),
        "rabbitmq": await _check_rabbitmq(services),
    }

    if checks["database"]["status"] != "healthy":
        overall = "unhealthy"
    elif any(check["status"] != "healthy" for check in checks.values()):
        overall = "degraded"
    else:
        overall = "healthy"

    body = {
        "status": overall,
        "service": "blockchain-service",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - _started_at, 2),
        "checks": checks,
        "responseTime": round((time.perf_counter() - start) * 1000, 2),
    }

    if overall == "unhealthy":
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body)
    return body
