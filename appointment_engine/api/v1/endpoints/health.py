"""Health check endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel

from appointment_engine.config import settings
from appointment_engine.core.redis_client import check_redis_connection
from appointment_engine.database import check_database_connection

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str


class DetailedHealthResponse(HealthResponse):
    """Health check including backing services."""

    database: str
    cache: str


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
)
async def health_check() -> HealthResponse:
    """Liveness probe."""
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Detailed health check",
)
async def detailed_health_check() -> DetailedHealthResponse:
    """
    Health status of the database and the slot cache.

    The cache is optional: when it is disabled it is reported as such and
    does not degrade the overall status.

    Returns:
        Detailed health status including dependencies
    """
    db_healthy = await check_database_connection()

    if settings.cache_enabled:
        cache_healthy = await check_redis_connection()
        cache = "healthy" if cache_healthy else "unhealthy"
    else:
        cache_healthy = True
        cache = "disabled"

    return DetailedHealthResponse(
        status="healthy" if db_healthy and cache_healthy else "degraded",
        version=settings.app_version,
        environment=settings.environment,
        database="healthy" if db_healthy else "unhealthy",
        cache=cache,
    )


@router.get(
    "/ping",
    status_code=status.HTTP_200_OK,
    summary="Simple ping",
)
async def ping() -> dict[str, str]:
    """Pong."""
    return {"message": "pong"}
