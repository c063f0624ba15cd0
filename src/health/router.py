"""Health check endpoints."""

from fastapi import APIRouter, Request

from src.config import get_settings


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, str | bool]:
    """Readiness probe - reports whether the backing stores are connected.

    Redis is optional (rate limiting and stats caching are skipped without
    it), so only Cassandra decides between ``ready`` and ``degraded``.
    """
    settings = get_settings()
    state = request.app.state
    cassandra_ok = getattr(state, "cassandra_session", None) is not None
    redis_ok = getattr(state, "redis", None) is not None
    return {
        "status": "ready" if cassandra_ok else "degraded",
        "cassandra": cassandra_ok,
        "redis": redis_ok,
        "environment": settings.environment,
        "debug": settings.debug,
    }


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
