"""Health check endpoints."""

from fastapi import APIRouter
from sqlalchemy import text

from mostrador.core.config import settings
from mostrador.core.deps import DBSession, RedisClient
from mostrador.schemas.common import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DBSession, redis: RedisClient) -> HealthResponse:
    """
    Health check endpoint.

    Checks database and Redis connectivity and returns service status.
    """
    checks: dict[str, str] = {}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        checks["database"] = f"unhealthy: {str(e)}"

    # Auth sessions live in Redis, so order tools are down without it
    try:
        await redis.ping()
        checks["redis"] = "healthy"
    except Exception as e:
        checks["redis"] = f"unhealthy: {str(e)}"

    healthy = all(v == "healthy" for v in checks.values())
    return HealthResponse(
        status="healthy" if healthy else "unhealthy",
        version=settings.version,
        environment=settings.environment,
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """Liveness probe: the process is up."""
    return {"status": "alive"}
