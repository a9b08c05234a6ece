"""Health check endpoints."""

from typing import Any

from fastapi import APIRouter

from commerce_assistant.core.config import settings
from commerce_assistant.core.deps import GatewayDep, RedisDep
from commerce_assistant.schemas.common import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(redis: RedisDep, gateway: GatewayDep) -> dict[str, Any]:
    """
    Health check endpoint.

    Checks Redis connectivity and whether a completion backend is configured.
    A missing completion backend only degrades replies to fallbacks, so it
    does not make the service unhealthy.
    """
    health_status: dict[str, Any] = {
        "status": "healthy",
        "version": settings.version,
        "environment": settings.environment,
        "checks": {},
    }

    try:
        await redis.ping()
        health_status["checks"]["redis"] = "healthy"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["redis"] = f"unhealthy: {str(e)}"

    health_status["checks"]["completion"] = "configured" if gateway.available else "fallback"

    return health_status


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """
    Liveness probe for Kubernetes/container orchestration.

    Simple check that the service is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(redis: RedisDep) -> dict[str, str]:
    """
    Readiness probe for Kubernetes/container orchestration.

    Checks if the service is ready to receive traffic.
    """
    await redis.ping()

    return {"status": "ready"}
