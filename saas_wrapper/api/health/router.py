"""Health check endpoints for monitoring."""

from fastapi import APIRouter, Request

from saas_wrapper.api.core.dependencies import AsyncSessionDep
from saas_wrapper.modules.health.service import HealthService, OverallHealthStatus
from saas_wrapper.utils.settings.redis import RedisSettings

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check(
    request: Request,
    db: AsyncSessionDep,
) -> OverallHealthStatus:
    """Database check, plus redis when inter-app events are published through it."""
    redis_client = getattr(request.app.state, "redis", None)
    health_service = HealthService(
        db, redis_client, stream_prefix=RedisSettings().EVENT_STREAM_PREFIX
    )
    return await health_service.run_all_checks()


@router.get("/liveness")
async def liveness_check():
    """Simple liveness check - indicates if service is running."""
    return {"status": "alive", "service": "saas-wrapper-api"}
