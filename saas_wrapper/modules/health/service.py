import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

import redis.asyncio as redis
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from saas_wrapper.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class HealthCheckResult:
    """Result of a health check."""

    service: str
    status: Literal["healthy", "unhealthy", "degraded"]
    connected: bool
    details: dict
    error: str | None = None


@dataclass
class OverallHealthStatus:
    """Overall health status with individual service results."""

    status: Literal["healthy", "degraded", "unhealthy"]
    services: dict[str, HealthCheckResult]
    timestamp: str


class HealthService:
    """Health checks for the database and, when events go through redis, the event stream."""

    def __init__(
        self,
        db: AsyncSession,
        redis_client: redis.Redis | None = None,
        stream_prefix: str | None = None,
    ):
        self.db = db
        self.redis = redis_client
        self.stream_prefix = stream_prefix

    async def check_database_health(self) -> HealthCheckResult:
        try:
            result = await self.db.execute(text("SELECT 1 as test"))
            test_value = result.scalar()

            return HealthCheckResult(
                service="database",
                status="healthy",
                connected=True,
                details={"test_query_result": test_value},
            )
        except Exception as e:
            logger.error(f"Database health check error: {e}")
            return HealthCheckResult(
                service="database",
                status="unhealthy",
                connected=False,
                details={},
                error=str(e),
            )

    async def check_redis_health(self) -> HealthCheckResult:
        """Redis ping plus a look at how many event streams exist."""
        try:
            await self.redis.ping()
            streams = 0
            if self.stream_prefix:
                async for _ in self.redis.scan_iter(match=f"{self.stream_prefix}:*"):
                    streams += 1

            return HealthCheckResult(
                service="redis",
                status="healthy",
                connected=True,
                details={"event_streams": streams},
            )
        except Exception as e:
            logger.error(f"Redis health check error: {e}")
            return HealthCheckResult(
                service="redis",
                status="unhealthy",
                connected=False,
                details={},
                error=str(e),
            )

    async def run_all_checks(self) -> OverallHealthStatus:
        """Run all health checks in parallel and return overall status."""
        tasks = [self.check_database_health()]
        if self.redis is not None:
            tasks.append(self.check_redis_health())

        results = await asyncio.gather(*tasks, return_exceptions=True)

        services = {}
        overall_status: Literal["healthy", "degraded", "unhealthy"] = "healthy"

        for result in results:
            if isinstance(result, HealthCheckResult):
                service_result = result
                if service_result.status == "unhealthy":
                    overall_status = "unhealthy"
                elif (
                    service_result.status == "degraded" and overall_status == "healthy"
                ):
                    overall_status = "degraded"
            else:
                service_result = HealthCheckResult(
                    service=result.__class__.__name__,
                    status="unhealthy",
                    connected=False,
                    details={},
                    error=str(result),
                )
                overall_status = "unhealthy"

            services[service_result.service] = service_result

        return OverallHealthStatus(
            status=overall_status,
            services=services,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
