"""Health check endpoints tests."""

from unittest.mock import AsyncMock, MagicMock, patch

from fastapi import status
from httpx import AsyncClient

from saas_wrapper.modules.health.service import HealthCheckResult, HealthService


async def test_liveness(client: AsyncClient):
    response = await client.get("/health/liveness")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"status": "alive", "service": "saas-wrapper-api"}


async def test_health_check_with_memory_publisher(client: AsyncClient):
    """Without a redis publisher only the database is checked."""
    response = await client.get("/health")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["status"] == "healthy"
    assert list(data["services"]) == ["database"]
    assert data["services"]["database"]["details"] == {"test_query_result": 1}


async def test_health_check_database_unhealthy(client: AsyncClient):
    unhealthy = HealthCheckResult(
        service="database",
        status="unhealthy",
        connected=False,
        details={},
        error="connection refused",
    )
    with patch(
        "saas_wrapper.modules.health.service.HealthService.check_database_health",
        AsyncMock(return_value=unhealthy),
    ):
        response = await client.get("/health")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["status"] == "unhealthy"
    assert data["services"]["database"]["error"] == "connection refused"


class TestRedisHealth:
    @staticmethod
    def _redis(keys: list[str]) -> MagicMock:
        async def scan_iter(match=None):
            for key in keys:
                yield key

        client = MagicMock()
        client.ping = AsyncMock(return_value=True)
        client.scan_iter = MagicMock(side_effect=scan_iter)
        return client

    async def test_counts_event_streams(self, db_session):
        client = self._redis(["events:crm", "events:hr"])
        service = HealthService(db_session, client, stream_prefix="events")

        overall = await service.run_all_checks()

        assert overall.status == "healthy"
        assert overall.services["redis"].details == {"event_streams": 2}
        client.scan_iter.assert_called_once_with(match="events:*")

    async def test_ping_failure_marks_unhealthy(self, db_session):
        client = self._redis([])
        client.ping = AsyncMock(side_effect=ConnectionError("redis down"))
        service = HealthService(db_session, client, stream_prefix="events")

        overall = await service.run_all_checks()

        assert overall.status == "unhealthy"
        assert overall.services["redis"].connected is False
        assert overall.services["database"].status == "healthy"
