"""
Tests for bizagent/api/health.py - liveness and readiness.
"""
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

from bizagent.api.health import health_check, readiness_check


class TestHealthCheck:
    async def test_returns_healthy(self):
        result = await health_check()
        assert result["status"] == "healthy"
        assert datetime.fromisoformat(result["timestamp"]).tzinfo is not None


class TestReadinessCheck:
    async def test_all_healthy(self, mock_redis):
        mock_db = AsyncMock()
        provider = MagicMock()
        provider.test_connection = AsyncMock(return_value=True)

        with patch("bizagent.api.health.get_calendar_provider", return_value=provider):
            result = await readiness_check(db=mock_db)

        assert result["status"] == "ready"
        assert result["checks"] == {"database": True, "redis": True, "calendar": True}

    async def test_calendar_down_is_degraded(self, mock_redis):
        provider = MagicMock()
        provider.test_connection = AsyncMock(return_value=False)

        with patch("bizagent.api.health.get_calendar_provider", return_value=provider):
            result = await readiness_check(db=AsyncMock())

        assert result["status"] == "degraded"

    async def test_database_down_is_unhealthy(self, mock_redis):
        mock_db = AsyncMock()
        mock_db.execute = AsyncMock(side_effect=Exception("connection refused"))
        provider = MagicMock()
        provider.test_connection = AsyncMock(return_value=True)

        with patch("bizagent.api.health.get_calendar_provider", return_value=provider):
            result = await readiness_check(db=mock_db)

        assert result["status"] == "unhealthy"
        assert result["checks"]["database"] is False
