"""
Tests for Status API Routes.

Tests provider checks and the overall status calculation.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import httpx

from jovitools.api.status_routes import (
    ProviderStatus,
    StatusLevel,
    _latency_status,
    calculate_overall_status,
    check_http_provider,
)


def provider(level: StatusLevel) -> ProviderStatus:
    return ProviderStatus(status=level, latency_ms=10, last_check=datetime.now(UTC).isoformat())


class TestCalculateOverallStatus:
    """Tests for calculate_overall_status function."""

    def test_all_operational(self):
        providers = {"a": provider(StatusLevel.OPERATIONAL), "b": provider(StatusLevel.OPERATIONAL)}
        assert calculate_overall_status(providers) == StatusLevel.OPERATIONAL

    def test_degraded_wins_over_operational(self):
        providers = {"a": provider(StatusLevel.OPERATIONAL), "b": provider(StatusLevel.DEGRADED)}
        assert calculate_overall_status(providers) == StatusLevel.DEGRADED

    def test_outage_wins(self):
        providers = {"a": provider(StatusLevel.DEGRADED), "b": provider(StatusLevel.OUTAGE)}
        assert calculate_overall_status(providers) == StatusLevel.OUTAGE


class TestLatencyStatus:
    def test_high_latency_is_degraded(self):
        status = _latency_status(1500, datetime.now(UTC).isoformat())
        assert status.status == StatusLevel.DEGRADED
        assert status.message == "High latency"

    def test_normal_latency(self):
        status = _latency_status(80, datetime.now(UTC).isoformat())
        assert status.status == StatusLevel.OPERATIONAL


class TestCheckHttpProvider:
    """Tests for check_http_provider."""

    async def test_not_configured(self):
        status = await check_http_provider("video_provider", "https://x", configured=False)

        assert status.status == StatusLevel.OPERATIONAL
        assert status.message == "Not configured"

    async def test_unauthenticated_probe_counts_as_reachable(self):
        mock_client = AsyncMock()
        mock_client.get = AsyncMock(return_value=httpx.Response(401))
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=None)

        with patch("jovitools.api.status_routes.httpx.AsyncClient", return_value=mock_client):
            status = await check_http_provider("image_gateway", "https://x", configured=True)

        assert status.status == StatusLevel.OPERATIONAL

    async def test_server_error_is_degraded(self):
        mock_client = AsyncMock()
        mock_client.get = AsyncMock(return_value=httpx.Response(502))
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=None)

        with patch("jovitools.api.status_routes.httpx.AsyncClient", return_value=mock_client):
            status = await check_http_provider("image_gateway", "https://x", configured=True)

        assert status.status == StatusLevel.DEGRADED
        assert status.message == "Unexpected status: 502"

    async def test_timeout_is_outage(self):
        mock_client = AsyncMock()
        mock_client.get = AsyncMock(side_effect=httpx.ConnectTimeout("timed out"))
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=None)

        with patch("jovitools.api.status_routes.httpx.AsyncClient", return_value=mock_client):
            status = await check_http_provider("video_provider", "https://x", configured=True)

        assert status.status == StatusLevel.OUTAGE
        assert status.message == "Timeout"
