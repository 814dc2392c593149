"""
Status API routes - Health checks for JoviTools dependencies.

Public endpoint (no auth) for status page aggregation.
Rate limited by caching the last result.
"""

import asyncio
import time
from datetime import UTC, datetime
from enum import Enum

import httpx
from fastapi import APIRouter
from pydantic import BaseModel, Field
from sqlalchemy import text
from structlog import get_logger

from jovitools.config import settings
from jovitools.db.session import get_write_db

logger = get_logger(__name__)
router = APIRouter(tags=["status"])

CHECK_TIMEOUT = 5.0  # seconds
DEGRADED_LATENCY_THRESHOLD = 1000  # ms

# Rate limiting: cache last result for 10 seconds
_status_cache: dict[str, tuple[datetime, "ServiceStatusResponse"]] = {}
_CACHE_TTL_SECONDS = 10


class StatusLevel(str, Enum):
    """Status levels for health checks."""

    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    OUTAGE = "outage"


class ProviderStatus(BaseModel):
    """Status of a single provider."""

    status: StatusLevel
    latency_ms: int | None = None
    last_check: str = Field(..., description="ISO 8601 timestamp")
    message: str | None = None


class ServiceStatusResponse(BaseModel):
    """Response for /v1/status endpoint."""

    service: str = "jovitools"
    status: StatusLevel
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    version: str
    providers: dict[str, ProviderStatus]


def _latency_status(latency_ms: int, timestamp: str) -> ProviderStatus:
    level = (
        StatusLevel.DEGRADED if latency_ms > DEGRADED_LATENCY_THRESHOLD else StatusLevel.OPERATIONAL
    )
    return ProviderStatus(
        status=level,
        latency_ms=latency_ms,
        last_check=timestamp,
        message="High latency" if level == StatusLevel.DEGRADED else None,
    )


async def check_postgresql() -> ProviderStatus:
    """Check PostgreSQL connectivity."""
    start = time.perf_counter()
    timestamp = datetime.now(UTC).isoformat()

    try:
        async for db in get_write_db():
            await db.execute(text("SELECT 1"))
            return _latency_status(int((time.perf_counter() - start) * 1000), timestamp)
    except Exception as e:
        logger.warning("postgresql_health_check_failed", error=str(e))
        return ProviderStatus(
            status=StatusLevel.OUTAGE, last_check=timestamp, message="Connection failed"
        )

    return ProviderStatus(status=StatusLevel.OUTAGE, last_check=timestamp, message="Unknown error")


async def check_http_provider(name: str, url: str, configured: bool) -> ProviderStatus:
    """
    Check an upstream HTTP API is reachable.

    Any response below 500 counts as reachable: these endpoints answer
    unauthenticated probes with 401/404/405.
    """
    start = time.perf_counter()
    timestamp = datetime.now(UTC).isoformat()

    if not configured:
        return ProviderStatus(
            status=StatusLevel.OPERATIONAL,
            latency_ms=0,
            last_check=timestamp,
            message="Not configured",
        )

    try:
        async with httpx.AsyncClient(timeout=CHECK_TIMEOUT) as client:
            response = await client.get(url)
            latency_ms = int((time.perf_counter() - start) * 1000)

            if response.status_code < 500:
                return _latency_status(latency_ms, timestamp)

            return ProviderStatus(
                status=StatusLevel.DEGRADED,
                latency_ms=latency_ms,
                last_check=timestamp,
                message=f"Unexpected status: {response.status_code}",
            )
    except httpx.TimeoutException:
        return ProviderStatus(
            status=StatusLevel.OUTAGE,
            latency_ms=int(CHECK_TIMEOUT * 1000),
            last_check=timestamp,
            message="Timeout",
        )
    except httpx.HTTPError as e:
        logger.warning("provider_health_check_failed", provider=name, error=str(e))
        return ProviderStatus(
            status=StatusLevel.OUTAGE, last_check=timestamp, message="Connection failed"
        )


def calculate_overall_status(providers: dict[str, ProviderStatus]) -> StatusLevel:
    """Calculate overall service status from provider statuses."""
    statuses = [p.status for p in providers.values()]

    if StatusLevel.OUTAGE in statuses:
        return StatusLevel.OUTAGE
    if StatusLevel.DEGRADED in statuses:
        return StatusLevel.DEGRADED
    return StatusLevel.OPERATIONAL


@router.get("/v1/status", response_model=ServiceStatusResponse)
async def get_status() -> ServiceStatusResponse:
    """
    Get JoviTools service status.

    Checks the database and both generation providers concurrently.
    Rate limited via 10-second cache.
    """
    cache_key = "status"
    now = datetime.now(UTC)

    if cache_key in _status_cache:
        cached_time, cached_response = _status_cache[cache_key]
        age_seconds = (now - cached_time).total_seconds()
        if age_seconds < _CACHE_TTL_SECONDS:
            logger.debug("status_cache_hit", age_seconds=age_seconds)
            return cached_response

    postgresql_status, image_status, video_status = await asyncio.gather(
        check_postgresql(),
        check_http_provider(
            "image_gateway",
            settings.image_gateway_url,
            configured=bool(settings.image_gateway_api_key),
        ),
        check_http_provider(
            "video_provider",
            settings.video_api_base_url,
            configured=bool(settings.video_api_key),
        ),
    )

    providers = {
        "postgresql": postgresql_status,
        "image_gateway": image_status,
        "video_provider": video_status,
    }

    response = ServiceStatusResponse(
        status=calculate_overall_status(providers),
        timestamp=now.isoformat(),
        version=settings.api_version,
        providers=providers,
    )
    _status_cache[cache_key] = (now, response)
    return response
