"""
Access Log Service - records sign-ins with client IP and approximate location.

Geolocation is best-effort: lookup failures are logged and the entry is
stored without a location.
"""

import ipaddress
from collections.abc import Mapping
from uuid import UUID

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from jovitools.config import settings
from jovitools.db.models import AccessLog
from jovitools.models.domain import GeoLocation

logger = get_logger(__name__)

GEO_TIMEOUT = 5.0  # seconds

# Proxy headers in order of trust
IP_HEADERS = ("cf-connecting-ip", "x-real-ip", "x-forwarded-for")


def extract_client_ip(headers: Mapping[str, str], client_host: str | None = None) -> str | None:
    """First valid IP from the proxy headers, then the socket peer."""
    for header in IP_HEADERS:
        raw = headers.get(header)
        if not raw:
            continue
        candidate = raw.split(",")[0].strip()
        if _is_ip(candidate):
            return candidate
    if client_host and _is_ip(client_host):
        return client_host
    return None


def _is_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def is_public_ip(ip: str) -> bool:
    address = ipaddress.ip_address(ip)
    return not (address.is_private or address.is_loopback or address.is_reserved)


class GeoLocator:
    """ip-api.com style lookup: GET {url}/{ip}?fields=status,city,regionName,country."""

    def __init__(self, base_url: str | None = None, http_client: httpx.AsyncClient | None = None):
        self.base_url = (base_url or settings.geolocation_url).rstrip("/")
        self._http_client = http_client

    async def locate(self, ip: str | None) -> GeoLocation:
        if not ip or not is_public_ip(ip):
            return GeoLocation()
        try:
            if self._http_client is not None:
                data = await self._lookup(self._http_client, ip)
            else:
                async with httpx.AsyncClient(timeout=GEO_TIMEOUT) as client:
                    data = await self._lookup(client, ip)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("geolocation_failed", ip=ip, error=str(e))
            return GeoLocation()

        if data.get("status") != "success":
            return GeoLocation()
        return GeoLocation(
            city=data.get("city"), region=data.get("regionName"), country=data.get("country")
        )

    async def _lookup(self, client: httpx.AsyncClient, ip: str) -> dict[str, str]:
        response = await client.get(
            f"{self.base_url}/{ip}", params={"fields": "status,city,regionName,country"}
        )
        response.raise_for_status()
        data = response.json()
        return data if isinstance(data, dict) else {}


class AccessLogService:
    """Persist and list access log entries."""

    def __init__(self, session: AsyncSession, locator: GeoLocator | None = None) -> None:
        self.session = session
        self.locator = locator or GeoLocator()

    async def record(self, profile_id: UUID, ip: str | None) -> AccessLog:
        location = await self.locator.locate(ip)
        entry = AccessLog(
            profile_id=profile_id,
            ip_address=ip,
            city=location.city,
            region=location.region,
            country=location.country,
        )
        self.session.add(entry)
        await self.session.commit()

        logger.info(
            "access_logged",
            profile_id=str(profile_id),
            country=location.country,
            city=location.city,
        )
        return entry

    async def list_recent(
        self, profile_id: UUID | None = None, limit: int = 100
    ) -> list[AccessLog]:
        """Newest first, optionally for one profile."""
        stmt = select(AccessLog)
        if profile_id is not None:
            stmt = stmt.where(AccessLog.profile_id == profile_id)
        result = await self.session.execute(stmt.order_by(AccessLog.created_at.desc()).limit(limit))
        return list(result.scalars().all())
