"""
Site Settings Service - small JSON values keyed by name.

Only maintenance_mode is defined: {"enabled": bool, "message": str}.
"""

from dataclasses import dataclass

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from jovitools.db.models import SiteSetting, utc_now

logger = get_logger(__name__)

MAINTENANCE_KEY = "maintenance_mode"
DEFAULT_MAINTENANCE_MESSAGE = "O site está em manutenção. Voltaremos em breve!"


@dataclass(frozen=True)
class MaintenanceMode:
    enabled: bool
    message: str


class SiteSettingsService:
    """Read and write site settings."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_maintenance(self) -> MaintenanceMode:
        """Current maintenance mode; off when never set or malformed."""
        setting = await self.session.get(SiteSetting, MAINTENANCE_KEY)
        if setting is None or not isinstance(setting.value, dict):
            return MaintenanceMode(enabled=False, message=DEFAULT_MAINTENANCE_MESSAGE)
        return MaintenanceMode(
            enabled=bool(setting.value.get("enabled", False)),
            message=str(setting.value.get("message") or DEFAULT_MAINTENANCE_MESSAGE),
        )

    async def set_maintenance(self, enabled: bool, message: str | None = None) -> MaintenanceMode:
        """Turn maintenance on or off. A missing message keeps the current one."""
        current = await self.get_maintenance()
        mode = MaintenanceMode(enabled=enabled, message=message or current.message)
        value = {"enabled": mode.enabled, "message": mode.message}

        stmt = pg_insert(SiteSetting).values(key=MAINTENANCE_KEY, value=value, updated_at=utc_now())
        stmt = stmt.on_conflict_do_update(
            index_elements=[SiteSetting.key],
            set_={"value": stmt.excluded.value, "updated_at": stmt.excluded.updated_at},
        )
        await self.session.execute(stmt)
        await self.session.commit()

        logger.info("maintenance_mode_set", enabled=enabled)
        return mode
