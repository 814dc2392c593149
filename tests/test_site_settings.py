"""
Tests for SiteSettingsService (maintenance mode).
"""

from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.dialects import postgresql

from jovitools.services.site_settings import (
    DEFAULT_MAINTENANCE_MESSAGE,
    MaintenanceMode,
    SiteSettingsService,
)


def stored(value) -> MagicMock:
    setting = MagicMock()
    setting.value = value
    return setting


class TestGetMaintenance:
    async def test_never_set_is_off(self, db_session):
        mode = await SiteSettingsService(db_session).get_maintenance()

        assert mode == MaintenanceMode(enabled=False, message=DEFAULT_MAINTENANCE_MESSAGE)

    async def test_malformed_value_is_off(self, db_session):
        db_session.get = AsyncMock(return_value=stored("on"))

        mode = await SiteSettingsService(db_session).get_maintenance()

        assert mode.enabled is False

    async def test_stored_value(self, db_session):
        db_session.get = AsyncMock(
            return_value=stored({"enabled": True, "message": "Voltamos às 18h"})
        )

        mode = await SiteSettingsService(db_session).get_maintenance()

        assert mode == MaintenanceMode(enabled=True, message="Voltamos às 18h")


class TestSetMaintenance:
    async def test_upserts_and_commits(self, db_session):
        mode = await SiteSettingsService(db_session).set_maintenance(True, "Atualização")

        assert mode == MaintenanceMode(enabled=True, message="Atualização")
        stmt = db_session.execute.await_args.args[0]
        assert "ON CONFLICT" in str(stmt.compile(dialect=postgresql.dialect()))
        db_session.commit.assert_awaited_once()

    async def test_missing_message_keeps_current(self, db_session):
        db_session.get = AsyncMock(
            return_value=stored({"enabled": True, "message": "Voltamos às 18h"})
        )

        mode = await SiteSettingsService(db_session).set_maintenance(False)

        assert mode == MaintenanceMode(enabled=False, message="Voltamos às 18h")
