"""
Tests for PlatformService.

The user view is the important part: credentials only show up when the
platform is granted and the profile has effective access.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from sqlalchemy.dialects import postgresql

from conftest import create_mock_credential, create_mock_platform, create_mock_profile, make_result
from jovitools.exceptions import CredentialNotFoundError, PlatformNotFoundError
from jovitools.services.platforms import PlatformService

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def catalog():
    canva = create_mock_platform(name="Canva Pro")
    chatgpt = create_mock_platform(name="ChatGPT Plus", category="IA")
    return canva, chatgpt


class TestListForProfile:
    """Tests for list_for_profile."""

    async def test_granted_with_access_includes_credentials(self, db_session, catalog):
        canva, chatgpt = catalog
        credential = create_mock_credential(canva.id)
        profile = create_mock_profile(access_expires_at=NOW + timedelta(days=5))
        db_session.execute = AsyncMock(
            side_effect=[
                make_result(scalars=[canva.id]),  # grants
                make_result(rows=[(canva, 1), (chatgpt, 2)]),  # platforms
                make_result(scalars=[credential]),  # credentials
            ]
        )

        effective, views = await PlatformService(db_session).list_for_profile(profile, now=NOW)

        assert effective is True
        by_name = {view.platform.name: view for view in views}
        assert by_name["Canva Pro"].granted is True
        assert by_name["Canva Pro"].credentials == (credential,)
        assert by_name["ChatGPT Plus"].granted is False
        assert by_name["ChatGPT Plus"].credentials == ()

    async def test_expired_access_hides_credentials(self, db_session, catalog):
        canva, chatgpt = catalog
        profile = create_mock_profile(access_expires_at=NOW - timedelta(seconds=1))
        db_session.execute = AsyncMock(
            side_effect=[
                make_result(scalars=[canva.id]),
                make_result(rows=[(canva, 1), (chatgpt, 0)]),
            ]
        )

        effective, views = await PlatformService(db_session).list_for_profile(profile, now=NOW)

        assert effective is False
        assert views[0].granted is True
        assert all(view.credentials == () for view in views)
        assert db_session.execute.await_count == 2

    async def test_blocked_profile_hides_credentials(self, db_session, catalog):
        canva, _ = catalog
        profile = create_mock_profile(has_access=False)
        db_session.execute = AsyncMock(
            side_effect=[make_result(scalars=[canva.id]), make_result(rows=[(canva, 1)])]
        )

        effective, views = await PlatformService(db_session).list_for_profile(profile, now=NOW)

        assert effective is False
        assert views[0].credentials == ()


class TestPlatformCrud:
    async def test_get_missing_platform(self, db_session):
        with pytest.raises(PlatformNotFoundError):
            await PlatformService(db_session).get_platform(uuid4())

    async def test_create_with_distribution(self, db_session):
        service = PlatformService(db_session)
        service.grants.distribute_to_active_users = AsyncMock(return_value=12)

        platform = await service.create_platform(
            "Envato", category="Design", distribute_to_active_users=True
        )

        assert platform.name == "Envato"
        assert service.grants.distribute_to_active_users.await_args.kwargs["commit"] is False
        db_session.commit.assert_awaited_once()

    async def test_create_without_distribution(self, db_session):
        service = PlatformService(db_session)
        service.grants.distribute_to_active_users = AsyncMock()

        await service.create_platform("Envato")

        service.grants.distribute_to_active_users.assert_not_called()

    async def test_delete_platform(self, db_session):
        platform = create_mock_platform()
        db_session.get = AsyncMock(return_value=platform)

        await PlatformService(db_session).delete_platform(platform.id)

        db_session.delete.assert_awaited_once_with(platform)
        db_session.commit.assert_awaited_once()

    async def test_delete_platform_prunes_invites(self, db_session):
        """Active invites stop listing a deleted platform."""
        platform = create_mock_platform()
        db_session.get = AsyncMock(return_value=platform)

        await PlatformService(db_session).delete_platform(platform.id)

        stmt = db_session.execute.await_args_list[0].args[0]
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert sql.startswith("UPDATE invites SET platform_ids=array_remove(")
        assert "ANY (invites.platform_ids)" in sql


class TestCredentials:
    async def test_credential_of_other_platform_not_found(self, db_session):
        credential = create_mock_credential(uuid4())
        db_session.get = AsyncMock(return_value=credential)

        with pytest.raises(CredentialNotFoundError):
            await PlatformService(db_session).update_credential(
                uuid4(), credential.id, "login", "password"
            )

    async def test_update_credential(self, db_session):
        platform_id = uuid4()
        credential = create_mock_credential(platform_id)
        db_session.get = AsyncMock(return_value=credential)

        updated = await PlatformService(db_session).update_credential(
            platform_id, credential.id, "novo@jovitools.com", "n0va"
        )

        assert updated.login == "novo@jovitools.com"
        assert updated.password == "n0va"
        db_session.commit.assert_awaited_once()

    async def test_add_credential_requires_platform(self, db_session):
        with pytest.raises(PlatformNotFoundError):
            await PlatformService(db_session).add_credential(uuid4(), "login", "password")
