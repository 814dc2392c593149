"""
Tests for ProfileService.

Covers first sign-in, claiming a provisioned profile and role management.
"""

from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import create_mock_profile, make_result
from jovitools.db.models import Profile, UserRole
from jovitools.exceptions import (
    ProfileConflictError,
    ProfileNotFoundError,
    ValidationError,
    WriteVerificationError,
)
from jovitools.models.api import Role
from jovitools.models.domain import AuthenticatedUser
from jovitools.services.profiles import ProfileService, normalize_email


@pytest.fixture
def identity() -> AuthenticatedUser:
    return AuthenticatedUser(user_id="user-123", email="Cliente@Example.com ")


class TestGetOrCreate:
    """Tests for get_or_create_for_user."""

    async def test_returns_linked_profile(self, db_session, identity):
        existing = create_mock_profile()
        db_session.execute = AsyncMock(return_value=make_result(scalar=existing))

        profile = await ProfileService(db_session).get_or_create_for_user(identity)

        assert profile is existing
        db_session.add.assert_not_called()
        db_session.commit.assert_not_called()

    async def test_claims_provisioned_profile(self, db_session, identity):
        unclaimed = create_mock_profile(user_id=None)
        db_session.execute = AsyncMock(
            side_effect=[
                make_result(scalar=None),  # by user_id
                make_result(scalar=unclaimed),  # by email
                make_result(),  # role insert
            ]
        )

        profile = await ProfileService(db_session).get_or_create_for_user(identity)

        assert profile is unclaimed
        assert unclaimed.user_id == "user-123"
        db_session.commit.assert_awaited_once()

    async def test_creates_profile_without_access(self, db_session, identity):
        db_session.execute = AsyncMock(return_value=make_result(scalar=None))

        profile = await ProfileService(db_session).get_or_create_for_user(identity)

        assert isinstance(profile, Profile)
        assert profile.has_access is False
        assert profile.email == "cliente@example.com"
        added = [call.args[0] for call in db_session.add.call_args_list]
        roles = [obj for obj in added if isinstance(obj, UserRole)]
        assert [r.role for r in roles] == [Role.USER.value]

    async def test_creation_race_returns_winner(self, db_session, identity):
        winner = create_mock_profile()
        db_session.execute = AsyncMock(
            side_effect=[
                make_result(scalar=None),
                make_result(scalar=None),
                make_result(scalar=winner),
            ]
        )
        db_session.flush = AsyncMock(side_effect=IntegrityError("insert", {}, Exception("dup")))

        profile = await ProfileService(db_session).get_or_create_for_user(identity)

        assert profile is winner
        db_session.rollback.assert_awaited_once()

    async def test_creation_race_without_winner(self, db_session, identity):
        db_session.execute = AsyncMock(return_value=make_result(scalar=None))
        db_session.flush = AsyncMock(side_effect=IntegrityError("insert", {}, Exception("dup")))

        with pytest.raises(WriteVerificationError):
            await ProfileService(db_session).get_or_create_for_user(identity)


class TestProvision:
    async def test_existing_email_conflicts(self, db_session):
        db_session.execute = AsyncMock(return_value=make_result(scalar=create_mock_profile()))

        with pytest.raises(ProfileConflictError):
            await ProfileService(db_session).provision("cliente@example.com", "Cliente")

    async def test_provisioned_profile_is_unclaimed(self, db_session):
        partner_id = uuid4()

        profile = await ProfileService(db_session).provision(
            " Novo@Example.com", "Novo", whatsapp="11987654321", partner_id=partner_id
        )

        assert profile.user_id is None
        assert profile.email == "novo@example.com"
        assert profile.partner_id == partner_id
        db_session.commit.assert_not_called()


class TestRoles:
    async def test_unclaimed_profile_has_no_roles(self, db_session):
        assert await ProfileService(db_session).get_roles(None) == []
        db_session.execute.assert_not_called()

    async def test_get_roles(self, db_session):
        db_session.execute = AsyncMock(return_value=make_result(scalars=["user", "socio"]))

        roles = await ProfileService(db_session).get_roles("user-123")

        assert roles == [Role.USER, Role.SOCIO]

    async def test_set_roles_deduplicates(self, db_session):
        db_session.get = AsyncMock(return_value=create_mock_profile())

        roles = await ProfileService(db_session).set_roles(
            uuid4(), [Role.ADMIN, Role.USER, Role.ADMIN]
        )

        assert roles == [Role.ADMIN, Role.USER]
        assert db_session.add.call_count == 2
        db_session.commit.assert_awaited_once()

    async def test_set_roles_on_unclaimed_profile(self, db_session):
        db_session.get = AsyncMock(return_value=create_mock_profile(user_id=None))

        with pytest.raises(ValidationError):
            await ProfileService(db_session).set_roles(uuid4(), [Role.USER])

    async def test_missing_profile(self, db_session):
        with pytest.raises(ProfileNotFoundError):
            await ProfileService(db_session).set_roles(uuid4(), [Role.USER])


class TestLookups:
    async def test_lock_missing_profile(self, db_session):
        with pytest.raises(ProfileNotFoundError):
            await ProfileService(db_session).lock(uuid4())

    async def test_search_returns_total(self, db_session):
        profiles = [create_mock_profile(), create_mock_profile()]
        db_session.execute = AsyncMock(
            side_effect=[make_result(scalar=7), make_result(scalars=profiles)]
        )

        found, total = await ProfileService(db_session).search("cliente", limit=2)

        assert found == profiles
        assert total == 7

    def test_normalize_email(self):
        assert normalize_email("  Foo@Bar.COM ") == "foo@bar.com"
