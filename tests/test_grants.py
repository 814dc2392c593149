"""
Tests for GrantService and AccessService.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from sqlalchemy.dialects import postgresql

from conftest import create_mock_profile, make_result
from jovitools.exceptions import PlatformNotFoundError, ProfileNotFoundError, ValidationError
from jovitools.services.access import CHARGEBACK_BLOCK_REASON, AccessService
from jovitools.services.grants import GrantService

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class TestReplaceGrants:
    """Tests for replace_grants."""

    async def test_diff_applied_in_one_transaction(self, db_session):
        keep, drop, new = uuid4(), uuid4(), uuid4()
        profile_id = uuid4()
        db_session.execute = AsyncMock(
            side_effect=[
                make_result(scalars=[keep, new]),  # platforms exist
                make_result(scalar=profile_id),  # profile locked
                make_result(scalars=[keep, drop]),  # current grants
                make_result(),  # delete
                make_result(rowcount=1),  # insert
            ]
        )

        diff = await GrantService(db_session).replace_grants(profile_id, [keep, new])

        assert diff.added == frozenset({new})
        assert diff.removed == frozenset({drop})
        db_session.commit.assert_awaited_once()

    async def test_no_change_skips_writes(self, db_session):
        keep = uuid4()
        db_session.execute = AsyncMock(
            side_effect=[
                make_result(scalars=[keep]),
                make_result(scalar=uuid4()),
                make_result(scalars=[keep]),
            ]
        )

        diff = await GrantService(db_session).replace_grants(uuid4(), [keep])

        assert diff.is_empty
        assert db_session.execute.await_count == 3

    async def test_unknown_platform(self, db_session):
        db_session.execute = AsyncMock(return_value=make_result(scalars=[]))

        with pytest.raises(PlatformNotFoundError):
            await GrantService(db_session).replace_grants(uuid4(), [uuid4()])
        db_session.commit.assert_not_awaited()

    async def test_unknown_profile(self, db_session):
        db_session.execute = AsyncMock(return_value=make_result(scalar=None))

        with pytest.raises(ProfileNotFoundError):
            await GrantService(db_session).replace_grants(uuid4(), [])

    async def test_add_grants_empty_is_noop(self, db_session):
        assert await GrantService(db_session).add_grants(uuid4(), []) == 0
        db_session.execute.assert_not_awaited()

    async def test_add_grants_skips_deleted_platforms(self, db_session):
        """Ids are granted through a SELECT on platforms, so stale ids insert nothing."""
        db_session.execute = AsyncMock(return_value=make_result(rowcount=1))
        live, deleted = uuid4(), uuid4()

        inserted = await GrantService(db_session).add_grants(uuid4(), [live, deleted, live])

        assert inserted == 1
        sql = str(
            db_session.execute.await_args.args[0].compile(dialect=postgresql.dialect())
        )
        assert sql.startswith("INSERT INTO platform_grants (profile_id, platform_id) SELECT")
        assert "FROM platforms" in sql
        assert "platforms.id IN" in sql
        assert "ON CONFLICT ON CONSTRAINT uq_platform_grants_profile_platform DO NOTHING" in sql


class TestAccessService:
    """Tests for AccessService."""

    async def test_grant_extends_active_user(self, db_session):
        profile = create_mock_profile(access_expires_at=NOW + timedelta(days=10))
        db_session.execute = AsyncMock(return_value=make_result(scalar=profile))

        await AccessService(db_session).grant(profile.id, 5, now=NOW)

        assert profile.access_expires_at == NOW + timedelta(days=15)
        assert profile.has_access is True
        assert profile.block_reason is None
        db_session.commit.assert_awaited_once()

    async def test_grant_without_commit(self, db_session):
        profile = create_mock_profile(has_access=False)
        db_session.execute = AsyncMock(return_value=make_result(scalar=profile))

        await AccessService(db_session).grant(profile.id, 30, now=NOW, commit=False)

        assert profile.access_expires_at == NOW + timedelta(days=30)
        db_session.commit.assert_not_awaited()

    async def test_adjust_negative_clamps_to_now(self, db_session):
        profile = create_mock_profile(access_expires_at=NOW + timedelta(days=2))
        db_session.execute = AsyncMock(return_value=make_result(scalar=profile))

        await AccessService(db_session).adjust(profile.id, days=-30, now=NOW)

        assert profile.access_expires_at == NOW

    async def test_adjust_lifetime(self, db_session):
        profile = create_mock_profile(access_expires_at=NOW + timedelta(days=2))
        db_session.execute = AsyncMock(return_value=make_result(scalar=profile))

        await AccessService(db_session).adjust(profile.id, lifetime=True, now=NOW)

        assert profile.access_expires_at is None

    async def test_adjust_requires_days(self, db_session):
        with pytest.raises(ValidationError):
            await AccessService(db_session).adjust(uuid4(), now=NOW)

    async def test_revoke_with_reason(self, db_session):
        profile = create_mock_profile()
        db_session.execute = AsyncMock(return_value=make_result(scalar=profile))

        await AccessService(db_session).revoke(profile.id, block_reason=CHARGEBACK_BLOCK_REASON)

        assert profile.has_access is False
        assert profile.block_reason == CHARGEBACK_BLOCK_REASON

    async def test_opening_gate_clears_reason(self, db_session):
        profile = create_mock_profile(has_access=False, block_reason="Bloqueado")
        db_session.execute = AsyncMock(return_value=make_result(scalar=profile))

        await AccessService(db_session).set_access_flag(profile.id, True, block_reason="x")

        assert profile.block_reason is None

    async def test_purge_dry_run_counts_only(self, db_session):
        db_session.execute = AsyncMock(
            return_value=make_result(rows=[(uuid4(), "u1"), (uuid4(), None)])
        )

        assert await AccessService(db_session).purge_expired(now=NOW, dry_run=True) == 2
        db_session.commit.assert_not_awaited()
