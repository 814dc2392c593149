"""
Tests for the access rules.

Expiration extension, admin adjustments, effective access and display labels.
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
from hypothesis import given
from hypothesis import strategies as st

from jovitools.models.api import AccessStatus
from jovitools.models.domain import AccessState
from jovitools.services.access_rules import (
    adjust_expiration,
    days_remaining,
    describe_access,
    diff_grants,
    extend_expiration,
    is_effective_access,
    mask_email,
    mask_whatsapp,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

# ============================================================================
# Hypothesis Strategies
# ============================================================================

durations = st.integers(min_value=1, max_value=3650)
offsets = st.timedeltas(min_value=timedelta(days=-3650), max_value=timedelta(days=3650))
nows = st.datetimes(
    min_value=datetime(2020, 1, 1), max_value=datetime(2035, 1, 1), timezones=st.just(UTC)
)


class TestExtendExpiration:
    """Tests for extend_expiration."""

    def test_active_user_stacks_on_remaining_time(self):
        """Expiry now+10d extended by 5d gives now+15d."""
        state = AccessState(has_access=True, access_expires_at=NOW + timedelta(days=10))
        assert extend_expiration(state, 5, NOW) == NOW + timedelta(days=15)

    def test_lapsed_user_restarts_from_now(self):
        """Expiry now-3d extended by 5d gives now+5d."""
        state = AccessState(has_access=True, access_expires_at=NOW - timedelta(days=3))
        assert extend_expiration(state, 5, NOW) == NOW + timedelta(days=5)

    def test_lifetime_grant_returns_none(self):
        """duration None means lifetime whatever the prior state."""
        state = AccessState(has_access=True, access_expires_at=NOW + timedelta(days=10))
        assert extend_expiration(state, None, NOW) is None

    def test_blocked_user_with_future_expiry_restarts_from_now(self):
        """A closed gate does not count as remaining time."""
        state = AccessState(has_access=False, access_expires_at=NOW + timedelta(days=10))
        assert extend_expiration(state, 30, NOW) == NOW + timedelta(days=30)

    def test_never_granted_starts_from_now(self):
        state = AccessState(has_access=False, access_expires_at=None)
        assert extend_expiration(state, 30, NOW) == NOW + timedelta(days=30)

    def test_lifetime_user_given_days_becomes_dated(self):
        """A lifetime user extended by N days ends up at now+N."""
        state = AccessState(has_access=True, access_expires_at=None)
        assert extend_expiration(state, 30, NOW) == NOW + timedelta(days=30)

    def test_negative_duration_is_an_adjustment(self):
        state = AccessState(has_access=True, access_expires_at=NOW + timedelta(days=10))
        assert extend_expiration(state, -4, NOW) == NOW + timedelta(days=6)

    @given(now=nows, offset=offsets, days=durations)
    def test_result_never_before_now_plus_duration(self, now, offset, days):
        """Extending never gives less than a fresh grant."""
        state = AccessState(has_access=True, access_expires_at=now + offset)
        result = extend_expiration(state, days, now)
        assert result is not None
        assert result >= now + timedelta(days=days)

    @given(now=nows, offset=offsets, days=durations)
    def test_active_extension_is_exact_sum(self, now, offset, days):
        state = AccessState(has_access=True, access_expires_at=now + offset)
        result = extend_expiration(state, days, now)
        if offset > timedelta(0):
            assert result == now + offset + timedelta(days=days)
        else:
            assert result == now + timedelta(days=days)

    @given(now=nows, offset=st.one_of(st.none(), offsets), has_access=st.booleans())
    def test_lifetime_is_always_none(self, now, offset, has_access):
        expires = None if offset is None else now + offset
        state = AccessState(has_access=has_access, access_expires_at=expires)
        assert extend_expiration(state, None, now) is None


class TestAdjustExpiration:
    """Tests for adjust_expiration."""

    def test_large_removal_clamps_to_now(self):
        """-30d on expiry now+2d gives exactly now."""
        state = AccessState(has_access=True, access_expires_at=NOW + timedelta(days=2))
        assert adjust_expiration(state, -30, NOW) == NOW

    def test_partial_removal(self):
        state = AccessState(has_access=True, access_expires_at=NOW + timedelta(days=20))
        assert adjust_expiration(state, -5, NOW) == NOW + timedelta(days=15)

    def test_removal_from_lifetime_clamps_to_now(self):
        state = AccessState(has_access=True, access_expires_at=None)
        assert adjust_expiration(state, -5, NOW) == NOW

    def test_positive_follows_extension(self):
        state = AccessState(has_access=True, access_expires_at=NOW + timedelta(days=2))
        assert adjust_expiration(state, 3, NOW) == NOW + timedelta(days=5)

    @given(now=nows, offset=offsets, days=st.integers(min_value=-3650, max_value=-1))
    def test_removal_never_goes_below_now(self, now, offset, days):
        state = AccessState(has_access=True, access_expires_at=now + offset)
        result = adjust_expiration(state, days, now)
        assert result is not None
        assert result >= now


class TestEffectiveAccess:
    """Effective access over every has_access x expiry combination."""

    @pytest.mark.parametrize(
        "has_access,expires_at,expected",
        [
            (True, None, True),
            (True, NOW + timedelta(days=1), True),
            (True, NOW - timedelta(days=1), False),
            (False, None, False),
            (False, NOW + timedelta(days=1), False),
            (False, NOW - timedelta(days=1), False),
        ],
    )
    def test_combinations(self, has_access, expires_at, expected):
        assert is_effective_access(has_access, expires_at, NOW) is expected

    def test_expiry_exactly_now_is_not_effective(self):
        assert is_effective_access(True, NOW, NOW) is False

    @given(now=nows, offset=st.one_of(st.none(), offsets), has_access=st.booleans())
    def test_matches_definition(self, now, offset, has_access):
        expires = None if offset is None else now + offset
        expected = has_access and (expires is None or expires > now)
        assert is_effective_access(has_access, expires, now) is expected


class TestDescribeAccess:
    """Tests for status labels."""

    def test_blocked(self):
        summary = describe_access(AccessState(False, NOW + timedelta(days=3)), NOW)
        assert summary.status == AccessStatus.BLOCKED
        assert summary.days_remaining is None

    def test_lifetime(self):
        summary = describe_access(AccessState(True, None), NOW)
        assert summary.status == AccessStatus.LIFETIME

    def test_expired(self):
        summary = describe_access(AccessState(True, NOW - timedelta(hours=1)), NOW)
        assert summary.status == AccessStatus.EXPIRED
        assert summary.days_remaining == 0

    def test_active_expiring_soon(self):
        summary = describe_access(AccessState(True, NOW + timedelta(days=3)), NOW)
        assert summary.status == AccessStatus.ACTIVE
        assert summary.days_remaining == 3
        assert summary.expiring_soon is True

    def test_active_not_expiring_soon(self):
        summary = describe_access(AccessState(True, NOW + timedelta(days=30)), NOW)
        assert summary.expiring_soon is False

    def test_partial_day_rounds_up(self):
        assert days_remaining(NOW + timedelta(hours=1), NOW) == 1


class TestDiffGrants:
    """Tests for grant-set diffing."""

    def test_added_and_removed(self):
        a, b, c = uuid4(), uuid4(), uuid4()
        diff = diff_grants({a, b}, {b, c})
        assert diff.added == frozenset({c})
        assert diff.removed == frozenset({a})
        assert not diff.is_empty

    def test_same_set_is_empty(self):
        a = uuid4()
        assert diff_grants([a], [a]).is_empty

    @given(
        current=st.sets(st.uuids(), max_size=8),
        desired=st.sets(st.uuids(), max_size=8),
    )
    def test_applying_diff_yields_desired(self, current, desired):
        diff = diff_grants(current, desired)
        assert (current - diff.removed) | diff.added == desired
        assert not diff.added & diff.removed


class TestMasking:
    """Tests for partner panel masking."""

    def test_mask_email(self):
        assert mask_email("joao@example.com") == "jo***@example.com"

    def test_mask_short_email(self):
        assert mask_email("jo@example.com") == "j***@example.com"

    def test_mask_whatsapp_keeps_last_four(self):
        assert mask_whatsapp("+55 (11) 98765-4321") == "*********4321"

    def test_mask_whatsapp_none(self):
        assert mask_whatsapp(None) is None
