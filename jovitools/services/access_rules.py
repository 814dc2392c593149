"""
Access Rules - pure date arithmetic for the access gate.

No I/O here. Callers lock the profile row and persist the result in the
same transaction as any related grant change.
"""

import math
from collections.abc import Iterable
from datetime import datetime, timedelta
from uuid import UUID

from jovitools.models.api import AccessStatus
from jovitools.models.domain import AccessState, AccessSummary, GrantDiff

EXPIRING_SOON_DAYS = 7


def is_effective_access(
    has_access: bool, access_expires_at: datetime | None, now: datetime
) -> bool:
    """has_access AND (lifetime OR expiry in the future)."""
    state = AccessState(has_access=has_access, access_expires_at=access_expires_at)
    return state.is_effective(now)


def extend_expiration(
    state: AccessState, duration_days: int | None, now: datetime
) -> datetime | None:
    """
    Compute the new expiration after granting duration_days of access.

    - None means lifetime: the result is None whatever the prior state.
    - Active with a future expiry: stack on top of the remaining time.
    - Anything else (no access, expired, lifetime, never granted): start from now.
    - Negative durations are adjustments and go through adjust_expiration.
    """
    if duration_days is None:
        return None
    if duration_days < 0:
        return adjust_expiration(state, duration_days, now)

    delta = timedelta(days=duration_days)
    if state.is_effective(now) and state.access_expires_at is not None:
        return state.access_expires_at + delta
    return now + delta


def adjust_expiration(state: AccessState, delta_days: int, now: datetime) -> datetime | None:
    """
    Admin "add/remove N days".

    Positive deltas follow extend_expiration. Negative deltas subtract from the
    current expiry (from now when there is none) and never go below now.
    """
    if delta_days >= 0:
        return extend_expiration(state, delta_days, now)

    base = state.access_expires_at or now
    return max(base + timedelta(days=delta_days), now)


def days_remaining(access_expires_at: datetime, now: datetime) -> int:
    """Whole days left, rounded up; 0 once expired."""
    seconds = (access_expires_at - now).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / 86400)


def describe_access(state: AccessState, now: datetime) -> AccessSummary:
    """Status label for dashboards and the partner panel."""
    if not state.has_access:
        return AccessSummary(status=AccessStatus.BLOCKED, days_remaining=None, expiring_soon=False)
    if state.access_expires_at is None:
        return AccessSummary(status=AccessStatus.LIFETIME, days_remaining=None, expiring_soon=False)
    if state.access_expires_at <= now:
        return AccessSummary(status=AccessStatus.EXPIRED, days_remaining=0, expiring_soon=False)

    remaining = days_remaining(state.access_expires_at, now)
    return AccessSummary(
        status=AccessStatus.ACTIVE,
        days_remaining=remaining,
        expiring_soon=remaining <= EXPIRING_SOON_DAYS,
    )


def diff_grants(current: Iterable[UUID], desired: Iterable[UUID]) -> GrantDiff:
    """Platforms to insert and delete to turn current into desired."""
    current_set = frozenset(current)
    desired_set = frozenset(desired)
    return GrantDiff(added=desired_set - current_set, removed=current_set - desired_set)


def mask_email(email: str) -> str:
    """jo***@example.com"""
    local, _, domain = email.partition("@")
    visible = local[:2] if len(local) > 2 else local[:1]
    return f"{visible}***@{domain}"


def mask_whatsapp(whatsapp: str | None) -> str | None:
    """Keep only the last four digits."""
    if not whatsapp:
        return None
    digits = "".join(ch for ch in whatsapp if ch.isdigit())
    if len(digits) <= 4:
        return "*" * len(digits)
    return "*" * (len(digits) - 4) + digits[-4:]
