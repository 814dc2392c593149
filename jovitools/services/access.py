"""
Access Service - persists changes to the access gate.

Every mutation locks the profile row (SELECT FOR UPDATE) before applying the
rules in access_rules, so two concurrent grants for the same user serialize
instead of both stacking on the same stale expiry.
"""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import ColumnElement, delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from jovitools.db.models import Profile, UserRole
from jovitools.exceptions import ValidationError
from jovitools.models.domain import AccessState
from jovitools.services.access_rules import adjust_expiration, extend_expiration
from jovitools.services.profiles import ProfileService

logger = get_logger(__name__)

CHARGEBACK_BLOCK_REASON = "Chargeback detectado - acesso bloqueado automaticamente"


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class AccessService:
    """Grant, adjust and revoke access for a profile."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.profiles = ProfileService(session)

    async def grant(
        self,
        profile_id: UUID,
        duration_days: int | None,
        now: datetime | None = None,
        commit: bool = True,
    ) -> Profile:
        """
        Grant duration_days of access (None = lifetime) using the extension rule.

        Sets has_access=True and clears any block reason. With commit=False the
        caller owns the transaction (invite redemption, webhook).
        """
        now = now or _utc_now()
        profile = await self.profiles.lock(profile_id)

        state = AccessState(
            has_access=profile.has_access, access_expires_at=profile.access_expires_at
        )
        previous = profile.access_expires_at
        profile.access_expires_at = extend_expiration(state, duration_days, now)
        profile.has_access = True
        profile.block_reason = None
        await self.session.flush()

        logger.info(
            "access_granted",
            profile_id=str(profile_id),
            duration_days=duration_days,
            previous_expires_at=previous.isoformat() if previous else None,
            access_expires_at=(
                profile.access_expires_at.isoformat() if profile.access_expires_at else None
            ),
        )

        if commit:
            await self.session.commit()
        return profile

    async def adjust(
        self,
        profile_id: UUID,
        days: int | None = None,
        lifetime: bool = False,
        now: datetime | None = None,
    ) -> Profile:
        """
        Admin adjustment: +N days, -N days (clamped to now) or lifetime.

        Adding days or lifetime also opens the gate; removing days leaves
        has_access untouched.
        """
        now = now or _utc_now()
        if lifetime:
            return await self.grant(profile_id, None, now=now)
        if days is None:
            raise ValidationError("days is required unless lifetime is set")
        if days > 0:
            return await self.grant(profile_id, days, now=now)

        profile = await self.profiles.lock(profile_id)
        state = AccessState(
            has_access=profile.has_access, access_expires_at=profile.access_expires_at
        )
        profile.access_expires_at = adjust_expiration(state, days, now)
        await self.session.commit()

        logger.info(
            "access_reduced",
            profile_id=str(profile_id),
            days=days,
            access_expires_at=profile.access_expires_at.isoformat(),
        )
        return profile

    async def set_access_flag(
        self,
        profile_id: UUID,
        has_access: bool,
        block_reason: str | None = None,
        commit: bool = True,
    ) -> Profile:
        """Flip the master gate. Opening it clears the block reason."""
        profile = await self.profiles.lock(profile_id)
        profile.has_access = has_access
        profile.block_reason = None if has_access else block_reason
        await self.session.flush()

        logger.info(
            "access_flag_set",
            profile_id=str(profile_id),
            has_access=has_access,
            block_reason=profile.block_reason,
        )

        if commit:
            await self.session.commit()
        return profile

    async def revoke(
        self, profile_id: UUID, block_reason: str | None = None, commit: bool = True
    ) -> Profile:
        """Close the gate without deleting anything."""
        return await self.set_access_flag(
            profile_id, has_access=False, block_reason=block_reason, commit=commit
        )

    async def purge_without_access(self, dry_run: bool = False) -> int:
        """Delete every profile whose gate is closed. Admins and partners are kept."""
        return await self._purge(Profile.has_access.is_(False), "without_access", dry_run)

    async def purge_expired(self, now: datetime | None = None, dry_run: bool = False) -> int:
        """Delete every profile whose expiry has passed. Admins and partners are kept."""
        now = now or _utc_now()
        condition = Profile.access_expires_at.is_not(None) & (Profile.access_expires_at < now)
        return await self._purge(condition, "expired", dry_run)

    async def _purge(self, condition: ColumnElement[bool], reason: str, dry_run: bool) -> int:
        privileged = select(UserRole.user_id).where(UserRole.role.in_(("admin", "socio")))
        candidates = select(Profile.id, Profile.user_id).where(
            condition,
            (Profile.user_id.is_(None)) | (Profile.user_id.not_in(privileged)),
        )
        rows = (await self.session.execute(candidates)).all()
        if dry_run or not rows:
            logger.info("profiles_purge_planned", reason=reason, count=len(rows), dry_run=dry_run)
            return len(rows)

        profile_ids = [row.id for row in rows]
        user_ids = [row.user_id for row in rows if row.user_id is not None]
        if user_ids:
            await self.session.execute(delete(UserRole).where(UserRole.user_id.in_(user_ids)))
        await self.session.execute(delete(Profile).where(Profile.id.in_(profile_ids)))
        await self.session.commit()

        logger.info("profiles_purged", reason=reason, count=len(profile_ids))
        return len(profile_ids)
