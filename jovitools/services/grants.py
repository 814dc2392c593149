"""
Grant Service - which platforms a profile may use.

A user's grant set is replaced as a diff (insert added, delete removed) inside
one transaction, so a failure half-way never leaves the user with no grants.
"""

from collections.abc import Iterable
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import delete, literal, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from jovitools.db.models import Platform, PlatformGrant, Profile
from jovitools.exceptions import PlatformNotFoundError, ProfileNotFoundError
from jovitools.models.domain import GrantDiff
from jovitools.services.access_rules import diff_grants

logger = get_logger(__name__)


class GrantService:
    """Platform grants for profiles."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def granted_platform_ids(self, profile_id: UUID) -> set[UUID]:
        result = await self.session.execute(
            select(PlatformGrant.platform_id).where(PlatformGrant.profile_id == profile_id)
        )
        return set(result.scalars().all())

    async def all_platform_ids(self) -> list[UUID]:
        result = await self.session.execute(select(Platform.id))
        return list(result.scalars().all())

    async def ensure_platforms_exist(self, platform_ids: Iterable[UUID]) -> None:
        """
        Raises:
            PlatformNotFoundError: Any of the ids is unknown
        """
        wanted = set(platform_ids)
        if not wanted:
            return
        result = await self.session.execute(select(Platform.id).where(Platform.id.in_(wanted)))
        missing = wanted - set(result.scalars().all())
        if missing:
            raise PlatformNotFoundError(sorted(missing, key=str))

    async def add_grants(
        self, profile_id: UUID, platform_ids: Iterable[UUID], commit: bool = True
    ) -> int:
        """
        Insert grants, ignoring ones the profile already has. Returns rows inserted.

        Only ids that still name a platform are granted; a platform deleted after
        an invite listed it is skipped.
        """
        ids = list(dict.fromkeys(platform_ids))
        if not ids:
            return 0
        existing = select(literal(profile_id, Profile.id.type), Platform.id).where(
            Platform.id.in_(ids)
        )
        stmt = (
            pg_insert(PlatformGrant)
            .from_select(["profile_id", "platform_id"], existing)
            .on_conflict_do_nothing(constraint="uq_platform_grants_profile_platform")
        )
        result = await self.session.execute(stmt)
        if commit:
            await self.session.commit()
        return result.rowcount

    async def grant_all(self, profile_id: UUID, commit: bool = True) -> int:
        """Grant every currently defined platform."""
        return await self.add_grants(profile_id, await self.all_platform_ids(), commit=commit)

    async def replace_grants(self, profile_id: UUID, platform_ids: Iterable[UUID]) -> GrantDiff:
        """
        Make the profile's grant set exactly platform_ids.

        Concurrent admin edits are still last-write-wins; the row lock on the
        profile only serializes them.
        """
        desired = set(platform_ids)
        await self.ensure_platforms_exist(desired)
        locked = await self.session.execute(
            select(Profile.id).where(Profile.id == profile_id).with_for_update()
        )
        if locked.scalar_one_or_none() is None:
            raise ProfileNotFoundError(profile_id)

        diff = diff_grants(await self.granted_platform_ids(profile_id), desired)
        if diff.is_empty:
            await self.session.commit()
            return diff

        if diff.removed:
            await self.session.execute(
                delete(PlatformGrant).where(
                    PlatformGrant.profile_id == profile_id,
                    PlatformGrant.platform_id.in_(diff.removed),
                )
            )
        if diff.added:
            await self.add_grants(profile_id, diff.added, commit=False)
        await self.session.commit()

        logger.info(
            "grants_replaced",
            profile_id=str(profile_id),
            added=sorted(str(p) for p in diff.added),
            removed=sorted(str(p) for p in diff.removed),
        )
        return diff

    async def distribute_to_active_users(
        self, platform_id: UUID, now: datetime | None = None, commit: bool = True
    ) -> int:
        """Grant one platform to every profile with effective access."""
        now = now or datetime.now(UTC)
        active = select(Profile.id, literal(platform_id, Platform.id.type)).where(
            Profile.has_access.is_(True),
            (Profile.access_expires_at.is_(None)) | (Profile.access_expires_at > now),
        )
        stmt = (
            pg_insert(PlatformGrant)
            .from_select(["profile_id", "platform_id"], active)
            .on_conflict_do_nothing(constraint="uq_platform_grants_profile_platform")
        )
        result = await self.session.execute(stmt)
        if commit:
            await self.session.commit()
        logger.info("platform_distributed", platform_id=str(platform_id), grants=result.rowcount)
        return result.rowcount
