"""
Platform Service - platforms, their shared credentials, and the user's view of them.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from jovitools.db.models import Invite, Platform, PlatformCredential, Profile
from jovitools.exceptions import CredentialNotFoundError, PlatformNotFoundError
from jovitools.services.access_rules import is_effective_access
from jovitools.services.grants import GrantService

logger = get_logger(__name__)


@dataclass(frozen=True)
class UserPlatformView:
    """A platform as one user sees it."""

    platform: Platform
    granted: bool
    credentials: tuple[PlatformCredential, ...]


class PlatformService:
    """Platform and credential CRUD."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.grants = GrantService(session)

    async def list_platforms(self) -> list[tuple[Platform, int]]:
        """All platforms with their credential counts, alphabetically."""
        stmt = (
            select(Platform, func.count(PlatformCredential.id))
            .outerjoin(PlatformCredential, PlatformCredential.platform_id == Platform.id)
            .group_by(Platform.id)
            .order_by(Platform.name)
        )
        result = await self.session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    async def get_platform(self, platform_id: UUID) -> Platform:
        """
        Raises:
            PlatformNotFoundError: Platform doesn't exist
        """
        platform = await self.session.get(Platform, platform_id)
        if platform is None:
            raise PlatformNotFoundError([platform_id])
        return platform

    async def create_platform(
        self,
        name: str,
        category: str | None = None,
        icon_url: str | None = None,
        access_url: str | None = None,
        distribute_to_active_users: bool = False,
    ) -> Platform:
        """Create a platform, optionally granting it to every user with effective access."""
        platform = Platform(name=name, category=category, icon_url=icon_url, access_url=access_url)
        self.session.add(platform)
        await self.session.flush()

        distributed = 0
        if distribute_to_active_users:
            distributed = await self.grants.distribute_to_active_users(platform.id, commit=False)
        await self.session.commit()

        logger.info(
            "platform_created",
            platform_id=str(platform.id),
            name=name,
            distributed_grants=distributed,
        )
        return platform

    async def update_platform(
        self,
        platform_id: UUID,
        name: str,
        category: str | None,
        icon_url: str | None,
        access_url: str | None,
    ) -> Platform:
        platform = await self.get_platform(platform_id)
        platform.name = name
        platform.category = category
        platform.icon_url = icon_url
        platform.access_url = access_url
        await self.session.commit()
        logger.info("platform_updated", platform_id=str(platform_id))
        return platform

    async def delete_platform(self, platform_id: UUID) -> None:
        """Delete a platform; its credentials and grants cascade, invites drop the id."""
        platform = await self.get_platform(platform_id)
        await self.session.execute(
            update(Invite)
            .where(Invite.platform_ids.any(platform_id))
            .values(platform_ids=func.array_remove(Invite.platform_ids, platform_id))
        )
        await self.session.delete(platform)
        await self.session.commit()
        logger.info("platform_deleted", platform_id=str(platform_id), name=platform.name)

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    async def list_credentials(self, platform_id: UUID) -> list[PlatformCredential]:
        await self.get_platform(platform_id)
        result = await self.session.execute(
            select(PlatformCredential)
            .where(PlatformCredential.platform_id == platform_id)
            .order_by(PlatformCredential.created_at)
        )
        return list(result.scalars().all())

    async def add_credential(
        self, platform_id: UUID, login: str, password: str
    ) -> PlatformCredential:
        await self.get_platform(platform_id)
        credential = PlatformCredential(platform_id=platform_id, login=login, password=password)
        self.session.add(credential)
        await self.session.commit()
        logger.info(
            "credential_created", platform_id=str(platform_id), credential_id=str(credential.id)
        )
        return credential

    async def update_credential(
        self, platform_id: UUID, credential_id: UUID, login: str, password: str
    ) -> PlatformCredential:
        credential = await self._get_credential(platform_id, credential_id)
        credential.login = login
        credential.password = password
        await self.session.commit()
        logger.info(
            "credential_updated", platform_id=str(platform_id), credential_id=str(credential_id)
        )
        return credential

    async def delete_credential(self, platform_id: UUID, credential_id: UUID) -> None:
        credential = await self._get_credential(platform_id, credential_id)
        await self.session.delete(credential)
        await self.session.commit()
        logger.info(
            "credential_deleted", platform_id=str(platform_id), credential_id=str(credential_id)
        )

    async def _get_credential(self, platform_id: UUID, credential_id: UUID) -> PlatformCredential:
        credential = await self.session.get(PlatformCredential, credential_id)
        if credential is None or credential.platform_id != platform_id:
            raise CredentialNotFoundError(credential_id)
        return credential

    # ------------------------------------------------------------------
    # User view
    # ------------------------------------------------------------------

    async def list_for_profile(
        self, profile: Profile, now: datetime | None = None
    ) -> tuple[bool, list[UserPlatformView]]:
        """
        Every platform with a granted flag.

        Credentials are only included when the platform is granted AND the
        profile has effective access - both gates must hold.
        """
        now = now or datetime.now(UTC)
        effective = is_effective_access(profile.has_access, profile.access_expires_at, now)
        granted_ids = await self.grants.granted_platform_ids(profile.id)

        platforms = [platform for platform, _ in await self.list_platforms()]
        credentials_by_platform: dict[UUID, list[PlatformCredential]] = {}
        usable = [p.id for p in platforms if p.id in granted_ids] if effective else []
        if usable:
            result = await self.session.execute(
                select(PlatformCredential).where(PlatformCredential.platform_id.in_(usable))
            )
            for credential in result.scalars().all():
                credentials_by_platform.setdefault(credential.platform_id, []).append(credential)

        views = [
            UserPlatformView(
                platform=platform,
                granted=platform.id in granted_ids,
                credentials=tuple(credentials_by_platform.get(platform.id, ())),
            )
            for platform in platforms
        ]
        return effective, views
