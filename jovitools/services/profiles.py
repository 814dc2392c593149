"""
Profile Service - portal users, their roles and the access gate.

Profiles are created on first sign-in with has_access=False. A profile
provisioned ahead of time (by a partner or admin) is claimed by the first
sign-in that presents the same email.
"""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import delete, func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from jovitools.db.models import Profile, UserRole
from jovitools.exceptions import (
    ProfileConflictError,
    ProfileNotFoundError,
    ValidationError,
    WriteVerificationError,
)
from jovitools.models.api import Role
from jovitools.models.domain import AuthenticatedUser

logger = get_logger(__name__)


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class ProfileService:
    """Profile lookup, provisioning and role management."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_or_create_for_user(self, user: AuthenticatedUser) -> Profile:
        """
        Resolve the profile for an authenticated identity.

        1. Profile already linked to user_id -> return it
        2. Unclaimed profile with the same email -> link it
        3. Otherwise create a fresh profile (no access) with role "user"
        """
        profile = await self._find_by_user_id(user.user_id)
        if profile is not None:
            return profile

        email = normalize_email(user.email)
        unclaimed = await self.find_by_email(email)
        if unclaimed is not None and unclaimed.user_id is None:
            unclaimed.user_id = user.user_id
            await self.session.execute(
                pg_insert(UserRole)
                .values(user_id=user.user_id, role=Role.USER.value)
                .on_conflict_do_nothing(constraint="uq_user_roles_user_role")
            )
            await self.session.commit()
            logger.info("profile_claimed", profile_id=str(unclaimed.id), user_id=user.user_id)
            return unclaimed

        new_profile = Profile(user_id=user.user_id, email=email, has_access=False)
        self.session.add(new_profile)
        self.session.add(UserRole(user_id=user.user_id, role=Role.USER.value))

        try:
            await self.session.flush()
            await self.session.commit()
        except IntegrityError as e:
            # Race condition - another request for the same user won
            logger.warning("profile_creation_integrity_error", error=str(e), user_id=user.user_id)
            await self.session.rollback()
            profile = await self._find_by_user_id(user.user_id)
            if profile is None:
                raise WriteVerificationError(f"Profile creation failed: {str(e)}") from e
            return profile

        logger.info("profile_created", profile_id=str(new_profile.id), user_id=user.user_id)
        return new_profile

    async def provision(
        self,
        email: str,
        name: str | None,
        whatsapp: str | None = None,
        partner_id: UUID | None = None,
    ) -> Profile:
        """
        Create an unclaimed profile ahead of the user's first sign-in.

        Raises:
            ProfileConflictError: A profile already exists for the email
        """
        email = normalize_email(email)
        if await self.find_by_email(email) is not None:
            raise ProfileConflictError(email)

        profile = Profile(
            email=email,
            name=name,
            whatsapp=whatsapp,
            partner_id=partner_id,
            has_access=False,
        )
        self.session.add(profile)
        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            raise ProfileConflictError(email) from e
        return profile

    async def get(self, profile_id: UUID) -> Profile:
        """
        Get profile by id.

        Raises:
            ProfileNotFoundError: Profile doesn't exist
        """
        profile = await self.session.get(Profile, profile_id)
        if profile is None:
            raise ProfileNotFoundError(profile_id)
        return profile

    async def lock(self, profile_id: UUID) -> Profile:
        """
        Lock profile row for update (SELECT FOR UPDATE).

        Raises:
            ProfileNotFoundError: Profile doesn't exist
        """
        stmt = select(Profile).where(Profile.id == profile_id).with_for_update()
        result = await self.session.execute(stmt)
        profile = result.scalar_one_or_none()
        if profile is None:
            raise ProfileNotFoundError(profile_id)
        return profile

    async def find_by_email(self, email: str) -> Profile | None:
        """Case-insensitive email lookup."""
        stmt = select(Profile).where(func.lower(Profile.email) == normalize_email(email))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def search(
        self, query: str | None = None, limit: int = 50, offset: int = 0
    ) -> tuple[list[Profile], int]:
        """List profiles newest first, optionally filtered by email/name."""
        stmt = select(Profile)
        count_stmt = select(func.count()).select_from(Profile)
        if query:
            pattern = f"%{query.strip().lower()}%"
            condition = or_(
                func.lower(Profile.email).like(pattern),
                func.lower(func.coalesce(Profile.name, "")).like(pattern),
            )
            stmt = stmt.where(condition)
            count_stmt = count_stmt.where(condition)

        total = (await self.session.execute(count_stmt)).scalar_one()
        result = await self.session.execute(
            stmt.order_by(Profile.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all()), total

    async def get_roles(self, user_id: str | None) -> list[Role]:
        """Roles held by an identity provider subject (none for unclaimed profiles)."""
        if user_id is None:
            return []
        result = await self.session.execute(
            select(UserRole.role).where(UserRole.user_id == user_id)
        )
        return [Role(role) for role in result.scalars().all()]

    async def set_roles(self, profile_id: UUID, roles: list[Role]) -> list[Role]:
        """
        Replace a user's roles.

        Raises:
            ProfileNotFoundError: Profile doesn't exist
            ValidationError: Profile was never claimed (no identity to attach roles to)
        """
        profile = await self.get(profile_id)
        if profile.user_id is None:
            raise ValidationError(f"Profile {profile_id} has not signed in yet")

        wanted = sorted(set(roles), key=lambda r: r.value)
        await self.session.execute(delete(UserRole).where(UserRole.user_id == profile.user_id))
        for role in wanted:
            self.session.add(UserRole(user_id=profile.user_id, role=role.value))
        await self.session.commit()

        logger.info(
            "roles_updated", profile_id=str(profile_id), roles=[r.value for r in wanted]
        )
        return wanted

    async def delete(self, profile_id: UUID) -> None:
        """
        Explicit admin deletion - the only way a profile row goes away.

        Grants, coins and access logs cascade.
        """
        profile = await self.get(profile_id)
        if profile.user_id is not None:
            await self.session.execute(delete(UserRole).where(UserRole.user_id == profile.user_id))
        await self.session.delete(profile)
        await self.session.commit()
        logger.info("profile_deleted", profile_id=str(profile_id), email=profile.email)

    async def _find_by_user_id(self, user_id: str) -> Profile | None:
        result = await self.session.execute(select(Profile).where(Profile.user_id == user_id))
        return result.scalar_one_or_none()
