"""
Partner Service - sócios provisioning and managing their own client accounts.

A partner's clients are profiles whose partner_id is the partner's profile id.
Every client starts with access for the chosen plan and every platform granted.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from jovitools.config import settings
from jovitools.db.models import Profile
from jovitools.exceptions import AccessDeniedError, PartnerLimitError, ValidationError
from jovitools.models.api import PARTNER_PLAN_DAY_OPTIONS
from jovitools.models.domain import AccessState, AccessSummary
from jovitools.services.access import AccessService
from jovitools.services.access_rules import describe_access, mask_email, mask_whatsapp
from jovitools.services.grants import GrantService
from jovitools.services.profiles import ProfileService

logger = get_logger(__name__)


@dataclass(frozen=True)
class PartnerClientView:
    """A client as its partner may see it."""

    profile_id: UUID
    name: str | None
    masked_email: str
    masked_whatsapp: str | None
    has_access: bool
    access_expires_at: datetime | None
    access: AccessSummary
    created_at: datetime


def _validate_plan(plan_days: int) -> None:
    if plan_days not in PARTNER_PLAN_DAY_OPTIONS:
        raise ValidationError(f"plan_days must be one of {PARTNER_PLAN_DAY_OPTIONS}")


class PartnerService:
    """Client provisioning bounded by partner_max_clients."""

    def __init__(self, session: AsyncSession, max_clients: int | None = None) -> None:
        self.session = session
        self.max_clients = max_clients if max_clients is not None else settings.partner_max_clients
        self.profiles = ProfileService(session)
        self.access = AccessService(session)
        self.grants = GrantService(session)

    async def count_clients(self, partner_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(Profile).where(Profile.partner_id == partner_id)
        )
        return result.scalar_one()

    async def create_client(
        self,
        partner_id: UUID,
        email: str,
        name: str,
        plan_days: int,
        whatsapp: str | None = None,
        now: datetime | None = None,
    ) -> Profile:
        """
        Provision a client profile with plan_days of access and every platform.

        The profile is unclaimed until the client signs in with the same email.
        Role "user" is attached at claim time.

        Raises:
            ValidationError: plan_days not offered
            PartnerLimitError: Partner already has max_clients clients
            ProfileConflictError: Email already registered
        """
        _validate_plan(plan_days)
        now = now or datetime.now(UTC)

        # Serialize concurrent provisioning by the same partner
        await self.profiles.lock(partner_id)
        current = await self.count_clients(partner_id)
        if current >= self.max_clients:
            await self.session.rollback()
            logger.warning(
                "partner_client_limit_reached",
                partner_id=str(partner_id),
                limit=self.max_clients,
            )
            raise PartnerLimitError(partner_id, self.max_clients)

        try:
            profile = await self.profiles.provision(
                email=email, name=name, whatsapp=whatsapp, partner_id=partner_id
            )
            await self.access.grant(profile.id, plan_days, now=now, commit=False)
            granted = await self.grants.grant_all(profile.id, commit=False)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            "partner_client_created",
            partner_id=str(partner_id),
            profile_id=str(profile.id),
            plan_days=plan_days,
            platforms=granted,
        )
        return profile

    async def list_clients(
        self, partner_id: UUID, now: datetime | None = None
    ) -> list[PartnerClientView]:
        """Partner's clients newest first, contact details masked."""
        now = now or datetime.now(UTC)
        result = await self.session.execute(
            select(Profile)
            .where(Profile.partner_id == partner_id)
            .order_by(Profile.created_at.desc())
        )
        return [self._to_view(profile, now) for profile in result.scalars().all()]

    async def set_client_access(
        self, partner_id: UUID, client_id: UUID, has_access: bool, is_admin: bool = False
    ) -> Profile:
        """
        Block or unblock one of the partner's clients.

        Raises:
            ProfileNotFoundError: Client doesn't exist
            AccessDeniedError: Client belongs to another partner
        """
        await self._ensure_owned(partner_id, client_id, is_admin)
        profile = await self.access.set_access_flag(client_id, has_access)
        logger.info(
            "partner_client_access_set",
            partner_id=str(partner_id),
            profile_id=str(client_id),
            has_access=has_access,
        )
        return profile

    async def renew_client(
        self,
        partner_id: UUID,
        client_id: UUID,
        plan_days: int,
        is_admin: bool = False,
        now: datetime | None = None,
    ) -> Profile:
        """
        Extend a client by a plan through the extension rule.

        Raises:
            ValidationError: plan_days not offered
            ProfileNotFoundError: Client doesn't exist
            AccessDeniedError: Client belongs to another partner
        """
        _validate_plan(plan_days)
        await self._ensure_owned(partner_id, client_id, is_admin)
        profile = await self.access.grant(client_id, plan_days, now=now)
        logger.info(
            "partner_client_renewed",
            partner_id=str(partner_id),
            profile_id=str(client_id),
            plan_days=plan_days,
        )
        return profile

    async def _ensure_owned(self, partner_id: UUID, client_id: UUID, is_admin: bool) -> None:
        client = await self.profiles.get(client_id)
        if client.partner_id != partner_id and not is_admin:
            logger.warning(
                "partner_client_access_denied",
                partner_id=str(partner_id),
                profile_id=str(client_id),
            )
            raise AccessDeniedError("Client belongs to another partner")

    @staticmethod
    def _to_view(profile: Profile, now: datetime) -> PartnerClientView:
        state = AccessState(
            has_access=profile.has_access, access_expires_at=profile.access_expires_at
        )
        return PartnerClientView(
            profile_id=profile.id,
            name=profile.name,
            masked_email=mask_email(profile.email),
            masked_whatsapp=mask_whatsapp(profile.whatsapp),
            has_access=profile.has_access,
            access_expires_at=profile.access_expires_at,
            access=describe_access(state, now),
            created_at=profile.created_at,
        )
