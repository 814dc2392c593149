"""
Invite Service - single-use codes that grant platforms plus an access duration.

State machine per code: active -> used (redeemed) or active -> expired (time based).
Expiry is evaluated lazily: before every redemption and before display.
The active -> used transition is a compare-and-swap UPDATE, so of two concurrent
redemptions of the same code only one ever gets a row back.
"""

import secrets
import string
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from jovitools.config import settings
from jovitools.db.models import Invite
from jovitools.exceptions import (
    DatabaseError,
    InviteAlreadyUsedError,
    InviteError,
    InviteExpiredError,
    InviteNotFoundError,
    ValidationError,
    WriteVerificationError,
)
from jovitools.models.api import InviteStatus
from jovitools.models.domain import RedemptionResult
from jovitools.observability.metrics import metrics
from jovitools.observability.tracing import trace_operation
from jovitools.services.access import AccessService
from jovitools.services.grants import GrantService

logger = get_logger(__name__)

# No 0/O/1/I to keep codes readable when typed by hand
CODE_ALPHABET = "".join(c for c in string.ascii_uppercase + string.digits if c not in "0O1I")
MAX_CODE_ATTEMPTS = 5


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def generate_invite_code(length: int | None = None) -> str:
    """Random code from CODE_ALPHABET."""
    length = length or settings.invite_code_length
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str) -> str:
    return code.strip().upper()


def effective_status(invite: Invite, now: datetime) -> InviteStatus:
    """Stored status, with active-but-past-expiry shown as expired."""
    status = InviteStatus(invite.status)
    if status == InviteStatus.ACTIVE and invite.expires_at < now:
        return InviteStatus.EXPIRED
    return status


class InviteService:
    """Invite creation, lookup and redemption."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def lookup(self, code: str) -> Invite:
        """
        Raises:
            InviteNotFoundError: No invite with this code
        """
        code = normalize_code(code)
        result = await self.session.execute(select(Invite).where(Invite.code == code))
        invite = result.scalar_one_or_none()
        if invite is None:
            raise InviteNotFoundError(code)
        return invite

    async def redeem(
        self, code: str, profile_id: UUID, now: datetime | None = None
    ) -> RedemptionResult:
        """
        Redeem a code for a profile.

        Order of refusals: NOT_FOUND, then EXPIRED (even while the stored status
        still reads active), then ALREADY_USED. On success the status flip, the
        platform grants and the access extension commit together.

        Raises:
            InviteNotFoundError, InviteExpiredError, InviteAlreadyUsedError
        """
        now = now or _utc_now()
        code = normalize_code(code)

        with trace_operation("invite_redemption", code=code, profile_id=profile_id):
            try:
                invite = await self.lookup(code)
                if invite.expires_at < now:
                    raise InviteExpiredError(code)
                if invite.status != InviteStatus.ACTIVE.value:
                    raise InviteAlreadyUsedError(code)

                claimed = await self.session.execute(
                    update(Invite)
                    .where(
                        Invite.code == code,
                        Invite.status == InviteStatus.ACTIVE.value,
                        Invite.expires_at >= now,
                    )
                    .values(status=InviteStatus.USED.value, used_by=profile_id, used_at=now)
                    .returning(Invite.platform_ids, Invite.access_days)
                )
                row = claimed.one_or_none()
                if row is None:
                    # Another redemption won the compare-and-swap
                    await self.session.rollback()
                    raise InviteAlreadyUsedError(code)
            except InviteError as exc:
                metrics.record_invite_redemption(exc.code.lower())
                logger.info("invite_redemption_refused", code=code, reason=exc.code)
                raise

            platform_ids = tuple(row.platform_ids or ())
            try:
                await GrantService(self.session).add_grants(profile_id, platform_ids, commit=False)
                profile = await AccessService(self.session).grant(
                    profile_id, row.access_days, now=now, commit=False
                )
                await self.session.commit()
            except Exception as exc:
                # Invite stays active if the grant could not be applied
                await self.session.rollback()
                metrics.record_invite_redemption("error")
                if isinstance(exc, SQLAlchemyError):
                    raise DatabaseError(f"Invite redemption failed: {exc}") from exc
                raise

        metrics.record_invite_redemption("success")
        logger.info(
            "invite_redeemed",
            code=code,
            profile_id=str(profile_id),
            access_days=row.access_days,
            platforms=len(platform_ids),
        )
        return RedemptionResult(
            code=code,
            access_days_granted=row.access_days,
            access_expires_at=profile.access_expires_at,
            platform_ids=platform_ids,
        )

    async def create(
        self,
        platform_ids: list[UUID],
        access_days: int | None,
        expires_in_days: int,
        created_by: UUID | None,
        recipient_name: str | None = None,
        recipient_email: str | None = None,
        now: datetime | None = None,
    ) -> Invite:
        """
        Create an active invite.

        Raises:
            ValidationError: No platforms selected
            PlatformNotFoundError: Unknown platform id
        """
        if not platform_ids:
            raise ValidationError("Select at least one platform")
        platform_ids = list(dict.fromkeys(platform_ids))
        await GrantService(self.session).ensure_platforms_exist(platform_ids)
        now = now or _utc_now()

        for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
            invite = Invite(
                code=generate_invite_code(),
                status=InviteStatus.ACTIVE.value,
                expires_at=now + timedelta(days=expires_in_days),
                platform_ids=platform_ids,
                access_days=access_days,
                recipient_name=recipient_name,
                recipient_email=recipient_email,
                created_by=created_by,
            )
            self.session.add(invite)
            try:
                await self.session.commit()
            except IntegrityError:
                # Code collision - try a fresh code
                await self.session.rollback()
                logger.warning("invite_code_collision", attempt=attempt)
                continue

            logger.info(
                "invite_created",
                code=invite.code,
                access_days=access_days,
                expires_at=invite.expires_at.isoformat(),
                platforms=len(platform_ids),
            )
            return invite

        raise WriteVerificationError("Could not generate a unique invite code")

    async def list_invites(
        self, search: str | None = None, limit: int = 100, offset: int = 0
    ) -> tuple[list[Invite], int]:
        """Newest first, optionally filtered by code or recipient."""
        stmt = select(Invite)
        count_stmt = select(func.count()).select_from(Invite)
        if search:
            pattern = f"%{search.strip().lower()}%"
            condition = or_(
                func.lower(Invite.code).like(pattern),
                func.lower(func.coalesce(Invite.recipient_name, "")).like(pattern),
                func.lower(func.coalesce(Invite.recipient_email, "")).like(pattern),
            )
            stmt = stmt.where(condition)
            count_stmt = count_stmt.where(condition)

        total = (await self.session.execute(count_stmt)).scalar_one()
        result = await self.session.execute(
            stmt.order_by(Invite.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all()), total

    async def delete(self, invite_id: UUID) -> None:
        invite = await self.session.get(Invite, invite_id)
        if invite is None:
            raise InviteNotFoundError(str(invite_id))
        await self.session.delete(invite)
        await self.session.commit()
        logger.info("invite_deleted", code=invite.code)

    async def mark_expired(self, now: datetime | None = None) -> int:
        """Persist the expired state for active codes past their expiry."""
        now = now or _utc_now()
        result = await self.session.execute(
            update(Invite)
            .where(Invite.status == InviteStatus.ACTIVE.value, Invite.expires_at < now)
            .values(status=InviteStatus.EXPIRED.value)
        )
        await self.session.commit()
        logger.info("invites_marked_expired", count=result.rowcount)
        return result.rowcount
