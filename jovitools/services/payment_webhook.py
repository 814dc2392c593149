"""
Payment Webhook Service - applies subscription events to the access gate.

purchase_approved / subscription_renewed -> extend access + grant all platforms
refund                                   -> close the gate
chargeback                               -> close the gate with a block reason
subscription_canceled                    -> logged only; access runs out on its own
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from jovitools.config import settings
from jovitools.exceptions import DatabaseError
from jovitools.observability.metrics import metrics
from jovitools.services.access import CHARGEBACK_BLOCK_REASON, AccessService
from jovitools.services.grants import GrantService
from jovitools.services.payment_provider import PaymentEvent, PaymentEventType
from jovitools.services.profiles import ProfileService

logger = get_logger(__name__)

NO_PROFILE_MESSAGE = "No profile found, skipping"


@dataclass(frozen=True)
class WebhookOutcome:
    """What the webhook did."""

    message: str
    profile_id: UUID | None = None


class PaymentWebhookService:
    """Dispatch verified payment events."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.profiles = ProfileService(session)
        self.access = AccessService(session)
        self.grants = GrantService(session)

    async def handle(self, event: PaymentEvent) -> WebhookOutcome:
        """Apply one verified event. Unknown customers and events are acknowledged."""
        profile = await self.profiles.find_by_email(event.customer_email)
        if profile is None:
            logger.info(
                "payment_webhook_profile_not_found",
                event_type=event.event_type,
                customer_email=event.customer_email,
            )
            metrics.record_webhook_event(event.event_type, "no_profile")
            return WebhookOutcome(message=NO_PROFILE_MESSAGE)

        event_type = event.known_type
        if event_type in (
            PaymentEventType.PURCHASE_APPROVED,
            PaymentEventType.SUBSCRIPTION_RENEWED,
        ):
            days = event.recurrence_period_days or settings.default_access_days
            try:
                updated = await self.access.grant(profile.id, days, commit=False)
                granted = await self.grants.grant_all(profile.id, commit=False)
                await self.session.commit()
            except Exception as exc:
                await self.session.rollback()
                metrics.record_webhook_event(event.event_type, "error")
                if isinstance(exc, SQLAlchemyError):
                    raise DatabaseError(f"Payment grant failed: {exc}") from exc
                raise
            logger.info(
                "payment_access_extended",
                event_type=event.event_type,
                profile_id=str(profile.id),
                days=days,
                access_expires_at=(
                    updated.access_expires_at.isoformat() if updated.access_expires_at else None
                ),
                new_grants=granted,
            )
            message = f"Access extended by {days} days"

        elif event_type == PaymentEventType.SUBSCRIPTION_CANCELED:
            logger.info("payment_subscription_canceled", profile_id=str(profile.id))
            message = "Subscription canceled, access kept until expiry"

        elif event_type == PaymentEventType.REFUND:
            await self.access.revoke(profile.id)
            logger.info("payment_refund_revoked", profile_id=str(profile.id))
            message = "Access revoked after refund"

        elif event_type == PaymentEventType.CHARGEBACK:
            await self.access.revoke(profile.id, block_reason=CHARGEBACK_BLOCK_REASON)
            logger.warning("payment_chargeback_blocked", profile_id=str(profile.id))
            message = "Access blocked after chargeback"

        else:
            logger.info("payment_webhook_unhandled_event", event_type=event.event_type)
            metrics.record_webhook_event(event.event_type, "unhandled")
            return WebhookOutcome(
                message=f"Unhandled event: {event.event_type}", profile_id=profile.id
            )

        metrics.record_webhook_event(event.event_type, "processed")
        return WebhookOutcome(message=message, profile_id=profile.id)
