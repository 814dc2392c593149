"""
Payment Provider Protocol - Provider-agnostic webhook interface.

NO DICTIONARIES - All data uses strongly typed models.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class PaymentEventType(str, Enum):
    """Subscription lifecycle events the portal reacts to."""

    PURCHASE_APPROVED = "purchase_approved"
    SUBSCRIPTION_RENEWED = "subscription_renewed"
    SUBSCRIPTION_CANCELED = "subscription_canceled"
    REFUND = "refund"
    CHARGEBACK = "chargeback"


@dataclass(frozen=True)
class PaymentEvent:
    """
    Provider-agnostic webhook event.

    event_type is kept as the raw string so unknown events can be logged
    and acknowledged instead of rejected.
    """

    event_type: str
    customer_email: str
    recurrence_period_days: int | None

    @property
    def known_type(self) -> PaymentEventType | None:
        try:
            return PaymentEventType(self.event_type)
        except ValueError:
            return None


class PaymentProvider(Protocol):
    """
    Payment provider protocol.

    Any checkout provider must verify and normalize its own webhook payloads.
    """

    async def verify_webhook(self, payload: bytes) -> PaymentEvent:
        """
        Verify and parse webhook event from provider.

        Raises:
            WebhookVerificationError: If the payload cannot be trusted
            ValidationError: If the payload lacks a customer email
        """
        ...
