"""
Cakto Provider - verifies Cakto checkout webhooks.

Cakto does not sign requests; instead every payload carries the shared
secret configured on the webhook, in the JSON body.
"""

import hmac

from pydantic import ValidationError as PydanticValidationError
from structlog import get_logger

from jovitools.exceptions import ValidationError, WebhookVerificationError
from jovitools.models.api import CaktoWebhookPayload
from jovitools.services.payment_provider import PaymentEvent

logger = get_logger(__name__)


class CaktoProvider:
    """Cakto implementation of PaymentProvider."""

    def __init__(self, webhook_secret: str) -> None:
        self.webhook_secret = webhook_secret

    async def verify_webhook(self, payload: bytes) -> PaymentEvent:
        """
        Verify the shared secret and normalize the event.

        Raises:
            WebhookVerificationError: Secret missing or mismatched
            ValidationError: Body unparseable or no customer email
        """
        if not self.webhook_secret:
            # Refuse everything rather than trust unauthenticated payloads
            logger.error("cakto_webhook_secret_not_configured")
            raise WebhookVerificationError("Invalid secret")

        try:
            body = CaktoWebhookPayload.model_validate_json(payload)
        except PydanticValidationError as exc:
            logger.warning("cakto_webhook_malformed", error_count=exc.error_count())
            raise ValidationError("Malformed payload") from exc

        if not body.secret or not hmac.compare_digest(
            body.secret.encode(), self.webhook_secret.encode()
        ):
            logger.warning("cakto_webhook_invalid_secret", event_type=body.event)
            raise WebhookVerificationError("Invalid secret")

        email = (body.data.customer.email or "").strip().lower()
        if not email:
            logger.warning("cakto_webhook_missing_email", event_type=body.event)
            raise ValidationError("Customer email not found")

        recurrence = body.data.subscription.recurrence_period if body.data.subscription else None

        logger.info("cakto_webhook_verified", event_type=body.event, customer_email=email)
        return PaymentEvent(
            event_type=body.event,
            customer_email=email,
            recurrence_period_days=recurrence,
        )
