"""Reconciles asynchronous payment notifications into orders."""

import logging
from enum import Enum
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from src.api.middleware.error_handler import APIError, ReconciliationError
from src.schemas.checkout import OrderDraft
from src.schemas.order import OrderCreate
from src.schemas.payment import PaymentRecord, WebhookNotification
from src.services.gateway_client import CheckoutGatewayClient
from src.services.order_ledger import OrderLedger

logger = logging.getLogger(__name__)


class ReconciliationOutcome(str, Enum):
    """What a notification led to."""

    IGNORED = "ignored"
    NOT_APPROVED = "not_approved"
    CREATED = "created"
    DUPLICATE = "duplicate"
    FAILED = "failed"


def parse_notification(payload: Any) -> WebhookNotification:
    """Validate an inbound notification payload.

    Raises:
        ReconciliationError: If the payload is not a notification.
    """
    try:
        return WebhookNotification.model_validate(payload)
    except PydanticValidationError as e:
        raise ReconciliationError(f"Malformed notification payload: {e.error_count()} error(s)") from e


def order_from_payment(payment: PaymentRecord) -> OrderCreate:
    """Rebuild the order from an approved payment.

    The total is the amount the gateway actually charged, not the draft's.

    Raises:
        ReconciliationError: If the user or the order draft cannot be recovered.
    """
    user_id = payment.metadata.user_id or payment.external_reference
    if not user_id:
        raise ReconciliationError(f"Payment {payment.id} carries no user reference")

    if not payment.metadata.order_draft:
        raise ReconciliationError(f"Payment {payment.id} carries no order draft")

    try:
        draft = OrderDraft.model_validate_json(payment.metadata.order_draft)
    except PydanticValidationError as e:
        raise ReconciliationError(f"Order draft of payment {payment.id} cannot be decoded") from e

    return OrderCreate(
        user_id=user_id,
        items=draft.items,
        total=payment.transaction_amount,
        shipping_option=draft.shipping,
        shipping_address=draft.shipping_address,
        payment_id=payment.id,
        payment_status=payment.status,
        payment_method=payment.payment_method_id,
    )


class WebhookReconciler:
    """Turns approved payments into orders, at most once per payment.

    Never raises: the gateway only needs an acknowledgement, and a
    redelivered malformed payload would fail the same way again.
    """

    def __init__(self, gateway: CheckoutGatewayClient, ledger: OrderLedger) -> None:
        self.gateway = gateway
        self.ledger = ledger

    async def handle_notification(self, payload: Any) -> ReconciliationOutcome:
        """Process a payment notification.

        Only the freshly fetched payment record decides approval; any status
        carried by the notification itself is ignored.

        Args:
            payload: Decoded notification body.

        Returns:
            ReconciliationOutcome: What the notification led to.
        """
        try:
            notification = parse_notification(payload)
        except ReconciliationError as e:
            logger.warning("Ignoring notification: %s", e.message)
            return ReconciliationOutcome.FAILED

        if notification.kind != "payment":
            logger.debug("Ignoring %s notification", notification.kind)
            return ReconciliationOutcome.IGNORED

        payment_id = notification.data.id

        try:
            payment = await self.gateway.fetch_payment(payment_id)
        except APIError as e:
            logger.error("Could not fetch payment %s: %s", payment_id, e.message)
            return ReconciliationOutcome.FAILED
        except Exception:
            logger.exception("Unexpected error fetching payment %s", payment_id)
            return ReconciliationOutcome.FAILED

        if not payment.is_approved:
            logger.info("Payment %s is %s, no order recorded", payment_id, payment.status)
            return ReconciliationOutcome.NOT_APPROVED

        try:
            order = order_from_payment(payment)
        except ReconciliationError as e:
            logger.error("Approved payment %s not reconciled: %s", payment_id, e.message)
            return ReconciliationOutcome.FAILED

        try:
            result = await self.ledger.create_order(order)
        except APIError as e:
            logger.error("Failed to record order for approved payment %s: %s", payment_id, e.message)
            return ReconciliationOutcome.FAILED
        except Exception:
            logger.exception("Unexpected error recording order for approved payment %s", payment_id)
            return ReconciliationOutcome.FAILED

        if not result.created:
            return ReconciliationOutcome.DUPLICATE

        logger.info("Payment %s recorded as order %d", payment_id, result.order_number)
        return ReconciliationOutcome.CREATED
