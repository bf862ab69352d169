"""Checkout business logic service."""

import logging

from src.api.middleware.error_handler import ValidationError
from src.core.config import Settings
from src.schemas.checkout import CheckoutRequest, CheckoutResponse, OrderDraft
from src.services.gateway_client import CheckoutGatewayClient
from src.services.preference_builder import CallbackUrls, build_preference

logger = logging.getLogger(__name__)


class CheckoutService:
    """Service for starting a payment checkout.

    Checkout never creates orders. Orders are recorded only when the
    gateway confirms an approved payment through the webhook.
    """

    def __init__(self, gateway: CheckoutGatewayClient, settings: Settings) -> None:
        """Initialize checkout service with its gateway client and settings."""
        self.gateway = gateway
        self.settings = settings

    async def start_checkout(self, data: CheckoutRequest, callback_urls: CallbackUrls) -> CheckoutResponse:
        """Create a gateway preference for the cart and return where to redirect.

        Args:
            data: Cart, shipping selection, address and buyer id.
            callback_urls: Return pages and webhook URL.

        Returns:
            CheckoutResponse: Preference id and checkout URLs.

        Raises:
            ValidationError: If the address is incomplete, no shipping is selected or the cart is invalid.
            ConfigurationError: If the gateway is not configured.
            GatewayError: If the gateway rejects the preference.
        """
        missing = data.shipping_address.missing_fields()
        if missing:
            raise ValidationError(
                "Please fill in every shipping address field",
                details=[
                    {"loc": ["shipping_address", field], "msg": f"{field} is required", "type": "missing"}
                    for field in missing
                ],
            )

        if data.shipping is None:
            raise ValidationError(
                "Please select a shipping option",
                details=[{"loc": ["shipping"], "msg": "shipping option is required", "type": "missing"}],
            )

        draft = OrderDraft(items=data.items, shipping=data.shipping, shipping_address=data.shipping_address)

        preference = build_preference(
            cart=data.items,
            shipping=data.shipping,
            address=data.shipping_address,
            user_id=data.user_id,
            order_draft=draft,
            callback_urls=callback_urls,
            currency=self.settings.currency,
            max_order_draft_bytes=self.settings.max_order_draft_bytes,
        )

        result = await self.gateway.create_preference(preference)

        # Sandbox checkout outside production when the gateway offers one
        if self.settings.is_production:
            checkout_url = result.redirect_url
        else:
            checkout_url = result.sandbox_redirect_url or result.redirect_url

        logger.info(
            "Checkout started for user %s: preference %s, %d item(s)",
            data.user_id,
            result.preference_id,
            len(data.items),
        )

        return CheckoutResponse(
            preference_id=result.preference_id,
            checkout_url=checkout_url,
            redirect_url=result.redirect_url,
            sandbox_redirect_url=result.sandbox_redirect_url,
        )
