"""FastAPI dependency injection functions.

Long-lived clients (document store, HTTP clients) are built once by the
application lifespan and kept on ``app.state``. Services are cheap and
are assembled per request from those clients.
"""

from typing import Annotated

from fastapi import Depends, Request

from src.core.config import Settings, get_settings
from src.core.store import DocumentStore
from src.services.checkout_service import CheckoutService
from src.services.gateway_client import CheckoutGatewayClient
from src.services.order_ledger import OrderLedger
from src.services.postal_service import PostalLookupClient
from src.services.preference_builder import CallbackUrls
from src.services.shipping_service import ShippingService
from src.services.webhook_reconciler import WebhookReconciler

AppSettings = Annotated[Settings, Depends(get_settings)]


def get_store(request: Request) -> DocumentStore:
    """Get the application's document store."""
    return request.app.state.store


def get_gateway_client(request: Request) -> CheckoutGatewayClient:
    """Get the payment gateway client."""
    return request.app.state.gateway_client


def get_postal_client(request: Request) -> PostalLookupClient:
    """Get the postal code lookup client."""
    return request.app.state.postal_client


Store = Annotated[DocumentStore, Depends(get_store)]
Gateway = Annotated[CheckoutGatewayClient, Depends(get_gateway_client)]
PostalClient = Annotated[PostalLookupClient, Depends(get_postal_client)]


def get_order_ledger(store: Store) -> OrderLedger:
    """Build the order ledger on top of the store."""
    return OrderLedger(store)


Ledger = Annotated[OrderLedger, Depends(get_order_ledger)]


def get_shipping_service(postal_client: PostalClient, settings: AppSettings) -> ShippingService:
    """Build the shipping service with the configured origin and threshold."""
    return ShippingService(
        postal_client,
        origin_postal_code=settings.origin_postal_code,
        free_shipping_threshold=settings.free_shipping_threshold,
    )


def get_checkout_service(gateway: Gateway, settings: AppSettings) -> CheckoutService:
    """Build the checkout service."""
    return CheckoutService(gateway, settings)


def get_webhook_reconciler(gateway: Gateway, ledger: Ledger) -> WebhookReconciler:
    """Build the webhook reconciler."""
    return WebhookReconciler(gateway, ledger)


def get_callback_urls(request: Request, settings: AppSettings) -> CallbackUrls:
    """Derive gateway callback URLs.

    Uses PUBLIC_BASE_URL when configured, otherwise the host the request
    was addressed to.
    """
    return CallbackUrls.from_base_url(settings.public_base_url or str(request.base_url))


Shipping = Annotated[ShippingService, Depends(get_shipping_service)]
Checkout = Annotated[CheckoutService, Depends(get_checkout_service)]
Reconciler = Annotated[WebhookReconciler, Depends(get_webhook_reconciler)]
Callbacks = Annotated[CallbackUrls, Depends(get_callback_urls)]
