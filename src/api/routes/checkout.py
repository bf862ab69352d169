"""Checkout API routes: shipping quotes, postal lookups and payment preferences."""

from fastapi import APIRouter, status

from src.api.deps import Callbacks, Checkout, PostalClient, Shipping
from src.api.middleware.error_handler import NotFoundError
from src.schemas.checkout import (
    CheckoutRequest,
    CheckoutResponse,
    PostalAddress,
    ShippingQuoteRequest,
    ShippingQuoteResponse,
)
from src.services.shipping_service import normalize_postal_code

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post(
    "/shipping-quote",
    response_model=ShippingQuoteResponse,
    summary="Quote shipping",
    description="Resolves a destination postal code and returns delivery options for the cart subtotal.",
)
async def quote_shipping(data: ShippingQuoteRequest, service: Shipping) -> ShippingQuoteResponse:
    """Quote shipping options for a destination.

    Args:
        data: Destination postal code and cart subtotal.
        service: Shipping service.

    Returns:
        ShippingQuoteResponse: Options (cheapest first) and the resolved address.

    Raises:
        ValidationError: 422 if the postal code is malformed.
        NotFoundError: 404 if the postal code does not exist.
        PostalLookupError: 502 if the lookup service fails.
    """
    return await service.quote(data.postal_code, data.cart_subtotal)


@router.get(
    "/postal-codes/{postal_code}",
    response_model=PostalAddress,
    summary="Look up a postal code",
    description="Returns address fields for a postal code, used to pre-fill the shipping address form.",
)
async def lookup_postal_code(postal_code: str, client: PostalClient) -> PostalAddress:
    """Resolve a postal code to address fields."""
    address = await client.lookup(normalize_postal_code(postal_code))
    if address is None:
        raise NotFoundError("Postal code not found")
    return address


@router.post(
    "/preference",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create payment preference",
    description="Creates a payment gateway checkout preference for the cart. The client should redirect to checkout_url.",
)
async def create_preference(
    data: CheckoutRequest,
    service: Checkout,
    callback_urls: Callbacks,
) -> CheckoutResponse:
    """Start a checkout.

    No order is created here; the order is recorded when the gateway
    notifies an approved payment.

    Args:
        data: Cart, shipping, address and buyer id.
        service: Checkout service.
        callback_urls: Gateway callback URLs.

    Returns:
        CheckoutResponse: Contains checkout_url for redirect.

    Raises:
        ValidationError: 422 for invalid carts or incomplete addresses.
        ConfigurationError: 500 if the gateway is not configured.
        GatewayError: 502 if the gateway rejects the preference.
    """
    return await service.start_checkout(data, callback_urls)
