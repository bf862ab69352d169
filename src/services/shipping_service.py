"""Shipping cost and delivery time estimation."""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from src.api.middleware.error_handler import NotFoundError, ValidationError
from src.schemas.checkout import ShippingOption, ShippingQuoteResponse, digits_only
from src.services.postal_service import PostalLookupClient

logger = logging.getLogger(__name__)

FREE_SHIPPING_THRESHOLD = Decimal("150.00")
DEFAULT_ORIGIN_POSTAL_CODE = "14680057"

LOCAL_PICKUP_NAME = "Retirada Local - Grátis"
FREE_SHIPPING_NAME = "Frete Grátis"
FREE_SHIPPING_DAYS = 5


@dataclass(frozen=True)
class RegionRates:
    """Fixed PAC/SEDEX prices and delivery days for a region."""

    pac_price: Decimal
    pac_days: int
    sedex_price: Decimal
    sedex_days: int


SOUTHEAST = RegionRates(Decimal("12.00"), 3, Decimal("20.00"), 1)
SOUTH = RegionRates(Decimal("15.00"), 5, Decimal("25.00"), 2)
MIDWEST = RegionRates(Decimal("18.00"), 6, Decimal("28.00"), 3)
NORTHEAST = RegionRates(Decimal("22.00"), 8, Decimal("35.00"), 4)
NORTH = RegionRates(Decimal("28.00"), 12, Decimal("45.00"), 6)

REGION_BY_STATE: dict[str, RegionRates] = {
    **dict.fromkeys(("SP", "RJ", "MG", "ES"), SOUTHEAST),
    **dict.fromkeys(("PR", "SC", "RS"), SOUTH),
    **dict.fromkeys(("GO", "MT", "MS", "DF"), MIDWEST),
    **dict.fromkeys(("BA", "SE", "AL", "PE", "PB", "RN", "CE", "PI", "MA"), NORTHEAST),
    **dict.fromkeys(("AM", "RR", "AP", "PA", "TO", "RO", "AC"), NORTH),
}

# Unknown states are priced like the South region
FALLBACK_REGION = SOUTH


def to_amount(value: Any, field: str) -> Decimal:
    """Convert a monetary input to a finite, non-negative Decimal.

    Raises:
        ValidationError: If the value is not a finite non-negative number.
    """
    if isinstance(value, bool):
        raise ValidationError(
            f"Invalid {field}",
            details=[{"loc": [field], "msg": "must be a number", "type": "type_error"}],
        )
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(
            f"Invalid {field}",
            details=[{"loc": [field], "msg": "must be a number", "type": "type_error"}],
        ) from e
    if not amount.is_finite() or amount < 0:
        raise ValidationError(
            f"Invalid {field}",
            details=[{"loc": [field], "msg": "must be a finite non-negative number", "type": "value_error"}],
        )
    return amount


def normalize_postal_code(postal_code: str) -> str:
    """Strip a postal code to its 8 digits.

    Raises:
        ValidationError: If the code does not have exactly 8 digits.
    """
    digits = digits_only(postal_code)
    if len(digits) != 8:
        raise ValidationError(
            "Invalid postal code",
            details=[{"loc": ["postal_code"], "msg": "postal code must have 8 digits", "type": "value_error"}],
        )
    return digits


def region_for_state(state: str) -> RegionRates:
    """Classify a two-letter state code into its regional rates."""
    return REGION_BY_STATE.get((state or "").strip().upper(), FALLBACK_REGION)


def estimate(
    destination_state: str,
    destination_postal_code: str,
    cart_subtotal: Decimal | int | float | str,
    origin_postal_code: str = DEFAULT_ORIGIN_POSTAL_CODE,
    free_shipping_threshold: Decimal = FREE_SHIPPING_THRESHOLD,
) -> list[ShippingOption]:
    """Estimate delivery options for a destination.

    Pure and deterministic. Deliveries to the store's own postal code become
    a free local pickup, carts at or above the threshold ship free, and
    everything else gets PAC then SEDEX from the destination's region.

    Args:
        destination_state: Two-letter destination state code.
        destination_postal_code: Destination postal code.
        cart_subtotal: Cart subtotal before shipping.
        origin_postal_code: Store/pickup postal code.
        free_shipping_threshold: Subtotal from which shipping is free.

    Returns:
        list[ShippingOption]: One free option, or PAC and SEDEX in that order.

    Raises:
        ValidationError: On malformed subtotal or postal codes.
    """
    subtotal = to_amount(cart_subtotal, "cart_subtotal")
    destination = normalize_postal_code(destination_postal_code)
    origin = normalize_postal_code(origin_postal_code)

    if destination == origin:
        return [ShippingOption(name=LOCAL_PICKUP_NAME, price=Decimal("0"), eta_days=0)]

    if subtotal >= free_shipping_threshold:
        return [ShippingOption(name=FREE_SHIPPING_NAME, price=Decimal("0"), eta_days=FREE_SHIPPING_DAYS)]

    rates = region_for_state(destination_state)
    return [
        ShippingOption(name="PAC", price=rates.pac_price, eta_days=rates.pac_days),
        ShippingOption(name="SEDEX", price=rates.sedex_price, eta_days=rates.sedex_days),
    ]


def remaining_for_free_shipping(
    cart_subtotal: Decimal | int | float | str,
    free_shipping_threshold: Decimal = FREE_SHIPPING_THRESHOLD,
) -> Decimal:
    """Amount still missing for the cart to ship free (never negative)."""
    subtotal = to_amount(cart_subtotal, "cart_subtotal")
    return max(free_shipping_threshold - subtotal, Decimal("0"))


class ShippingService:
    """Quotes shipping for a destination postal code."""

    def __init__(
        self,
        postal_client: PostalLookupClient,
        origin_postal_code: str = DEFAULT_ORIGIN_POSTAL_CODE,
        free_shipping_threshold: Decimal = FREE_SHIPPING_THRESHOLD,
    ) -> None:
        self.postal_client = postal_client
        self.origin_postal_code = origin_postal_code
        self.free_shipping_threshold = free_shipping_threshold

    async def quote(self, postal_code: str, cart_subtotal: Decimal) -> ShippingQuoteResponse:
        """Resolve the destination and estimate its delivery options.

        Args:
            postal_code: Destination postal code, any formatting.
            cart_subtotal: Cart subtotal before shipping.

        Returns:
            ShippingQuoteResponse: Options, resolved address and free-shipping gap.

        Raises:
            ValidationError: If the postal code or subtotal is malformed.
            NotFoundError: If the postal code does not exist.
            PostalLookupError: If the lookup service fails or times out.
        """
        destination = normalize_postal_code(postal_code)
        subtotal = to_amount(cart_subtotal, "cart_subtotal")

        address = await self.postal_client.lookup(destination)
        if address is None:
            raise NotFoundError("Postal code not found")

        options = estimate(
            address.state,
            destination,
            subtotal,
            origin_postal_code=self.origin_postal_code,
            free_shipping_threshold=self.free_shipping_threshold,
        )
        logger.info(
            "Shipping quote for %s (%s): %s",
            destination,
            address.state,
            ", ".join(f"{o.name}={o.price}" for o in options),
        )

        return ShippingQuoteResponse(
            options=options,
            address=address,
            free_shipping=all(option.price == 0 for option in options),
            remaining_for_free_shipping=remaining_for_free_shipping(subtotal, self.free_shipping_threshold),
        )
