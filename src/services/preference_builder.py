"""Builds payment gateway checkout preferences from cart contents."""

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from src.api.middleware.error_handler import ValidationError
from src.schemas.checkout import CartLine, ShippingAddress, ShippingOption, digits_only
from src.schemas.payment import (
    BackUrls,
    Payer,
    PayerAddress,
    PayerPhone,
    PaymentPreference,
    PreferenceItem,
    PreferenceMetadata,
)

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "BRL"
DEFAULT_MAX_ORDER_DRAFT_BYTES = 16000
WEBHOOK_PATH = "/api/v1/webhooks/mercadopago"
MIN_PHONE_DIGITS = 10


@dataclass(frozen=True)
class CallbackUrls:
    """Return pages and the webhook endpoint handed to the gateway."""

    success: str
    failure: str
    pending: str
    notification: str

    @classmethod
    def from_base_url(cls, base_url: str) -> "CallbackUrls":
        """Derive every callback URL from one public base URL."""
        base = base_url.rstrip("/")
        return cls(
            success=f"{base}/checkout/success",
            failure=f"{base}/checkout/failure",
            pending=f"{base}/checkout/pending",
            notification=f"{base}{WEBHOOK_PATH}",
        )


def _error(loc: Sequence[str | int], msg: str, type_: str = "value_error") -> dict[str, Any]:
    return {"loc": list(loc), "msg": msg, "type": type_}


def _pydantic_details(exc: PydanticValidationError, prefix: Sequence[str | int]) -> list[dict[str, Any]]:
    return [_error([*prefix, *err["loc"]], err["msg"], err["type"]) for err in exc.errors()]


def _validate_model(model: type[BaseModel], value: Any, prefix: Sequence[str | int]) -> tuple[Any, list[dict[str, Any]]]:
    if isinstance(value, BaseModel):
        value = value.model_dump()
    try:
        return model.model_validate(value), []
    except PydanticValidationError as e:
        return None, _pydantic_details(e, prefix)


def serialize_order_draft(order_draft: Any) -> str:
    """Serialize the caller's order draft to the transport string stored in metadata."""
    if isinstance(order_draft, BaseModel):
        return order_draft.model_dump_json()
    return json.dumps(order_draft, default=str, ensure_ascii=False, separators=(",", ":"))


def line_title(line: CartLine) -> str:
    """Gateway item title: ``"{title}{ - size}{ - color}"``."""
    title = line.title
    if line.size:
        title += f" - {line.size}"
    if line.color:
        title += f" - {line.color}"
    return title


def build_payer(address: ShippingAddress) -> Payer:
    """Map the shipping address onto the gateway payer structure.

    The phone is only sent when it has at least area code plus number.
    """
    phone_digits = digits_only(address.phone)
    phone = None
    if len(phone_digits) >= MIN_PHONE_DIGITS:
        phone = PayerPhone(area_code=phone_digits[:2], number=phone_digits[2:])

    try:
        street_number = int(address.number)
    except (TypeError, ValueError):
        street_number = 0

    return Payer(
        name=address.name,
        phone=phone,
        address=PayerAddress(
            street_name=address.street,
            street_number=street_number,
            zip_code=digits_only(address.postal_code),
        ),
    )


def build_preference(
    cart: Sequence[CartLine | Mapping[str, Any]],
    shipping: ShippingOption | Mapping[str, Any] | None,
    address: ShippingAddress | Mapping[str, Any],
    user_id: str,
    order_draft: Any,
    callback_urls: CallbackUrls,
    currency: str = DEFAULT_CURRENCY,
    max_order_draft_bytes: int = DEFAULT_MAX_ORDER_DRAFT_BYTES,
) -> PaymentPreference:
    """Assemble a gateway checkout preference.

    Pure construction: nothing is sent or persisted.

    Args:
        cart: Cart lines (models or raw mappings).
        shipping: Selected shipping option, or None.
        address: Buyer shipping address.
        user_id: Buyer id, used as the external reference.
        order_draft: Order content to carry through the payment round-trip.
        callback_urls: Return pages and webhook URL.
        currency: Storefront currency.
        max_order_draft_bytes: Largest serialized draft the gateway metadata accepts.

    Returns:
        PaymentPreference: Validated preference ready to be sent.

    Raises:
        ValidationError: If any input is invalid. No preference is produced.
    """
    errors: list[dict[str, Any]] = []

    if not cart:
        raise ValidationError("Cart is empty", details=[_error(["items"], "cart must not be empty")])

    lines: list[CartLine] = []
    for index, raw_line in enumerate(cart):
        line, line_errors = _validate_model(CartLine, raw_line, ["items", index])
        errors.extend(line_errors)
        if line is not None:
            lines.append(line)

    shipping_option = None
    if shipping is not None:
        shipping_option, shipping_errors = _validate_model(ShippingOption, shipping, ["shipping"])
        errors.extend(shipping_errors)

    shipping_address, address_errors = _validate_model(ShippingAddress, address, ["shipping_address"])
    errors.extend(address_errors)
    if shipping_address is not None:
        if not shipping_address.name:
            errors.append(_error(["shipping_address", "name"], "name is required", "missing"))
        if not shipping_address.phone:
            errors.append(_error(["shipping_address", "phone"], "phone is required", "missing"))

    user_id = (user_id or "").strip()
    if not user_id:
        errors.append(_error(["user_id"], "user id is required", "missing"))

    if errors:
        raise ValidationError("Invalid checkout data", details=errors)

    serialized_draft = serialize_order_draft(order_draft)
    draft_size = len(serialized_draft.encode("utf-8"))
    if draft_size > max_order_draft_bytes:
        logger.warning("Order draft for user %s is %d bytes (max %d)", user_id, draft_size, max_order_draft_bytes)
        raise ValidationError(
            "Order is too large to be processed in a single checkout",
            details=[_error(["order_draft"], f"serialized order draft exceeds {max_order_draft_bytes} bytes")],
        )

    items = [
        PreferenceItem(
            title=line_title(line),
            quantity=line.quantity,
            unit_price=float(line.unit_price),
            currency_id=currency,
        )
        for line in lines
    ]

    if shipping_option is not None and shipping_option.price > 0:
        items.append(
            PreferenceItem(
                title=f"Frete - {shipping_option.name}",
                quantity=1,
                unit_price=float(shipping_option.price),
                currency_id=currency,
            )
        )

    return PaymentPreference(
        items=items,
        payer=build_payer(shipping_address),
        back_urls=BackUrls(
            success=callback_urls.success,
            failure=callback_urls.failure,
            pending=callback_urls.pending,
        ),
        external_reference=user_id,
        notification_url=callback_urls.notification,
        metadata=PreferenceMetadata(user_id=user_id, order_draft=serialized_draft),
    )
