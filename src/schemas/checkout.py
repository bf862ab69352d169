"""Checkout Pydantic schemas for cart, shipping and checkout request/response models."""

import re
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

NON_DIGITS = re.compile(r"\D")


def digits_only(value: str) -> str:
    """Strip every non-digit character from a string."""
    return NON_DIGITS.sub("", value or "")


class CartLine(BaseModel):
    """A single cart line held by the client until checkout."""

    model_config = ConfigDict(from_attributes=True)

    product_id: str = Field(min_length=1, description="Product identifier")
    title: str = Field(min_length=1, description="Product title")
    unit_price: Decimal = Field(gt=0, allow_inf_nan=False, description="Unit price")
    quantity: int = Field(gt=0, description="Quantity in the cart")
    size: str | None = Field(default=None, description="Selected size")
    color: str | None = Field(default=None, description="Selected color")
    cover_image_url: str | None = Field(default=None, description="Product cover image URL")

    @field_validator("quantity", mode="before")
    @classmethod
    def reject_bool_quantity(cls, value: object) -> object:
        if isinstance(value, bool):
            raise ValueError("quantity must be an integer")
        return value

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class ShippingOption(BaseModel):
    """A priced delivery option. Embedded into the order at creation time."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    name: str = Field(min_length=1, description="Option name (PAC, SEDEX, ...)")
    price: Decimal = Field(ge=0, allow_inf_nan=False, description="Shipping price")
    eta_days: int = Field(ge=0, description="Estimated delivery time in business days")


class ShippingAddress(BaseModel):
    """Buyer shipping address."""

    model_config = ConfigDict(from_attributes=True, str_strip_whitespace=True)

    name: str = Field(default="", description="Recipient name")
    street: str = Field(default="", description="Street name")
    number: str = Field(default="", description="Street number")
    complement: str | None = Field(default=None, description="Address complement")
    neighborhood: str = Field(default="", description="Neighborhood")
    city: str = Field(default="", description="City")
    state: str = Field(default="", max_length=2, description="Two-letter state code")
    postal_code: str = Field(default="", description="Postal code (CEP)")
    phone: str = Field(default="", description="Contact phone")

    @field_validator("state")
    @classmethod
    def upper_state(cls, value: str) -> str:
        return value.upper()

    @field_validator("postal_code")
    @classmethod
    def normalize_postal_code(cls, value: str) -> str:
        digits = digits_only(value)
        if digits and len(digits) != 8:
            raise ValueError("postal code must have 8 digits")
        return digits

    def missing_fields(self) -> list[str]:
        """Return the required fields that are still empty."""
        required = ("name", "street", "number", "neighborhood", "city", "state", "postal_code", "phone")
        return [field for field in required if not getattr(self, field)]

    def is_complete(self) -> bool:
        """Check whether every required field is filled."""
        return not self.missing_fields()


class OrderDraft(BaseModel):
    """Order content carried through the payment round-trip in gateway metadata."""

    model_config = ConfigDict(from_attributes=True)

    items: list[CartLine] = Field(min_length=1, description="Cart lines")
    shipping: ShippingOption | None = Field(default=None, description="Selected shipping option")
    shipping_address: ShippingAddress = Field(description="Shipping address")


class PostalAddress(BaseModel):
    """Address fields resolved from a postal code."""

    model_config = ConfigDict(from_attributes=True)

    postal_code: str = Field(description="Postal code, digits only")
    street: str = Field(default="", description="Street name")
    neighborhood: str = Field(default="", description="Neighborhood")
    city: str = Field(default="", description="City")
    state: str = Field(default="", description="Two-letter state code")


class ShippingQuoteRequest(BaseModel):
    """Schema for POST /checkout/shipping-quote."""

    postal_code: str = Field(description="Destination postal code")
    cart_subtotal: Decimal = Field(ge=0, allow_inf_nan=False, description="Cart subtotal")


class ShippingQuoteResponse(BaseModel):
    """Schema for shipping quote responses."""

    model_config = ConfigDict(from_attributes=True)

    options: list[ShippingOption] = Field(description="Available delivery options, cheapest first")
    address: PostalAddress = Field(description="Address resolved from the postal code")
    free_shipping: bool = Field(description="Whether the quote is free of charge")
    remaining_for_free_shipping: Decimal = Field(description="Amount missing to reach free shipping")


class CheckoutRequest(BaseModel):
    """Schema for creating a payment preference via POST /checkout/preference."""

    items: list[CartLine] = Field(min_length=1, description="Cart lines")
    shipping: ShippingOption | None = Field(default=None, description="Selected shipping option")
    shipping_address: ShippingAddress = Field(description="Shipping address")
    user_id: str = Field(description="Buyer user id")


class CheckoutResponse(BaseModel):
    """Schema for checkout responses."""

    model_config = ConfigDict(from_attributes=True)

    preference_id: str = Field(description="Gateway preference id")
    checkout_url: str = Field(description="URL the client should redirect to")
    redirect_url: str = Field(description="Production checkout URL")
    sandbox_redirect_url: str | None = Field(default=None, description="Sandbox checkout URL")
