"""Payment gateway wire schemas (Mercado Pago preferences, payments and notifications)."""

from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

PaymentStatus = Literal[
    "pending",
    "approved",
    "authorized",
    "in_process",
    "in_mediation",
    "rejected",
    "cancelled",
    "refunded",
    "charged_back",
]


def _to_str(value: Any) -> Any:
    # Gateway ids arrive as JSON numbers
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class PreferenceItem(BaseModel):
    """A gateway line item."""

    title: str
    quantity: int = Field(gt=0)
    unit_price: float = Field(gt=0)
    currency_id: str


class PayerPhone(BaseModel):
    area_code: str
    number: str


class PayerAddress(BaseModel):
    street_name: str
    street_number: int
    zip_code: str


class Payer(BaseModel):
    """Buyer information attached to the preference."""

    name: str
    phone: PayerPhone | None = None
    address: PayerAddress


class BackUrls(BaseModel):
    success: str
    failure: str
    pending: str


class PreferenceMetadata(BaseModel):
    user_id: str
    order_draft: str


class PaymentPreference(BaseModel):
    """Checkout preference request sent to the gateway.

    Created once per checkout attempt and never persisted locally.
    """

    items: list[PreferenceItem] = Field(min_length=1)
    payer: Payer
    back_urls: BackUrls
    auto_return: Literal["approved"] = "approved"
    external_reference: str
    notification_url: str
    metadata: PreferenceMetadata

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the JSON body expected by the gateway."""
        return self.model_dump(mode="json", exclude_none=True)


class PreferenceResult(BaseModel):
    """Result of a successful preference creation."""

    preference_id: str
    redirect_url: str
    sandbox_redirect_url: str | None = None


class PaymentMetadata(BaseModel):
    """Metadata echoed back by the gateway on the payment record."""

    model_config = ConfigDict(extra="ignore")

    user_id: str | None = None
    order_draft: str | None = None


class PaymentRecord(BaseModel):
    """Authoritative payment state fetched from the gateway."""

    model_config = ConfigDict(extra="ignore")

    id: str
    status: str
    status_detail: str | None = None
    transaction_amount: Decimal = Field(ge=0, allow_inf_nan=False)
    currency_id: str | None = None
    payment_method_id: str | None = None
    external_reference: str | None = None
    metadata: PaymentMetadata = Field(default_factory=PaymentMetadata)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        return _to_str(value)

    @field_validator("transaction_amount", mode="before")
    @classmethod
    def amount_from_float(cls, value: Any) -> Any:
        if isinstance(value, float):
            return Decimal(str(value))
        return value

    @field_validator("metadata", mode="before")
    @classmethod
    def empty_metadata(cls, value: Any) -> Any:
        return value or {}

    @property
    def is_approved(self) -> bool:
        return self.status == "approved"


class NotificationData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        return _to_str(value)


class WebhookNotification(BaseModel):
    """Inbound payment notification, e.g. ``{"type": "payment", "data": {"id": "123"}}``."""

    model_config = ConfigDict(extra="ignore")

    type: str | None = None
    topic: str | None = None
    action: str | None = None
    data: NotificationData

    @property
    def kind(self) -> str | None:
        """Notification type, accepting the legacy ``topic`` field."""
        return self.type or self.topic
