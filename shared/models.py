"""
Domain models for order fulfillment.

Design decisions:
- Using Pydantic for validation and serialization, as the API layer does
- JSON uses camelCase keys (alias generator); Python code uses snake_case
- Request-facing fields are Optional so the orchestrator, not the parser,
  decides which field is missing and reports it by name
- Money is Decimal; the gateway works in integer minor units (paise)
"""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Enums
# =============================================================================

class PaymentMethod(str, Enum):
    PREPAID = "prepaid"
    COD = "cod"


class OrderStatus(str, Enum):
    """
    Order lifecycle states.

    Orders are only ever written once payment is settled, so `confirmed` is
    the normal state; `pending` is accepted from the legacy direct-save path.
    """
    PENDING = "pending"
    CONFIRMED = "confirmed"


class ChannelType(str, Enum):
    """Supported notification channels."""
    CHAT = "chat"
    SMS = "sms"


# =============================================================================
# Money helpers
# =============================================================================

MINOR_UNITS_PER_MAJOR = 100


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount (rupees) to integer minor units (paise)."""
    return int((amount * MINOR_UNITS_PER_MAJOR).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def is_whole_minor_units(amount: Decimal) -> bool:
    scaled = amount * MINOR_UNITS_PER_MAJOR
    return scaled == scaled.to_integral_value()


# =============================================================================
# Order
# =============================================================================

class OrderItem(CamelModel):
    """A single line of an order. Legacy clients send `price` instead of `unitPrice`."""
    name: Optional[str] = None
    unit_price: Decimal = Field(
        ...,
        ge=0,
        validation_alias=AliasChoices("unitPrice", "price", "unit_price"),
    )
    quantity: int = Field(default=1, ge=1)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class Address(CamelModel):
    """Shipping and contact details. Every field is required by the orchestrator."""
    full_name: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


REQUIRED_ADDRESS_FIELDS = ("full_name", "street", "city", "state", "zip_code", "email", "phone")


def compute_total(items: list[OrderItem]) -> Decimal:
    """Sum of unit price times quantity over all items."""
    return sum((item.line_total for item in items), Decimal(0))


class Order(CamelModel):
    """
    A confirmed (or legacy pending) order as written to the store.

    Built by the orchestrator only after payment is settled, never before.
    """
    items: list[OrderItem]
    address: Address
    payment_method: PaymentMethod
    total: Decimal
    payment_id: Optional[str] = None
    gateway_order_id: Optional[str] = None
    status: OrderStatus = OrderStatus.CONFIRMED
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def _payment_id_matches_method(self) -> "Order":
        settled_prepaid = (
            self.payment_method == PaymentMethod.PREPAID
            and self.status == OrderStatus.CONFIRMED
        )
        if settled_prepaid != (self.payment_id is not None):
            raise ValueError(
                "paymentId must be set exactly for confirmed prepaid orders"
            )
        return self

    def to_record(self) -> dict:
        """Serialize for the document store (Decimal amounts become strings)."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# Payment
# =============================================================================

class PaymentIntent(CamelModel):
    """Provisional gateway transaction. Returned to the caller, never stored."""
    gateway_order_id: str
    amount_minor_units: int
    currency: str


class PaymentProof(CamelModel):
    """What the client brings back from the gateway. Checked once, never stored."""
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    signature: Optional[str] = None


# =============================================================================
# Notifications
# =============================================================================

class NotificationOutcome(CamelModel):
    """
    Result of one (request, channel) delivery attempt.

    Never persisted; aggregated into a NotificationReport.
    """
    channel: ChannelType
    delivered: bool
    recipient: Optional[str] = None
    message_id: Optional[str] = None
    error_detail: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def sent(cls, channel: ChannelType, recipient: str, message_id: str) -> "NotificationOutcome":
        return cls(channel=channel, delivered=True, recipient=recipient, message_id=message_id)

    @classmethod
    def failed(
        cls,
        channel: ChannelType,
        recipient: Optional[str],
        error: Exception,
    ) -> "NotificationOutcome":
        return cls(
            channel=channel,
            delivered=False,
            recipient=recipient,
            error_detail=str(error) or type(error).__name__,
            error_type=type(error).__name__,
        )

    def __str__(self) -> str:
        status = "✓" if self.delivered else "✗"
        return f"{status} {self.channel.value.upper()} to {self.recipient}"


class NotificationReport(CamelModel):
    """Per-channel outcomes for the admin and customer copies of one order event."""
    admin: list[NotificationOutcome] = Field(default_factory=list)
    customer: list[NotificationOutcome] = Field(default_factory=list)

    @property
    def outcomes(self) -> list[NotificationOutcome]:
        return self.admin + self.customer

    @property
    def delivered_count(self) -> int:
        return sum(1 for o in self.outcomes if o.delivered)


class CodAcceptance(CamelModel):
    confirmation: str
    order_id: str
    notification_report: NotificationReport


class OrderConfirmation(CamelModel):
    confirmation: str
    order_id: str
    notification_report: NotificationReport
