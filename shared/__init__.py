"""
Shared infrastructure for order fulfillment.

This package contains code used by both the ordering and notification packages:
- Domain models (Order, PaymentIntent, NotificationOutcome, etc.)
- Error taxonomy
- Phone normalization
- Message templates
- Insert-only order store
- Settings
"""

from shared.models import (
    Address,
    ChannelType,
    NotificationOutcome,
    NotificationReport,
    Order,
    OrderItem,
    OrderStatus,
    PaymentIntent,
    PaymentMethod,
)
from shared.order_store import OrderStore
from shared.phone import normalize_phone

__all__ = [
    "Address",
    "ChannelType",
    "NotificationOutcome",
    "NotificationReport",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentIntent",
    "PaymentMethod",
    "OrderStore",
    "normalize_phone",
]
