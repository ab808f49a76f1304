"""
Notification message templates.

Templates are plain strings with {variable} placeholders, rendered with
Python's string formatting. The same body goes out on every channel; the
admin and customer copies differ.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from shared.models import Order, OrderItem, PaymentMethod


class NotificationType(str, Enum):
    """Which audience a message is written for."""
    ADMIN_NEW_ORDER = "admin_new_order"
    CUSTOMER_ORDER_CONFIRMED = "customer_order_confirmed"


@dataclass
class NotificationTemplate:
    notification_type: NotificationType
    body: str

    def render(self, **kwargs) -> str:
        return self.body.format(**kwargs).strip() + "\n"


TEMPLATES: dict[NotificationType, NotificationTemplate] = {

    NotificationType.ADMIN_NEW_ORDER: NotificationTemplate(
        notification_type=NotificationType.ADMIN_NEW_ORDER,
        body="""
📦 New order received

👤 Name: {full_name}
📞 Phone: {phone}

📍 Address:
{street}, {city}, {state} - {zip_code}

🛒 Items:
{item_list}

💰 Total: {currency_symbol}{total}
💳 Payment: {payment_label}
🧾 Payment ID: {payment_id}
""",
    ),

    NotificationType.CUSTOMER_ORDER_CONFIRMED: NotificationTemplate(
        notification_type=NotificationType.CUSTOMER_ORDER_CONFIRMED,
        body="""
🎉 Thank you for your order, {full_name}!

💰 Total amount: {currency_symbol}{total}
💳 Payment method: {payment_label}

🚚 Your order will be shipped soon.

If you have any questions, just reply to this message.
""",
    ),
}


CURRENCY_SYMBOLS = {"INR": "₹", "USD": "$", "EUR": "€", "GBP": "£"}


def format_item_list(items: list[OrderItem]) -> str:
    """One "- name x quantity" line per item."""
    return "\n".join(f"- {item.name} x {item.quantity}" for item in items)


def format_amount(amount: Decimal) -> str:
    """Drop a trailing ".00" so whole amounts read naturally."""
    if amount == amount.to_integral_value():
        return str(amount.quantize(Decimal(1)))
    return f"{amount:.2f}"


def _payment_label(method: PaymentMethod, short: bool) -> str:
    if method == PaymentMethod.PREPAID:
        return "Prepaid"
    return "COD" if short else "Cash on Delivery"


def render_notification(notification_type: NotificationType, order: Order, currency: str = "INR") -> str:
    """Render the message for `notification_type` from a persisted order."""
    address = order.address
    context = {
        "full_name": address.full_name,
        "phone": address.phone,
        "street": address.street,
        "city": address.city,
        "state": address.state,
        "zip_code": address.zip_code,
        "item_list": format_item_list(order.items),
        "total": format_amount(order.total),
        "currency_symbol": CURRENCY_SYMBOLS.get(currency, f"{currency} "),
        "payment_label": _payment_label(
            order.payment_method,
            short=notification_type == NotificationType.ADMIN_NEW_ORDER,
        ),
        "payment_id": order.payment_id or "N/A",
    }
    return TEMPLATES[notification_type].render(**context)
