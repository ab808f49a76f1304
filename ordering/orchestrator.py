"""
Order fulfillment workflow.

validate -> settle payment -> persist -> notify -> respond

- Prepaid orders are split in two calls. `initiate_order` only creates a
  gateway intent; nothing is stored until `confirm_payment` proves the
  payment with a valid gateway signature. Abandoned intents never reach the
  store (the gateway stays the source of truth for them).
- COD orders are confirmed immediately.
- Persistence happens before any notification. A failed write aborts the
  request and nothing is sent.
- Notifications are best effort: channel failures end up in the report,
  never in an exception.
"""

import logging
import time
from decimal import Decimal
from typing import Optional, Union

from pydantic.alias_generators import to_camel

from notifications.channels import NotificationChannel
from notifications.dispatcher import NotificationDispatcher, NotificationRequest
from ordering.payments import PaymentGateway, PaymentVerifier
from shared.errors import GatewayError, PaymentVerificationError, ValidationError
from shared.models import (
    REQUIRED_ADDRESS_FIELDS,
    Address,
    ChannelType,
    CodAcceptance,
    NotificationReport,
    Order,
    OrderConfirmation,
    OrderItem,
    OrderStatus,
    PaymentIntent,
    PaymentMethod,
    PaymentProof,
    compute_total,
    is_whole_minor_units,
    to_minor_units,
)
from shared.order_store import OrderStore
from shared.templates import NotificationType, render_notification

logger = logging.getLogger("order_orchestrator")


def validate_order_fields(
    items: Optional[list[OrderItem]],
    address: Optional[Address],
    total: Optional[Decimal],
) -> None:
    """
    Check items, address and total before any state transition.

    Raises:
        ValidationError: Naming the first offending field.
    """
    if not items:
        raise ValidationError("items", "Order must contain at least one item")
    for index, item in enumerate(items):
        if not isinstance(item.name, str) or not item.name.strip():
            raise ValidationError(f"items[{index}].name", f"Item {index} needs a name")

    if address is None:
        raise ValidationError("address")
    for name in REQUIRED_ADDRESS_FIELDS:
        value = getattr(address, name)
        if not isinstance(value, str) or not value.strip():
            field = to_camel(name)
            raise ValidationError(
                f"address.{field}",
                f"Address field '{field}' is required and must be a non-empty string",
            )

    if total is None:
        raise ValidationError("total")
    if not is_whole_minor_units(total):
        raise ValidationError("total", "Total has more precision than the currency allows")
    if compute_total(items) != total:
        raise ValidationError("total", "Total does not match the sum of item prices")


def parse_payment_method(value: Optional[str]) -> PaymentMethod:
    if not value:
        raise ValidationError("paymentMethod")
    try:
        return PaymentMethod(value)
    except ValueError:
        raise ValidationError("paymentMethod", f"Invalid payment method: {value!r}") from None


class OrderOrchestrator:
    """
    Sequences validation, payment, persistence and notification.

    All collaborators are injected; the orchestrator holds one reference to
    each and never constructs its own.
    """

    def __init__(
        self,
        store: OrderStore,
        gateway: PaymentGateway,
        verifier: PaymentVerifier,
        dispatcher: NotificationDispatcher,
        channels: dict[ChannelType, NotificationChannel],
        admin_phone: str,
        admin_channels: list[ChannelType],
        customer_channels: list[ChannelType],
        currency: str = "INR",
    ):
        self.store = store
        self.gateway = gateway
        self.verifier = verifier
        self.dispatcher = dispatcher
        self.channels = channels
        self.admin_phone = admin_phone
        self.admin_channels = admin_channels
        self.customer_channels = customer_channels
        self.currency = currency

    # =========================================================================
    # Operations
    # =========================================================================

    async def initiate_order(
        self,
        items: Optional[list[OrderItem]],
        address: Optional[Address],
        payment_method: Optional[str],
        total: Optional[Decimal],
    ) -> Union[PaymentIntent, CodAcceptance]:
        """
        Start checkout.

        Prepaid: returns a PaymentIntent and stores nothing.
        COD: stores the confirmed order, notifies, returns CodAcceptance.
        """
        method = parse_payment_method(payment_method)
        validate_order_fields(items, address, total)

        if method == PaymentMethod.PREPAID:
            return await self._create_intent(total)

        order = Order(
            items=items,
            address=address,
            payment_method=PaymentMethod.COD,
            total=total,
            payment_id=None,
            status=OrderStatus.CONFIRMED,
        )
        order_id, report = await self._persist_and_notify(order)
        return CodAcceptance(
            confirmation="COD order placed successfully",
            order_id=order_id,
            notification_report=report,
        )

    async def confirm_payment(
        self,
        gateway_order_id: Optional[str],
        gateway_payment_id: Optional[str],
        signature: Optional[str],
        items: Optional[list[OrderItem]],
        address: Optional[Address],
        total: Optional[Decimal],
    ) -> OrderConfirmation:
        """
        Complete a prepaid checkout with the gateway's proof.

        Raises:
            PaymentVerificationError: If the signature does not match. Nothing
                is stored or sent in that case.
        """
        validate_order_fields(items, address, total)

        proof = PaymentProof(
            gateway_order_id=gateway_order_id,
            gateway_payment_id=gateway_payment_id,
            signature=signature,
        )
        if not self.verifier.verify_proof(proof):
            logger.warning(f"Invalid payment signature for gateway order {gateway_order_id}")
            raise PaymentVerificationError("Invalid payment signature")

        logger.info(f"Payment {gateway_payment_id} verified for gateway order {gateway_order_id}")
        order = Order(
            items=items,
            address=address,
            payment_method=PaymentMethod.PREPAID,
            total=total,
            payment_id=gateway_payment_id,
            gateway_order_id=gateway_order_id,
            status=OrderStatus.CONFIRMED,
        )
        order_id, report = await self._persist_and_notify(order)
        return OrderConfirmation(
            confirmation="Payment verified and order saved successfully",
            order_id=order_id,
            notification_report=report,
        )

    async def save_order_direct(
        self,
        items: Optional[list[OrderItem]],
        address: Optional[Address],
        payment_method: Optional[str],
        total: Optional[Decimal],
        status: Optional[str],
        payment_id: Optional[str] = None,
    ) -> OrderConfirmation:
        """
        Store and announce an order the caller already holds.

        Kept for integrations that settle payment elsewhere; no payment check.
        """
        method = parse_payment_method(payment_method)
        if not status:
            raise ValidationError("status")
        try:
            order_status = OrderStatus(status)
        except ValueError:
            raise ValidationError("status", f"Invalid order status: {status!r}") from None
        validate_order_fields(items, address, total)

        settled_prepaid = method == PaymentMethod.PREPAID and order_status == OrderStatus.CONFIRMED
        if settled_prepaid and not payment_id:
            raise ValidationError("paymentId", "Confirmed prepaid orders need a paymentId")

        order = Order(
            items=items,
            address=address,
            payment_method=method,
            total=total,
            payment_id=payment_id if settled_prepaid else None,
            status=order_status,
        )
        order_id, report = await self._persist_and_notify(order)
        return OrderConfirmation(
            confirmation="Order saved successfully",
            order_id=order_id,
            notification_report=report,
        )

    # =========================================================================
    # Steps
    # =========================================================================

    async def _create_intent(self, total: Decimal) -> PaymentIntent:
        amount = to_minor_units(total)
        receipt_ref = f"receipt_{int(time.time() * 1000)}"
        try:
            created = await self.gateway.create_intent(amount, self.currency, receipt_ref)
        except GatewayError:
            raise
        except Exception as e:
            raise GatewayError(f"Payment gateway error: {e}") from e

        logger.info(f"Payment intent {created['id']} created for {amount} {created['currency']}")
        return PaymentIntent(
            gateway_order_id=created["id"],
            amount_minor_units=created["amount"],
            currency=created["currency"],
        )

    async def _persist_and_notify(self, order: Order) -> tuple[str, NotificationReport]:
        order_id = await self.store.insert_order(order.to_record())
        logger.info(
            f"Order {order_id} confirmed: {order.payment_method.value}, total {order.total}"
        )
        report = await self._notify(order)
        logger.info(
            f"Order {order_id}: {report.delivered_count}/{len(report.outcomes)} notification(s) delivered"
        )
        return order_id, report

    def _channels_for(self, channel_types: list[ChannelType]) -> list[NotificationChannel]:
        return [self.channels[c] for c in channel_types if c in self.channels]

    async def _notify(self, order: Order) -> NotificationReport:
        admin = NotificationRequest(
            recipient_phone=self.admin_phone,
            body=render_notification(NotificationType.ADMIN_NEW_ORDER, order, self.currency),
            channels=self._channels_for(self.admin_channels),
        )
        customer = NotificationRequest(
            recipient_phone=order.address.phone,
            body=render_notification(NotificationType.CUSTOMER_ORDER_CONFIRMED, order, self.currency),
            channels=self._channels_for(self.customer_channels),
        )
        admin_outcomes, customer_outcomes = await self.dispatcher.dispatch_all([admin, customer])
        return NotificationReport(admin=admin_outcomes, customer=customer_outcomes)
