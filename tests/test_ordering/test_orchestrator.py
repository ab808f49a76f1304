"""
Tests for the order workflow.

These tests verify the validate -> pay -> persist -> notify sequence end to
end over mock collaborators, and that nothing is stored or sent when an
earlier step fails.
"""

import asyncio
from decimal import Decimal

import pytest

from notifications.channels import ChatChannel, SmsChannel
from notifications.dispatcher import NotificationDispatcher
from notifications.retry import FixedDelay, RetryPolicy
from notifications.session import ChatSessionManager
from notifications.sms_gateway import MockSmsGateway
from ordering.orchestrator import OrderOrchestrator, validate_order_fields
from ordering.payments import MockPaymentGateway, PaymentVerifier
from shared.errors import GatewayError, PaymentVerificationError, PersistenceError, ValidationError
from shared.models import ChannelType, CodAcceptance, OrderItem, PaymentIntent
from shared.order_store import OrderStore

ADMIN_PHONE = "9000000001"
TEST_SECRET = "test-secret"


class BrokenStore(OrderStore):
    """Store whose writes always fail."""

    async def insert_order(self, record: dict) -> str:
        raise PersistenceError("Failed to save order: disk full")


@pytest.fixture
def orchestrator(store, payment_gateway, sms_gateway, transport) -> OrderOrchestrator:
    return build_orchestrator(store, payment_gateway, sms_gateway, transport)


def build_orchestrator(store, payment_gateway, sms_gateway, transport) -> OrderOrchestrator:
    session = ChatSessionManager(
        transport,
        retry_policy=RetryPolicy(max_attempts=3, delay=FixedDelay(0.0)),
        ready_timeout=2.0,
        connect_timeout=2.0,
    )
    return OrderOrchestrator(
        store=store,
        gateway=payment_gateway,
        verifier=PaymentVerifier(TEST_SECRET),
        dispatcher=NotificationDispatcher(send_timeout=5.0),
        channels={
            ChannelType.CHAT: ChatChannel(session),
            ChannelType.SMS: SmsChannel(sms_gateway, from_number="+15550001111"),
        },
        admin_phone=ADMIN_PHONE,
        admin_channels=[ChannelType.CHAT],
        customer_channels=[ChannelType.CHAT, ChannelType.SMS],
    )


class TestValidateOrderFields:
    """Tests for request field validation."""

    def test_valid(self, items, address):
        validate_order_fields(items, address, Decimal("500"))

    def test_no_items(self, address):
        with pytest.raises(ValidationError) as exc_info:
            validate_order_fields([], address, Decimal("0"))
        assert exc_info.value.field == "items"

    def test_item_without_name(self, items, address):
        items.append(OrderItem(name="  ", unit_price=Decimal("0")))

        with pytest.raises(ValidationError) as exc_info:
            validate_order_fields(items, address, Decimal("500"))
        assert exc_info.value.field == "items[2].name"

    def test_missing_address(self, items):
        with pytest.raises(ValidationError) as exc_info:
            validate_order_fields(items, None, Decimal("500"))
        assert exc_info.value.field == "address"

    def test_blank_address_field_named_in_camel_case(self, items, address):
        address.zip_code = ""

        with pytest.raises(ValidationError) as exc_info:
            validate_order_fields(items, address, Decimal("500"))
        assert exc_info.value.field == "address.zipCode"

    def test_total_mismatch(self, items, address):
        with pytest.raises(ValidationError) as exc_info:
            validate_order_fields(items, address, Decimal("499"))
        assert exc_info.value.field == "total"

    def test_total_with_sub_paisa_precision(self, items, address):
        with pytest.raises(ValidationError) as exc_info:
            validate_order_fields(items, address, Decimal("500.001"))
        assert exc_info.value.field == "total"

    def test_missing_total(self, items, address):
        with pytest.raises(ValidationError) as exc_info:
            validate_order_fields(items, address, None)
        assert exc_info.value.field == "total"


class TestCodOrder:
    """COD orders are stored and announced in one call."""

    def test_cod_order_persisted_and_notified(self, orchestrator, items, address, store, transport, sms_gateway):
        result = asyncio.run(orchestrator.initiate_order(items, address, "cod", Decimal("500")))

        assert isinstance(result, CodAcceptance)
        assert result.confirmation == "COD order placed successfully"

        record = store.get_order(result.order_id)
        assert record["paymentMethod"] == "cod"
        assert record["paymentId"] is None
        assert record["status"] == "confirmed"

        report = result.notification_report
        assert [o.channel for o in report.admin] == [ChannelType.CHAT]
        assert [o.channel for o in report.customer] == [ChannelType.CHAT, ChannelType.SMS]
        assert report.delivered_count == 3

        admin_body = transport.find_message_to("919000000001")
        assert "New order" in admin_body
        assert "COD" in admin_body
        assert "Cash on Delivery" in transport.find_message_to("919301680755")
        assert sms_gateway.find_message_to("+919301680755") is not None

    def test_invalid_payment_method(self, orchestrator, items, address, store):
        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(orchestrator.initiate_order(items, address, "card", Decimal("500")))

        assert exc_info.value.field == "paymentMethod"
        assert store.count() == 0

    def test_notification_failure_does_not_fail_order(self, store, payment_gateway, transport, items, address):
        orchestrator = build_orchestrator(
            store, payment_gateway, MockSmsGateway(fail_with="Carrier down"), transport
        )
        result = asyncio.run(orchestrator.initiate_order(items, address, "cod", Decimal("500")))

        sms_outcome = result.notification_report.customer[1]
        assert sms_outcome.delivered is False
        assert sms_outcome.error_detail == "Carrier down"
        assert store.count() == 1

    def test_persistence_failure_sends_nothing(self, payment_gateway, sms_gateway, transport, items, address):
        orchestrator = build_orchestrator(BrokenStore(), payment_gateway, sms_gateway, transport)

        with pytest.raises(PersistenceError):
            asyncio.run(orchestrator.initiate_order(items, address, "cod", Decimal("500")))

        assert transport.sent_messages == []
        assert sms_gateway.get_sent_count() == 0


class TestPrepaidOrder:
    """Prepaid orders are stored only after the signature checks out."""

    def test_initiate_returns_intent_and_stores_nothing(self, orchestrator, items, address, store, payment_gateway):
        intent = asyncio.run(orchestrator.initiate_order(items, address, "prepaid", Decimal("500")))

        assert isinstance(intent, PaymentIntent)
        assert intent.amount_minor_units == 50000
        assert intent.currency == "INR"
        assert payment_gateway.created_intents[0]["receipt"].startswith("receipt_")
        assert store.count() == 0

    def test_total_mismatch_never_reaches_gateway(self, orchestrator, items, address, store, payment_gateway):
        with pytest.raises(ValidationError):
            asyncio.run(orchestrator.initiate_order(items, address, "prepaid", Decimal("450")))

        assert payment_gateway.created_intents == []
        assert store.count() == 0

    def test_gateway_failure(self, store, sms_gateway, transport, items, address):
        orchestrator = build_orchestrator(
            store, MockPaymentGateway(fail_with="timeout"), sms_gateway, transport
        )

        with pytest.raises(GatewayError):
            asyncio.run(orchestrator.initiate_order(items, address, "prepaid", Decimal("500")))
        assert store.count() == 0

    def test_confirm_with_valid_signature(self, orchestrator, items, address, store, transport, signer):
        result = asyncio.run(
            orchestrator.confirm_payment(
                "order_abc", "pay_xyz", signer("order_abc", "pay_xyz"),
                items, address, Decimal("500"),
            )
        )

        record = store.get_order(result.order_id)
        assert record["paymentMethod"] == "prepaid"
        assert record["paymentId"] == "pay_xyz"
        assert record["gatewayOrderId"] == "order_abc"
        assert "pay_xyz" in transport.find_message_to("919000000001")
        assert result.notification_report.delivered_count == 3

    def test_confirm_with_bad_signature(self, orchestrator, items, address, store, transport, sms_gateway, signer):
        with pytest.raises(PaymentVerificationError):
            asyncio.run(
                orchestrator.confirm_payment(
                    "order_abc", "pay_xyz", signer("order_abc", "pay_other"),
                    items, address, Decimal("500"),
                )
            )

        assert store.count() == 0
        assert transport.sent_messages == []
        assert sms_gateway.get_sent_count() == 0

    def test_confirm_without_signature(self, orchestrator, items, address, store):
        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(
                orchestrator.confirm_payment("order_abc", "pay_xyz", None, items, address, Decimal("500"))
            )

        assert exc_info.value.field == "signature"
        assert store.count() == 0


class TestSaveOrderDirect:
    """Tests for the legacy direct-save path."""

    def test_confirmed_prepaid_requires_payment_id(self, orchestrator, items, address, store):
        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(
                orchestrator.save_order_direct(items, address, "prepaid", Decimal("500"), "confirmed")
            )

        assert exc_info.value.field == "paymentId"
        assert store.count() == 0

    def test_confirmed_prepaid_with_payment_id(self, orchestrator, items, address, store):
        result = asyncio.run(
            orchestrator.save_order_direct(
                items, address, "prepaid", Decimal("500"), "confirmed", payment_id="pay_1"
            )
        )

        assert result.confirmation == "Order saved successfully"
        assert store.get_order(result.order_id)["paymentId"] == "pay_1"

    def test_cod_drops_payment_id(self, orchestrator, items, address, store):
        result = asyncio.run(
            orchestrator.save_order_direct(
                items, address, "cod", Decimal("500"), "confirmed", payment_id="pay_1"
            )
        )

        assert store.get_order(result.order_id)["paymentId"] is None

    def test_pending_status(self, orchestrator, items, address, store):
        result = asyncio.run(
            orchestrator.save_order_direct(items, address, "prepaid", Decimal("500"), "pending")
        )

        assert store.get_order(result.order_id)["status"] == "pending"

    def test_invalid_status(self, orchestrator, items, address):
        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(
                orchestrator.save_order_direct(items, address, "cod", Decimal("500"), "shipped")
            )
        assert exc_info.value.field == "status"
