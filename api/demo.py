"""
Demonstration scripts for the checkout flows.

These run the whole workflow in-process against the mock payment gateway,
the mock SMS gateway, the simulated chat transport and an in-memory order
store, so nothing leaves the machine.
"""

import asyncio
import logging
from decimal import Decimal

from api.main import Services, build_services
from notifications.chat_transport import SimulatedChatTransport
from ordering.payments import sign
from shared.config import Settings
from shared.models import Address, OrderItem
from shared.order_store import OrderStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
    datefmt="%H:%M:%S",
)

DEMO_SECRET = "demo-secret"

DEMO_ITEMS = [
    OrderItem(name="The Pragmatic Programmer", unit_price=Decimal("450"), quantity=1),
    OrderItem(name="Bookmark set", unit_price=Decimal("25"), quantity=2),
]

DEMO_ADDRESS = Address(
    full_name="Asha Verma",
    street="12 MG Road",
    city="Indore",
    state="MP",
    zip_code="452001",
    email="asha@example.com",
    phone="09876543210",
)

DEMO_TOTAL = Decimal("500")


def _demo_services() -> Services:
    settings = Settings(
        razorpay_key_secret=DEMO_SECRET,
        admin_phone="9000000001",
        chat_retry_delay=0.0,
        order_store_path=None,
    )
    # No session dir: the simulated login keeps its credentials in memory
    return build_services(settings, store=OrderStore(), transport=SimulatedChatTransport())


def _print_report(report) -> None:
    print("\nNotifications:")
    for audience, outcomes in (("admin", report.admin), ("customer", report.customer)):
        for outcome in outcomes:
            print(f"  [{audience}] {outcome}")


async def _cod_scenario() -> None:
    services = _demo_services()
    services.session.start()
    try:
        result = await services.orchestrator.initiate_order(
            DEMO_ITEMS, DEMO_ADDRESS, "cod", DEMO_TOTAL
        )
        print(f"\n{result.confirmation}: order {result.order_id}")
        _print_report(result.notification_report)
    finally:
        await services.aclose()


async def _prepaid_scenario() -> None:
    services = _demo_services()
    services.session.start()
    try:
        intent = await services.orchestrator.initiate_order(
            DEMO_ITEMS, DEMO_ADDRESS, "prepaid", DEMO_TOTAL
        )
        print(f"\nPayment intent {intent.gateway_order_id}: {intent.amount_minor_units} {intent.currency}")
        print(f"Orders stored so far: {services.store.count()}")

        # The client pays; the gateway hands back a payment id and signature
        payment_id = "pay_demo0001"
        signature = sign(intent.gateway_order_id, payment_id, DEMO_SECRET)

        result = await services.orchestrator.confirm_payment(
            intent.gateway_order_id, payment_id, signature,
            DEMO_ITEMS, DEMO_ADDRESS, DEMO_TOTAL,
        )
        print(f"\n{result.confirmation}: order {result.order_id}")
        _print_report(result.notification_report)
    finally:
        await services.aclose()


def run_cod_demo():
    """Cash on delivery: stored and announced in one call."""
    print("\n" + "=" * 70)
    print("DEMO: Cash on delivery order")
    print("=" * 70)
    asyncio.run(_cod_scenario())


def run_prepaid_demo():
    """Prepaid: intent first, then the order once the signature checks out."""
    print("\n" + "=" * 70)
    print("DEMO: Prepaid order")
    print("=" * 70)
    asyncio.run(_prepaid_scenario())
