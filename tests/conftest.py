"""
Shared pytest fixtures for the order fulfillment tests.

Everything runs against in-process collaborators: the mock payment gateway,
the mock SMS gateway, the simulated chat transport and an in-memory order
store. Async code is driven with asyncio.run inside plain tests.
"""

from decimal import Decimal

import pytest

from notifications.chat_transport import SimulatedChatTransport
from notifications.sms_gateway import MockSmsGateway
from ordering.payments import MockPaymentGateway, sign
from shared.config import Settings
from shared.models import Address, OrderItem
from shared.order_store import OrderStore

TEST_SECRET = "test-secret"
ADMIN_PHONE = "9000000001"
CUSTOMER_PHONE = "09301680755"


@pytest.fixture
def settings() -> Settings:
    """Settings with fast retries and no files on disk."""
    return Settings(
        razorpay_key_secret=TEST_SECRET,
        admin_phone=ADMIN_PHONE,
        chat_retry_delay=0.0,
        chat_ready_timeout=2.0,
        chat_connect_timeout=2.0,
        notification_send_timeout=5.0,
        order_store_path=None,
    )


@pytest.fixture
def store() -> OrderStore:
    """Fresh in-memory order store."""
    return OrderStore()


@pytest.fixture
def payment_gateway() -> MockPaymentGateway:
    return MockPaymentGateway()


@pytest.fixture
def sms_gateway() -> MockSmsGateway:
    return MockSmsGateway()


@pytest.fixture
def transport() -> SimulatedChatTransport:
    """Simulated chat client that logs in instantly (no session dir)."""
    return SimulatedChatTransport()


@pytest.fixture
def secret() -> str:
    return TEST_SECRET


@pytest.fixture
def signer():
    """Sign a payment the way the gateway would, with the test secret."""
    def _sign(gateway_order_id: str, gateway_payment_id: str) -> str:
        return sign(gateway_order_id, gateway_payment_id, TEST_SECRET)
    return _sign


# =============================================================================
# Order Fixtures
# =============================================================================

@pytest.fixture
def items() -> list[OrderItem]:
    """Two books: 450 + 2 x 25 = 500."""
    return [
        OrderItem(name="The Pragmatic Programmer", unit_price=Decimal("450"), quantity=1),
        OrderItem(name="Bookmark set", unit_price=Decimal("25"), quantity=2),
    ]


@pytest.fixture
def address() -> Address:
    return Address(
        full_name="Asha Verma",
        street="12 MG Road",
        city="Indore",
        state="MP",
        zip_code="452001",
        email="asha@example.com",
        phone=CUSTOMER_PHONE,
    )


@pytest.fixture
def order_payload() -> dict:
    """The same order as a camelCase request body."""
    return {
        "items": [
            {"name": "The Pragmatic Programmer", "unitPrice": 450, "quantity": 1},
            {"name": "Bookmark set", "price": 25, "quantity": 2},
        ],
        "address": {
            "fullName": "Asha Verma",
            "street": "12 MG Road",
            "city": "Indore",
            "state": "MP",
            "zipCode": "452001",
            "email": "asha@example.com",
            "phone": CUSTOMER_PHONE,
        },
        "total": 500,
    }
