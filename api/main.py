"""
FastAPI application for order fulfillment.

Endpoints:
- POST /orders/initiate         start checkout (prepaid intent or COD order)
- POST /orders/confirm-payment  complete a prepaid checkout with gateway proof
- POST /orders/save             legacy direct save of a fully formed order
- GET  /chat/status             chat session state
- GET  /health                  health check

Run with:
    uv run uvicorn api.main:app --reload

The chat session and the order store are process-wide singletons held by the
Services container. The lifespan starts the chat session in the background
on startup and destroys it on shutdown (uvicorn turns SIGINT/SIGTERM into a
lifespan shutdown).
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Optional, Union

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import Field

from notifications.channels import ChatChannel, NotificationChannel, SmsChannel
from notifications.chat_transport import ChatTransport, SimulatedChatTransport
from notifications.dispatcher import NotificationDispatcher
from notifications.retry import ExponentialBackoff, FixedDelay, RetryPolicy
from notifications.session import ChatSessionManager, SessionStatus
from notifications.sms_gateway import MockSmsGateway, SmsGateway, TwilioSmsGateway
from ordering.orchestrator import OrderOrchestrator
from ordering.payments import MockPaymentGateway, PaymentGateway, PaymentVerifier, RazorpayGateway
from shared.config import Settings, get_settings
from shared.errors import OrderError
from shared.models import (
    Address,
    CamelModel,
    ChannelType,
    CodAcceptance,
    OrderConfirmation,
    OrderItem,
    PaymentIntent,
)
from shared.order_store import OrderStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger("order_api")


# =============================================================================
# Service container
# =============================================================================

@dataclass
class Services:
    """Everything the endpoints need, built once per process."""
    settings: Settings
    store: OrderStore
    gateway: PaymentGateway
    sms_gateway: SmsGateway
    session: ChatSessionManager
    orchestrator: OrderOrchestrator

    async def aclose(self) -> None:
        await self.session.destroy()
        await self.gateway.aclose()
        await self.sms_gateway.aclose()


def build_retry_policy(settings: Settings) -> RetryPolicy:
    if settings.chat_retry_backoff == "exponential":
        delay = ExponentialBackoff(initial=settings.chat_retry_delay)
    else:
        delay = FixedDelay(settings.chat_retry_delay)
    return RetryPolicy(max_attempts=settings.chat_max_connect_attempts, delay=delay)


def build_services(
    settings: Settings,
    store: Optional[OrderStore] = None,
    gateway: Optional[PaymentGateway] = None,
    sms_gateway: Optional[SmsGateway] = None,
    transport: Optional[ChatTransport] = None,
) -> Services:
    """
    Wire the service graph from settings.

    Collaborators not passed in are built from settings: real HTTP gateways
    when credentials are configured, mocks otherwise.
    """
    if store is None:
        path = Path(settings.order_store_path) if settings.order_store_path else None
        store = OrderStore(path)

    if gateway is None:
        if settings.razorpay_configured:
            gateway = RazorpayGateway(settings.razorpay_key_id, settings.razorpay_key_secret)
        else:
            logger.warning("Payment gateway credentials not set, using mock gateway")
            gateway = MockPaymentGateway()

    if sms_gateway is None:
        if settings.twilio_configured:
            sms_gateway = TwilioSmsGateway(settings.twilio_account_sid, settings.twilio_auth_token)
        else:
            logger.warning("SMS gateway credentials not set, using mock SMS gateway")
            sms_gateway = MockSmsGateway()

    if transport is None:
        logger.warning("Chat transport not configured, using simulated transport")
        transport = SimulatedChatTransport(session_dir=Path(settings.chat_session_dir))

    phone_format = settings.phone_format
    session = ChatSessionManager(
        transport,
        retry_policy=build_retry_policy(settings),
        ready_timeout=settings.chat_ready_timeout,
        connect_timeout=settings.chat_connect_timeout,
        discard_credentials_on_retry=settings.chat_discard_credentials,
        phone_format=phone_format,
    )
    channels: dict[ChannelType, NotificationChannel] = {
        ChannelType.CHAT: ChatChannel(session),
        ChannelType.SMS: SmsChannel(sms_gateway, settings.sms_from_number, phone_format),
    }
    orchestrator = OrderOrchestrator(
        store=store,
        gateway=gateway,
        verifier=PaymentVerifier(settings.razorpay_key_secret),
        dispatcher=NotificationDispatcher(send_timeout=settings.notification_send_timeout),
        channels=channels,
        admin_phone=settings.admin_phone,
        admin_channels=settings.admin_channels,
        customer_channels=settings.customer_channels,
        currency=settings.currency,
    )
    return Services(
        settings=settings,
        store=store,
        gateway=gateway,
        sms_gateway=sms_gateway,
        session=session,
        orchestrator=orchestrator,
    )


# Module-level instance (tests swap it with reset_services)
_services: Optional[Services] = None


def get_services() -> Services:
    """Get the process-wide services, building them from settings once."""
    global _services
    if _services is None:
        _services = build_services(get_settings())
    return _services


def reset_services(services: Optional[Services] = None) -> None:
    """Replace the process-wide services (for testing)."""
    global _services
    _services = services


# =============================================================================
# Request / response models
# =============================================================================

class InitiateOrderRequest(CamelModel):
    items: list[OrderItem] = Field(default_factory=list)
    address: Optional[Address] = None
    payment_method: Optional[str] = None
    total: Optional[Decimal] = None


class ConfirmPaymentRequest(CamelModel):
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    signature: Optional[str] = None
    items: list[OrderItem] = Field(default_factory=list)
    address: Optional[Address] = None
    total: Optional[Decimal] = None


class SaveOrderRequest(CamelModel):
    items: list[OrderItem] = Field(default_factory=list)
    address: Optional[Address] = None
    payment_method: Optional[str] = None
    total: Optional[Decimal] = None
    payment_id: Optional[str] = None
    status: Optional[str] = None


class PaymentIntentResponse(CamelModel):
    payment_intent: PaymentIntent


# =============================================================================
# Application
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the chat session on startup; destroy it on shutdown."""
    services = get_services()
    logging.info("Starting order fulfillment API")
    services.session.start()
    try:
        yield
    finally:
        logging.info("Shutting down: closing chat session")
        await services.aclose()


app = FastAPI(
    title="Order Fulfillment API",
    description="Order checkout with payment verification and chat/SMS notifications.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type"],
)


@app.exception_handler(OrderError)
async def order_error_handler(request: Request, exc: OrderError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.url.path} failed: {exc}")
    content = {"detail": exc.message}
    field = getattr(exc, "field", None)
    if field:
        content["field"] = field
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies are a client error (400), reported with the field path."""
    first = exc.errors()[0] if exc.errors() else {}
    loc = list(first.get("loc", ()))
    if loc and loc[0] == "body":
        loc = loc[1:]
        # Undecodable JSON reports a byte offset here, not a field
        if loc and isinstance(loc[0], int):
            loc = loc[1:]
    loc = [str(part) for part in loc]
    return JSONResponse(
        status_code=400,
        content={"detail": first.get("msg", "Invalid request"), "field": ".".join(loc) or None},
    )


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "order-fulfillment"}


@app.get("/chat/status", response_model=SessionStatus, tags=["Notifications"])
def chat_status() -> SessionStatus:
    """Current state of the chat session."""
    return get_services().session.status()


@app.post(
    "/orders/initiate",
    response_model=Union[PaymentIntentResponse, CodAcceptance],
    tags=["Orders"],
)
async def initiate_order(request: InitiateOrderRequest):
    """
    Start checkout.

    - prepaid: returns the gateway payment intent; nothing is stored yet
    - cod: stores the confirmed order and returns the notification report
    """
    result = await get_services().orchestrator.initiate_order(
        items=request.items,
        address=request.address,
        payment_method=request.payment_method,
        total=request.total,
    )
    if isinstance(result, PaymentIntent):
        return PaymentIntentResponse(payment_intent=result)
    return result


@app.post("/orders/confirm-payment", response_model=OrderConfirmation, tags=["Orders"])
async def confirm_payment(request: ConfirmPaymentRequest) -> OrderConfirmation:
    """Verify the gateway signature, then store and announce the order."""
    return await get_services().orchestrator.confirm_payment(
        gateway_order_id=request.gateway_order_id,
        gateway_payment_id=request.gateway_payment_id,
        signature=request.signature,
        items=request.items,
        address=request.address,
        total=request.total,
    )


@app.post("/orders/save", response_model=OrderConfirmation, tags=["Orders"])
async def save_order(request: SaveOrderRequest) -> OrderConfirmation:
    """Legacy direct save: store and announce an order without a payment check."""
    return await get_services().orchestrator.save_order_direct(
        items=request.items,
        address=request.address,
        payment_method=request.payment_method,
        total=request.total,
        status=request.status,
        payment_id=request.payment_id,
    )
