"""
Payment gateway adapters and signature verification.

Prepaid checkout happens in two steps:
1. The gateway creates an order ("intent") for the amount; the client pays
   against it.
2. The client returns the gateway's proof: the gateway order id, payment id
   and an HMAC-SHA256 signature over "<order_id>|<payment_id>" keyed with
   the shared secret. PaymentVerifier recomputes and compares it.
"""

import hashlib
import hmac
import logging
from abc import ABC, abstractmethod
from typing import Optional
from uuid import uuid4

import httpx

from shared.errors import GatewayError, ValidationError
from shared.models import PaymentProof

logger = logging.getLogger("payments")


def sign(gateway_order_id: str, gateway_payment_id: str, secret: str) -> str:
    """Hex HMAC-SHA256 of "<order_id>|<payment_id>", as the gateway computes it."""
    message = f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class PaymentVerifier:
    """Checks that a payment completion really came from the gateway."""

    def __init__(self, shared_secret: str):
        self._secret = shared_secret

    def verify(
        self,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
        shared_secret: Optional[str] = None,
    ) -> bool:
        """
        Constant-time comparison of `signature` against the expected HMAC.

        Returns False on any mismatch.

        Raises:
            ValidationError: If an input (or the secret) is missing.
        """
        for name, value in (
            ("gatewayOrderId", gateway_order_id),
            ("gatewayPaymentId", gateway_payment_id),
            ("signature", signature),
        ):
            if not value:
                raise ValidationError(name, f"Field '{name}' is required for payment verification")

        secret = shared_secret if shared_secret is not None else self._secret
        if not secret:
            raise ValidationError("sharedSecret", "Payment verification secret is not configured")

        expected = sign(gateway_order_id, gateway_payment_id, secret)
        return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))

    def verify_proof(self, proof: PaymentProof) -> bool:
        """Verify the gateway proof a client sent back after paying."""
        return self.verify(proof.gateway_order_id, proof.gateway_payment_id, proof.signature)


class PaymentGateway(ABC):
    """What the orchestrator needs from a payment processor."""

    @abstractmethod
    async def create_intent(self, amount_minor_units: int, currency: str, receipt_ref: str) -> dict:
        """
        Create a provisional gateway order.

        Returns:
            {"id": ..., "amount": ..., "currency": ...}

        Raises:
            GatewayError: If the gateway call fails.
        """

    async def aclose(self) -> None:
        """Release network resources."""


class MockPaymentGateway(PaymentGateway):
    """
    Mock gateway for development and tests.

    Records created intents; set `fail_with` to simulate a gateway outage.
    """

    def __init__(self, fail_with: Optional[str] = None):
        self.fail_with = fail_with
        self.created_intents: list[dict] = []

    async def create_intent(self, amount_minor_units: int, currency: str, receipt_ref: str) -> dict:
        if self.fail_with:
            logger.error(f"[GATEWAY FAILED] {self.fail_with}")
            raise GatewayError(f"Payment gateway error: {self.fail_with}")

        intent = {
            "id": f"order_{uuid4().hex[:14]}",
            "amount": amount_minor_units,
            "currency": currency,
            "receipt": receipt_ref,
        }
        self.created_intents.append(intent)
        logger.info(f"[GATEWAY] Created {intent['id']} for {amount_minor_units} {currency}")
        return intent


class RazorpayGateway(PaymentGateway):
    """Intents through the Razorpay Orders API."""

    BASE_URL = "https://api.razorpay.com/v1"

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._client = client or httpx.AsyncClient(
            base_url=self.BASE_URL,
            auth=(key_id, key_secret),
            timeout=timeout,
        )

    async def create_intent(self, amount_minor_units: int, currency: str, receipt_ref: str) -> dict:
        payload = {"amount": amount_minor_units, "currency": currency, "receipt": receipt_ref}
        try:
            response = await self._client.post("/orders", json=payload)
        except httpx.HTTPError as e:
            raise GatewayError(f"Payment gateway unreachable: {e}") from e

        if response.is_error:
            try:
                detail = response.json().get("error", {}).get("description", response.text)
            except ValueError:
                detail = response.text
            raise GatewayError(f"Payment gateway error {response.status_code}: {detail}")

        body = response.json()
        logger.info(f"[GATEWAY] Created {body.get('id')} for {body.get('amount')} {body.get('currency')}")
        return {"id": body["id"], "amount": body["amount"], "currency": body["currency"]}

    async def aclose(self) -> None:
        await self._client.aclose()
