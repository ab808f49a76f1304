"""
SMS gateway adapters.

The SMS channel needs one call from a gateway: `send(to, from_, body)`
returning a dict with the gateway-issued message `sid`. Any failure is raised
as SmsGatewayError carrying the gateway's error text.

- MockSmsGateway logs sends and tracks them for test assertions
- TwilioSmsGateway talks to the Twilio Messages REST API over httpx
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional
from uuid import uuid4

import httpx

logger = logging.getLogger("sms_gateway")


class SmsGatewayError(Exception):
    """The SMS gateway rejected or failed the request."""


class SmsGateway(ABC):

    @abstractmethod
    async def send(self, to: str, from_: str, body: str) -> dict:
        """Send `body` to `to` (E.164). Returns at least {"sid": ...}."""

    async def aclose(self) -> None:
        """Release network resources."""


class MockSmsGateway(SmsGateway):
    """
    Mock SMS gateway.

    Logs sends to console and tracks them for test assertions.
    Set `fail_with` to simulate a gateway error.
    """

    # SMS typically have character limits
    MAX_LENGTH = 160

    def __init__(self, fail_with: Optional[str] = None):
        self.fail_with = fail_with
        self.sent_messages: list[dict] = []

    async def send(self, to: str, from_: str, body: str) -> dict:
        if len(body) > self.MAX_LENGTH:
            logger.warning(
                f"[SMS] Message length ({len(body)}) exceeds {self.MAX_LENGTH} chars, "
                "may be split into multiple messages"
            )

        if self.fail_with:
            logger.error(f"[SMS FAILED] To: {to} | Error: {self.fail_with}")
            raise SmsGatewayError(self.fail_with)

        sid = f"SM{uuid4().hex}"
        self.sent_messages.append({"sid": sid, "to": to, "from": from_, "body": body})
        logger.info(f"[SMS] To: {to} | sid={sid}")
        logger.debug(f"[SMS BODY] {body}")
        return {"sid": sid}

    def get_sent_count(self) -> int:
        return len(self.sent_messages)

    def find_message_to(self, recipient: str) -> Optional[dict]:
        for msg in self.sent_messages:
            if msg["to"] == recipient:
                return msg
        return None


class TwilioSmsGateway(SmsGateway):
    """SMS over the Twilio Messages API."""

    BASE_URL = "https://api.twilio.com"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.account_sid = account_sid
        self._client = client or httpx.AsyncClient(
            base_url=self.BASE_URL,
            auth=(account_sid, auth_token),
            timeout=timeout,
        )

    async def send(self, to: str, from_: str, body: str) -> dict:
        url = f"/2010-04-01/Accounts/{self.account_sid}/Messages.json"
        try:
            response = await self._client.post(url, data={"To": to, "From": from_, "Body": body})
        except httpx.HTTPError as e:
            raise SmsGatewayError(f"SMS gateway unreachable: {e}") from e

        if response.is_error:
            try:
                message = response.json().get("message", response.text)
            except ValueError:
                message = response.text
            raise SmsGatewayError(f"SMS gateway error {response.status_code}: {message}")

        payload = response.json()
        return {"sid": payload.get("sid"), "status": payload.get("status")}

    async def aclose(self) -> None:
        await self._client.aclose()
