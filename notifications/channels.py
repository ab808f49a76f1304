"""
Notification channels.

A channel delivers a text message to a phone number and reports the result
as a NotificationOutcome. Channels never raise for a delivery failure.

- ChatChannel: the chat session (readiness-gated, see session.py)
- SmsChannel: an SMS gateway (Twilio in production, mock otherwise)
"""

import logging
from abc import ABC, abstractmethod

from notifications.session import ChatSessionManager
from notifications.sms_gateway import SmsGateway
from shared.models import ChannelType, NotificationOutcome
from shared.phone import DEFAULT_FORMAT, InvalidPhoneNumber, PhoneNumberFormat

logger = logging.getLogger("notifications")


class NotificationChannel(ABC):
    """Deliver a text message to a phone number over one transport."""

    channel_type: ChannelType

    @abstractmethod
    async def send(self, phone: str, body: str) -> NotificationOutcome:
        """Send `body` to `phone`; failures come back as a failed outcome."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.channel_type.value})"


class ChatChannel(NotificationChannel):
    """Chat delivery through the process-wide chat session."""

    channel_type = ChannelType.CHAT

    def __init__(self, session: ChatSessionManager):
        self.session = session

    async def send(self, phone: str, body: str) -> NotificationOutcome:
        return await self.session.send(phone, body)


class SmsChannel(NotificationChannel):
    """SMS delivery through an external gateway."""

    channel_type = ChannelType.SMS

    def __init__(
        self,
        gateway: SmsGateway,
        from_number: str,
        phone_format: PhoneNumberFormat = DEFAULT_FORMAT,
    ):
        self.gateway = gateway
        self.from_number = from_number
        self.phone_format = phone_format

    async def send(self, phone: str, body: str) -> NotificationOutcome:
        try:
            recipient = self.phone_format.normalize(phone)
        except InvalidPhoneNumber as e:
            logger.warning(f"[SMS FAILED] {e}")
            return NotificationOutcome.failed(self.channel_type, phone, e)

        try:
            result = await self.gateway.send(to=f"+{recipient}", from_=self.from_number, body=body)
        except Exception as e:
            logger.error(f"[SMS FAILED] To: {recipient} | Error: {e}")
            return NotificationOutcome.failed(self.channel_type, recipient, e)

        logger.info(f"[SMS] Sent to {recipient} ({result.get('sid')})")
        return NotificationOutcome.sent(self.channel_type, recipient, result.get("sid"))
