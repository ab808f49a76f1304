"""
Fan-out of one notification over several channels.

Every channel in a request is attempted concurrently and independently: a
channel that raises or times out becomes a failed outcome, and the other
channels still run. Separate requests (the admin and customer copies of an
order event) carry no ordering guarantee and can be dispatched together.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from notifications.channels import NotificationChannel
from shared.errors import NotificationDeliveryError
from shared.models import NotificationOutcome

logger = logging.getLogger("notification_dispatcher")


@dataclass
class NotificationRequest:
    """One logical message to one recipient, over the given channels."""
    recipient_phone: str
    body: str
    channels: list[NotificationChannel] = field(default_factory=list)


class NotificationDispatcher:
    """
    Args:
        send_timeout: Seconds a single channel send may take before it is
            reported as failed. None waits as long as the channel does.
    """

    def __init__(self, send_timeout: Optional[float] = None):
        self.send_timeout = send_timeout

    async def _send_one(self, channel: NotificationChannel, request: NotificationRequest) -> NotificationOutcome:
        try:
            return await asyncio.wait_for(
                channel.send(request.recipient_phone, request.body),
                timeout=self.send_timeout,
            )
        except asyncio.TimeoutError:
            error = NotificationDeliveryError(f"Send timed out after {self.send_timeout:g}s")
        except Exception as e:
            error = NotificationDeliveryError(f"{type(e).__name__}: {e}")

        logger.error(f"{channel!r} failed for {request.recipient_phone}: {error}")
        return NotificationOutcome.failed(channel.channel_type, request.recipient_phone, error)

    async def dispatch(self, request: NotificationRequest) -> list[NotificationOutcome]:
        """Send over every channel of `request`; one outcome per channel, in channel order."""
        if not request.channels:
            return []
        outcomes = await asyncio.gather(
            *(self._send_one(channel, request) for channel in request.channels)
        )
        delivered = sum(1 for o in outcomes if o.delivered)
        logger.info(
            f"Notification to {request.recipient_phone}: "
            f"{delivered}/{len(outcomes)} channel(s) delivered"
        )
        return list(outcomes)

    async def dispatch_all(self, requests: list[NotificationRequest]) -> list[list[NotificationOutcome]]:
        """Dispatch several independent requests concurrently."""
        return list(await asyncio.gather(*(self.dispatch(r) for r in requests)))
