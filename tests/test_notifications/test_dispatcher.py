"""
Tests for the notification dispatcher.

These tests verify that channels are attempted independently: one failing,
raising or hanging channel never stops the others.
"""

import asyncio

from notifications.channels import NotificationChannel, SmsChannel
from notifications.dispatcher import NotificationDispatcher, NotificationRequest
from notifications.sms_gateway import MockSmsGateway
from shared.models import ChannelType, NotificationOutcome


class RaisingChannel(NotificationChannel):
    """Channel whose send blows up instead of returning an outcome."""

    channel_type = ChannelType.CHAT

    async def send(self, phone: str, body: str) -> NotificationOutcome:
        raise RuntimeError("transport crashed")


class SlowChannel(NotificationChannel):
    channel_type = ChannelType.CHAT

    def __init__(self, delay: float):
        self.delay = delay

    async def send(self, phone: str, body: str) -> NotificationOutcome:
        await asyncio.sleep(self.delay)
        return NotificationOutcome.sent(self.channel_type, phone, "late")


def sms_channel(gateway: MockSmsGateway) -> SmsChannel:
    return SmsChannel(gateway, from_number="+15550001111")


class TestDispatch:
    """Tests for NotificationDispatcher.dispatch."""

    def test_one_outcome_per_channel_in_order(self, sms_gateway):
        dispatcher = NotificationDispatcher()
        request = NotificationRequest(
            recipient_phone="9301680755",
            body="hello",
            channels=[RaisingChannel(), sms_channel(sms_gateway)],
        )

        outcomes = asyncio.run(dispatcher.dispatch(request))

        assert [o.channel for o in outcomes] == [ChannelType.CHAT, ChannelType.SMS]
        assert outcomes[0].delivered is False
        assert outcomes[0].error_type == "NotificationDeliveryError"
        assert "transport crashed" in outcomes[0].error_detail
        assert outcomes[1].delivered is True
        assert sms_gateway.get_sent_count() == 1

    def test_timeout_becomes_failed_outcome(self, sms_gateway):
        dispatcher = NotificationDispatcher(send_timeout=0.05)
        request = NotificationRequest(
            recipient_phone="9301680755",
            body="hello",
            channels=[SlowChannel(delay=1.0), sms_channel(sms_gateway)],
        )

        outcomes = asyncio.run(dispatcher.dispatch(request))

        assert outcomes[0].delivered is False
        assert "timed out" in outcomes[0].error_detail
        assert outcomes[1].delivered is True

    def test_no_channels(self):
        dispatcher = NotificationDispatcher()
        request = NotificationRequest(recipient_phone="9301680755", body="hello")

        assert asyncio.run(dispatcher.dispatch(request)) == []


class TestDispatchAll:
    """Tests for dispatching several requests together."""

    def test_results_follow_request_order(self, sms_gateway):
        dispatcher = NotificationDispatcher()
        admin = NotificationRequest("9000000001", "new order", [sms_channel(sms_gateway)])
        customer = NotificationRequest("9301680755", "thanks", [sms_channel(sms_gateway)])

        admin_outcomes, customer_outcomes = asyncio.run(dispatcher.dispatch_all([admin, customer]))

        assert admin_outcomes[0].recipient == "919000000001"
        assert customer_outcomes[0].recipient == "919301680755"
        assert sms_gateway.get_sent_count() == 2
