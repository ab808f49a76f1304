"""
Notification delivery.

- Chat session lifecycle with bounded connect retries (session.py, retry.py)
- Chat and SMS channels (channels.py)
- Concurrent multi-channel dispatch (dispatcher.py)
"""

from notifications.channels import ChatChannel, NotificationChannel, SmsChannel
from notifications.dispatcher import NotificationDispatcher, NotificationRequest
from notifications.session import ChatSessionManager, SessionState

__all__ = [
    "ChatChannel",
    "NotificationChannel",
    "SmsChannel",
    "NotificationDispatcher",
    "NotificationRequest",
    "ChatSessionManager",
    "SessionState",
]
