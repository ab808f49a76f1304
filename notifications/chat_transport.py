"""
Chat transport contract and a simulated transport.

A chat transport is an external chat-automation client holding one logged-in
identity. It reports lifecycle events (qr, authenticated, ready,
auth_failure, disconnected) to a single listener, the ChatSessionManager, and
exposes a few async methods to check and message recipients.

SimulatedChatTransport stands in for a real client the way the mock
channels do elsewhere: it logs what would be sent, tracks messages for test
assertions, and can be told to fail in the ways a real session does.
"""

import asyncio
import json
import logging
import shutil
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Callable, Optional
from uuid import uuid4

logger = logging.getLogger("chat_transport")


class SessionEvent(str, Enum):
    """Lifecycle events a transport reports."""
    QR = "qr"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    AUTH_FAILURE = "auth_failure"
    DISCONNECTED = "disconnected"


# (event, detail) -> None
EventListener = Callable[[SessionEvent, Optional[str]], None]


class ChatTransport(ABC):
    """What the session manager needs from a chat-automation client."""

    def __init__(self):
        self._listener: Optional[EventListener] = None

    def set_listener(self, listener: EventListener) -> None:
        self._listener = listener

    def emit(self, event: SessionEvent, detail: Optional[str] = None) -> None:
        if self._listener is not None:
            self._listener(event, detail)

    @abstractmethod
    async def initialize(self) -> None:
        """Start logging in. Progress is reported through events."""

    @abstractmethod
    async def is_registered(self, recipient: str) -> bool:
        """Whether `recipient` (normalized digits) has an account on this channel."""

    @abstractmethod
    async def send_message(self, recipient: str, body: str) -> Optional[str]:
        """Send a text message. Returns the transport's message id, if it gives one."""

    @abstractmethod
    async def destroy(self) -> None:
        """Close the client and release its resources."""

    @abstractmethod
    async def discard_credentials(self) -> None:
        """Delete persisted login credentials so the next login starts fresh."""


class SimulatedChatTransport(ChatTransport):
    """
    In-process chat transport.

    Login flow: without stored credentials it emits a QR payload, waits
    `scan_delay` seconds (the "scan"), then authenticates, stores credentials
    and becomes ready. With stored credentials it skips the QR step.

    Failure knobs (for tests and demos):
        fail_initialize: number of upcoming initialize() calls that raise
        corrupt_credentials: stored credentials are rejected with auth_failure
            until discarded
        stall: never emit ready (exercise connect timeouts)
        registered: recipients known to the channel (None means everyone)
        return_message_ids: when False, send_message returns None
        fail_send_with: error text raised by send_message
    """

    def __init__(
        self,
        session_dir: Optional[Path] = None,
        identity: str = "919000000000",
        scan_delay: float = 0.0,
        has_credentials: bool = False,
        registered: Optional[set[str]] = None,
    ):
        super().__init__()
        self.session_dir = Path(session_dir) if session_dir is not None else None
        self.identity = identity
        self.scan_delay = scan_delay
        self.registered = registered
        self._has_credentials = has_credentials or self._credentials_file_exists()

        self.fail_initialize = 0
        self.corrupt_credentials = False
        self.stall = False
        self.return_message_ids = True
        self.fail_send_with: Optional[str] = None

        self.initialize_calls = 0
        self.destroy_calls = 0
        self.discard_calls = 0
        self.sent_messages: list[tuple[str, str]] = []
        self._boot_task: Optional[asyncio.Task] = None

    # =========================================================================
    # Credentials
    # =========================================================================

    @property
    def _credentials_file(self) -> Optional[Path]:
        if self.session_dir is None:
            return None
        return self.session_dir / "credentials.json"

    def _credentials_file_exists(self) -> bool:
        path = self._credentials_file
        return path is not None and path.exists()

    def _store_credentials(self) -> None:
        self._has_credentials = True
        path = self._credentials_file
        if path is not None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps({"identity": self.identity}))

    @property
    def has_credentials(self) -> bool:
        return self._has_credentials

    async def discard_credentials(self) -> None:
        self.discard_calls += 1
        self._has_credentials = False
        self.corrupt_credentials = False
        if self.session_dir is not None and self.session_dir.exists():
            await asyncio.to_thread(shutil.rmtree, self.session_dir)
        logger.warning("Stored chat credentials discarded")

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize(self) -> None:
        self.initialize_calls += 1
        if self.fail_initialize > 0:
            self.fail_initialize -= 1
            raise ConnectionError("Chat client failed to start")
        self._boot_task = asyncio.get_running_loop().create_task(self._boot())

    async def _boot(self) -> None:
        await asyncio.sleep(0)
        if self._has_credentials:
            if self.corrupt_credentials:
                self.emit(SessionEvent.AUTH_FAILURE, "stored session rejected")
                return
        else:
            self.emit(SessionEvent.QR, f"sim-qr-{uuid4().hex[:12]}")
            await asyncio.sleep(self.scan_delay)
            self._store_credentials()

        self.emit(SessionEvent.AUTHENTICATED)
        if self.stall:
            return
        await asyncio.sleep(0)
        self.emit(SessionEvent.READY, self.identity)

    def disconnect(self, reason: str = "connection lost") -> None:
        """Simulate the remote side dropping the session."""
        self.emit(SessionEvent.DISCONNECTED, reason)

    async def destroy(self) -> None:
        self.destroy_calls += 1
        if self._boot_task is not None and not self._boot_task.done():
            self._boot_task.cancel()
        self._boot_task = None

    # =========================================================================
    # Messaging
    # =========================================================================

    async def is_registered(self, recipient: str) -> bool:
        return self.registered is None or recipient in self.registered

    async def send_message(self, recipient: str, body: str) -> Optional[str]:
        if self.fail_send_with:
            raise ConnectionError(self.fail_send_with)
        self.sent_messages.append((recipient, body))
        logger.info(f"[CHAT] To: {recipient}")
        logger.debug(f"[CHAT BODY] {body}")
        if not self.return_message_ids:
            return None
        return f"sim-{uuid4().hex[:16]}"

    def find_message_to(self, recipient: str) -> Optional[str]:
        """Body of the first message sent to `recipient`."""
        for to, body in self.sent_messages:
            if to == recipient:
                return body
        return None
