"""
Chat session lifecycle and readiness-gated sending.

The chat transport supports exactly one logged-in identity, so the process
holds exactly one ChatSessionManager. It is constructed once by the service
container and injected wherever messages are sent.

State machine:

    DISCONNECTED --connect--> CONNECTING --qr--> AWAITING_SCAN
    CONNECTING / AWAITING_SCAN --authenticated--> AUTHENTICATED --ready--> READY
    any --error/timeout--> FAILED --retry--> CONNECTING
    READY --disconnected--> DISCONNECTED (then reconnects)
    any --destroy--> DISCONNECTED (terminal)

All transport events go through `handle_event`, the single coordinator for
state changes. Connect attempts run under a RetryPolicy. When it is
exhausted the manager stays FAILED and every send fails fast with
SessionUnavailable until someone calls `connect()` again.
"""

import asyncio
import contextlib
import dataclasses
import logging
from enum import Enum
from typing import Optional
from uuid import uuid4

from notifications.chat_transport import ChatTransport, SessionEvent
from notifications.retry import FixedDelay, RetryExhausted, RetryPolicy
from shared.errors import NotificationDeliveryError, NotReadyError, SessionUnavailable
from shared.models import CamelModel, ChannelType, NotificationOutcome
from shared.phone import DEFAULT_FORMAT, InvalidPhoneNumber, PhoneNumberFormat

logger = logging.getLogger("chat_session")


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_SCAN = "awaiting_scan"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    FAILED = "failed"


# FAILED and DISCONNECTED are reachable from every state
_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.DISCONNECTED: {SessionState.CONNECTING},
    SessionState.CONNECTING: {SessionState.AWAITING_SCAN, SessionState.AUTHENTICATED},
    SessionState.AWAITING_SCAN: {SessionState.AWAITING_SCAN, SessionState.AUTHENTICATED},
    SessionState.AUTHENTICATED: {SessionState.READY},
    SessionState.READY: set(),
    SessionState.FAILED: {SessionState.CONNECTING},
}


class SessionStatus(CamelModel):
    state: SessionState
    ready: bool
    connected_as: Optional[str] = None
    awaiting_scan: bool = False
    attempts: int = 0
    exhausted: bool = False
    last_error: Optional[str] = None


class ChatSessionManager:
    """
    Owns the single chat session and gates every send on its readiness.

    Args:
        transport: The chat-automation client.
        retry_policy: Bounds connect attempts (default: 3 attempts, 5s apart).
        ready_timeout: Default seconds `wait_until_ready` waits.
        connect_timeout: Seconds one connect attempt may take to reach READY.
        discard_credentials_on_retry: Delete stored credentials before the
            third and later attempts.
        phone_format: Normalization rule for recipient numbers.
    """

    def __init__(
        self,
        transport: ChatTransport,
        retry_policy: Optional[RetryPolicy] = None,
        ready_timeout: float = 30.0,
        connect_timeout: float = 60.0,
        discard_credentials_on_retry: bool = True,
        phone_format: PhoneNumberFormat = DEFAULT_FORMAT,
    ):
        self._transport = transport
        policy = retry_policy or RetryPolicy(max_attempts=3, delay=FixedDelay(5.0))
        # Own copy; a hook already on the caller's policy runs after ours
        self._caller_on_exhaustion = policy.on_exhaustion
        self.retry_policy = dataclasses.replace(policy, on_exhaustion=self._on_exhausted)
        self.ready_timeout = ready_timeout
        self.connect_timeout = connect_timeout
        self.discard_credentials_on_retry = discard_credentials_on_retry
        self.phone_format = phone_format

        self._state = SessionState.DISCONNECTED
        self._state_changed = asyncio.Event()
        self._lifecycle_lock = asyncio.Lock()
        self._connect_task: Optional[asyncio.Task] = None
        self._attempt_outcome: Optional[asyncio.Future] = None
        self._exhausted = False
        self._destroyed = False

        self.attempts = 0
        self.last_qr: Optional[str] = None
        self.connected_as: Optional[str] = None
        self.last_error: Optional[str] = None

        transport.set_listener(self.handle_event)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is SessionState.READY

    # =========================================================================
    # State transitions
    # =========================================================================

    def _notify(self) -> None:
        """Wake every task waiting on a state change."""
        self._state_changed.set()
        self._state_changed = asyncio.Event()

    def _transition(self, new: SessionState) -> bool:
        old = self._state
        allowed = new in (SessionState.FAILED, SessionState.DISCONNECTED) or new in _TRANSITIONS[old]
        if not allowed:
            logger.warning(f"Ignoring chat session transition {old.value} -> {new.value}")
            return False
        self._state = new
        if old is not new:
            logger.info(f"Chat session: {old.value} -> {new.value}")
        self._notify()
        return True

    def handle_event(self, event: SessionEvent, detail: Optional[str] = None) -> None:
        """Apply a transport lifecycle event to the state machine."""
        if self._destroyed:
            logger.debug(f"Chat event {event.value} after destroy, ignored")
            return

        if event is SessionEvent.QR:
            self.last_qr = detail
            if self._transition(SessionState.AWAITING_SCAN):
                logger.info(
                    "Chat login needs a QR scan: open the app on your phone, "
                    "go to Settings > Linked Devices > Link a Device"
                )
                logger.info(f"QR payload: {detail}")

        elif event is SessionEvent.AUTHENTICATED:
            self.last_qr = None
            self._transition(SessionState.AUTHENTICATED)

        elif event is SessionEvent.READY:
            if self._transition(SessionState.READY):
                self.connected_as = detail
                self.last_error = None
                logger.info(f"Chat session ready (connected as {detail or 'unknown'})")
                if self._attempt_outcome is not None and not self._attempt_outcome.done():
                    self._attempt_outcome.set_result(None)

        elif event is SessionEvent.AUTH_FAILURE:
            self._fail_attempt(SessionUnavailable(f"Authentication failed: {detail}"))

        elif event is SessionEvent.DISCONNECTED:
            if self._attempt_outcome is not None and not self._attempt_outcome.done():
                self._fail_attempt(SessionUnavailable(f"Disconnected while connecting: {detail}"))
            elif self._state is SessionState.READY:
                logger.warning(f"Chat session disconnected: {detail}. Reconnecting")
                self.connected_as = None
                self._transition(SessionState.DISCONNECTED)
                self.start()
            else:
                logger.info(f"Chat session disconnected in state {self._state.value}: {detail}")

    def _fail_attempt(self, error: SessionUnavailable) -> None:
        if self._attempt_outcome is not None and not self._attempt_outcome.done():
            self._attempt_outcome.set_exception(error)
            return
        # Outside a connect attempt: record, fail and start over
        logger.error(f"Chat session error: {error}")
        self.last_error = str(error)
        self._transition(SessionState.FAILED)
        self.start()

    # =========================================================================
    # Connecting
    # =========================================================================

    async def _attempt(self, attempt: int) -> None:
        """One connect attempt: initialize the transport and wait for READY."""
        outcome = asyncio.get_running_loop().create_future()
        self._attempt_outcome = outcome
        self.attempts += 1
        self._transition(SessionState.CONNECTING)
        logger.info(f"Connecting chat session (attempt {attempt})")

        try:
            await self._transport.initialize()
            await asyncio.wait_for(outcome, timeout=self.connect_timeout)
        except asyncio.TimeoutError:
            error = SessionUnavailable(f"Not ready after {self.connect_timeout:g}s")
            await self._abandon_attempt(error)
            raise error from None
        except Exception as e:
            await self._abandon_attempt(e)
            raise
        finally:
            self._attempt_outcome = None

    async def _abandon_attempt(self, error: Exception) -> None:
        self.last_error = str(error)
        self._transition(SessionState.FAILED)
        try:
            await self._transport.destroy()
        except Exception as e:
            logger.warning(f"Error closing chat client after failed attempt: {e}")

    async def _before_attempt(self, attempt: int, last_error: Optional[BaseException]) -> None:
        # Only once the first retry has failed too; never before the first attempt
        if attempt > 2 and self.discard_credentials_on_retry:
            logger.warning(f"Discarding stored chat credentials before attempt {attempt}")
            await self._transport.discard_credentials()

    async def _on_exhausted(self, last_error: Optional[BaseException]) -> None:
        self._exhausted = True
        self.last_error = str(last_error)
        logger.error(
            f"Chat session unavailable after {self.retry_policy.max_attempts} attempt(s): {last_error}"
        )
        self._notify()
        if self._caller_on_exhaustion is not None:
            await self._caller_on_exhaustion(last_error)

    async def _connect_cycle(self) -> None:
        # Exhaustion is recorded by _on_exhausted before RetryExhausted is raised
        with contextlib.suppress(RetryExhausted):
            await self.retry_policy.run(self._attempt, before_attempt=self._before_attempt)

    def start(self) -> asyncio.Task:
        """
        Begin connecting in the background.

        Returns the in-flight connect task if there is one, so concurrent
        callers share a single attempt and never open a second session.
        """
        if self._destroyed:
            raise SessionUnavailable("Chat session has been destroyed")
        task = self._connect_task
        if task is not None and (not task.done() or self._state is SessionState.READY):
            return task
        self._exhausted = False
        self._connect_task = asyncio.get_running_loop().create_task(self._connect_cycle())
        return self._connect_task

    async def connect(self) -> None:
        """
        Connect and wait for the outcome.

        Raises:
            SessionUnavailable: If every attempt failed.
        """
        async with self._lifecycle_lock:
            task = self.start()
        await asyncio.shield(task)
        if self._state is not SessionState.READY:
            raise SessionUnavailable(f"Chat session could not connect: {self.last_error}")

    async def destroy(self) -> None:
        """Close the session for good (process shutdown)."""
        async with self._lifecycle_lock:
            if self._destroyed:
                return
            self._destroyed = True

            task = self._connect_task
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

            try:
                await self._transport.destroy()
            except Exception as e:
                logger.error(f"Error destroying chat client: {e}")

            self.connected_as = None
            self._transition(SessionState.DISCONNECTED)
            logger.info("Chat session destroyed")

    # =========================================================================
    # Readiness
    # =========================================================================

    def _raise_if_unavailable(self) -> None:
        if self._destroyed:
            raise SessionUnavailable("Chat session has been destroyed")
        if self._exhausted and self._state is not SessionState.READY:
            raise SessionUnavailable(
                f"Chat session failed after {self.retry_policy.max_attempts} "
                f"connect attempt(s): {self.last_error}"
            )

    def _settled(self) -> bool:
        return self._state is SessionState.READY or self._destroyed or self._exhausted

    async def _wait_settled(self) -> None:
        while not self._settled():
            await self._state_changed.wait()

    async def wait_until_ready(self, timeout: Optional[float] = None) -> None:
        """
        Suspend the calling task until the session is READY.

        Raises:
            NotReadyError: If `timeout` (default `ready_timeout`) elapses.
            SessionUnavailable: If the session is destroyed or out of retries.
        """
        if self._state is SessionState.READY:
            return
        self._raise_if_unavailable()

        in_flight = self._connect_task is not None and not self._connect_task.done()
        if self._state is SessionState.DISCONNECTED and not in_flight:
            self.start()

        timeout = self.ready_timeout if timeout is None else timeout
        try:
            await asyncio.wait_for(self._wait_settled(), timeout=timeout)
        except asyncio.TimeoutError:
            raise NotReadyError(
                f"Chat session not ready after {timeout:g}s (state: {self._state.value})"
            ) from None
        self._raise_if_unavailable()

    # =========================================================================
    # Sending
    # =========================================================================

    async def send(self, phone: str, body: str) -> NotificationOutcome:
        """
        Deliver `body` to `phone` over the chat session.

        Never raises: every failure (bad number, session not ready, unknown
        recipient, transport error) comes back as a failed outcome.
        """
        try:
            recipient = self.phone_format.normalize(phone)
        except InvalidPhoneNumber as e:
            logger.warning(f"[CHAT FAILED] {e}")
            return NotificationOutcome.failed(ChannelType.CHAT, phone, e)

        try:
            await self.wait_until_ready()

            if not await self._transport.is_registered(recipient):
                logger.warning(f"[CHAT FAILED] {recipient} is not registered on the chat channel")
                return NotificationOutcome.failed(
                    ChannelType.CHAT,
                    recipient,
                    NotificationDeliveryError("Recipient not reachable on this channel"),
                )

            message_id = await self._transport.send_message(recipient, body)
        except Exception as e:
            logger.error(f"[CHAT FAILED] To: {recipient} | Error: {e}")
            return NotificationOutcome.failed(ChannelType.CHAT, recipient, e)

        if not message_id:
            message_id = f"local-{uuid4().hex}"
            logger.debug(f"Transport returned no message id, using {message_id}")

        logger.info(f"[CHAT] Sent to {recipient} ({message_id})")
        return NotificationOutcome.sent(ChannelType.CHAT, recipient, message_id)

    def status(self) -> SessionStatus:
        return SessionStatus(
            state=self._state,
            ready=self.is_ready,
            connected_as=self.connected_as,
            awaiting_scan=self._state is SessionState.AWAITING_SCAN,
            attempts=self.attempts,
            exhausted=self._exhausted,
            last_error=self.last_error,
        )
