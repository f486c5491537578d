"""
Connection lifecycle manager.

This module owns the single chat session of the process. It tracks the
connection state across pairing, connection, disconnection and
reconnection, persists or discards pairing artifacts, and serializes
session events with the HTTP-triggered actions (status, logout, QR
regeneration, clear-auth and outbound sends).

State machine:
- DISCONNECTED -> CONNECTING on initialize()
- CONNECTING / RECONNECTING -> QR_READY when the session issues a pairing code
- CONNECTING / QR_READY / RECONNECTING -> CONNECTED when the session opens
- any -> LOGGED_OUT when the session closes because the pairing was revoked
- any live state -> RECONNECTING on any other close, then re-initialize
- CONNECTING -> ERROR when opening the session fails (no automatic retry)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from .base import (
    CloseReason,
    ConnectionClosed,
    ConnectionOpened,
    Connecting,
    CredentialsRotated,
    MessageReceived,
    PairingCodeIssued,
    SessionAdapter,
    SessionEvent,
    SessionFactory,
)
from .credentials import CredentialStore
from .errors import InitializationFailure, ServiceUnavailable, TransientDisconnect
from .qr import QRArtifactManager

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Connection state of the chat session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    PAIRING_READY = "qr_ready"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    LOGGED_OUT = "logged_out"
    FAILED = "error"


# States in which a session attempt is already under way.
_ACTIVE_STATES = frozenset({
    ConnectionState.CONNECTING,
    ConnectionState.PAIRING_READY,
    ConnectionState.CONNECTED,
})

# States in which a non-logout close leads to a reconnect.
_RECONNECTABLE_STATES = frozenset({
    ConnectionState.CONNECTED,
    ConnectionState.CONNECTING,
    ConnectionState.PAIRING_READY,
    ConnectionState.RECONNECTING,
})

MessageHandler = Callable[[MessageReceived], Awaitable[None] | None]


@dataclass(frozen=True)
class StatusSnapshot:
    """
    Immutable view of the lifecycle state.

    Attributes:
        state: Current connection state.
        changed_at: When the state last changed.
        pairing_image_path: Rendered QR image, only while pairing.
        pairing_image_url: URL the HTTP layer serves the image at.
        error: Message of the failure that led to the ERROR state.
    """

    state: ConnectionState
    changed_at: datetime
    pairing_image_path: Path | None = None
    pairing_image_url: str | None = None
    error: str | None = None

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def to_dict(self) -> dict[str, Any]:
        return {
            "connected": self.connected,
            "state": self.state.value,
            "pairing_image_url": self.pairing_image_url,
            "timestamp": self.changed_at.isoformat(),
            "error": self.error,
        }


@dataclass(frozen=True)
class ActionResult:
    """Outcome of a lifecycle action requested over HTTP."""

    success: bool
    message: str


@dataclass
class ReconnectPolicy:
    """
    Backoff applied after non-logout disconnects.

    The first attempt after a close is immediate. Attempt ``n`` (n >= 2)
    waits ``min(base_delay * factor ** (n - 2), max_delay)`` seconds. The
    counter resets once the session reaches CONNECTED.

    Attributes:
        base_delay: Delay before the second attempt, in seconds.
        factor: Multiplier applied for each further attempt.
        max_delay: Upper bound for any single delay.
        max_attempts: Give up after this many attempts (0 = never).
    """

    base_delay: float = 1.0
    factor: float = 2.0
    max_delay: float = 60.0
    max_attempts: int = 0

    def __post_init__(self) -> None:
        if self.base_delay < 0:
            raise ValueError("base_delay cannot be negative")
        if self.factor < 1:
            raise ValueError("factor must be at least 1")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if self.max_attempts < 0:
            raise ValueError("max_attempts cannot be negative")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before reconnect attempt number ``attempt``."""
        if attempt <= 1:
            return 0.0
        return min(self.base_delay * self.factor ** (attempt - 2), self.max_delay)

    def exhausted(self, attempt: int) -> bool:
        return self.max_attempts > 0 and attempt > self.max_attempts


class ConnectionLifecycleManager:
    """
    Owns the chat session and its connection state.

    Every state mutation, whether it comes from a session event or from an
    HTTP action, happens while holding one asyncio lock. Outbound sends
    use :meth:`session`, which holds the same lock across the state check
    and the send, so a send can never go out on a session that has just
    flipped to RECONNECTING.

    Example:
        manager = ConnectionLifecycleManager(
            session_factory=MemorySession,
            credentials=FileCredentialStore("auth"),
            qr=QRArtifactManager("public/qr/qr-code.png"),
        )
        await manager.initialize()
        ...
        async with manager.session() as session:
            await session.send(address, {"text": "hi"})
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        credentials: CredentialStore,
        qr: QRArtifactManager,
        policy: ReconnectPolicy | None = None,
        pairing_image_url: str | None = None,
    ) -> None:
        """
        Initialize the manager in the DISCONNECTED state.

        Args:
            session_factory: Builds a fresh session for each attempt.
            credentials: Where the paired identity is persisted.
            qr: Holder of the pairing code and its image.
            policy: Reconnect backoff. Defaults to ReconnectPolicy().
            pairing_image_url: URL reported in status while pairing.
                Falls back to the image path when not given.
        """
        self._factory = session_factory
        self._credentials = credentials
        self._qr = qr
        self._policy = policy or ReconnectPolicy()
        self._pairing_image_url = pairing_image_url

        self._lock = asyncio.Lock()
        self._state = ConnectionState.DISCONNECTED
        self._changed_at = datetime.now(timezone.utc)
        self._state_changed = asyncio.Event()
        self._error: str | None = None

        self._session: SessionAdapter | None = None
        self._pump_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._reconnect_attempts = 0

        self._message_handlers: list[MessageHandler] = []

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def is_alive(self) -> bool:
        """True while a session object exists."""
        return self._session is not None

    @property
    def policy(self) -> ReconnectPolicy:
        return self._policy

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    def get_status(self) -> StatusSnapshot:
        """Snapshot of the current state. Never blocks, never fails."""
        image_path = self.get_pairing_image_path()
        image_url = None
        if image_path is not None:
            image_url = self._pairing_image_url or str(image_path)
        return StatusSnapshot(
            state=self._state,
            changed_at=self._changed_at,
            pairing_image_path=image_path,
            pairing_image_url=image_url,
            error=self._error,
        )

    def has_pairing_image(self) -> bool:
        return self._state == ConnectionState.PAIRING_READY and self._qr.has_image()

    def get_pairing_image_path(self) -> Path | None:
        if not self.has_pairing_image():
            return None
        return self._qr.image_path

    async def wait_for_state(
        self,
        *states: ConnectionState,
        timeout: float = 10.0,
    ) -> ConnectionState:
        """
        Wait until the manager reaches one of ``states``.

        Raises:
            asyncio.TimeoutError: If none is reached within ``timeout``.
        """
        async def _wait() -> ConnectionState:
            while self._state not in states:
                await self._state_changed.wait()
            return self._state

        return await asyncio.wait_for(_wait(), timeout)

    # ------------------------------------------------------------------
    # Inbound observers
    # ------------------------------------------------------------------

    def add_message_handler(self, handler: MessageHandler) -> None:
        """Register a callback for inbound messages (sync or async)."""
        self._message_handlers.append(handler)

    def remove_message_handler(self, handler: MessageHandler) -> bool:
        try:
            self._message_handlers.remove(handler)
        except ValueError:
            return False
        return True

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """
        Open a session unless one is already being set up.

        Safe to call from DISCONNECTED, RECONNECTING, LOGGED_OUT or ERROR;
        a no-op otherwise. Failures move the manager to ERROR instead of
        raising.
        """
        async with self._lock:
            if self._state in (ConnectionState.FAILED, ConnectionState.LOGGED_OUT,
                               ConnectionState.DISCONNECTED):
                self._reconnect_attempts = 0
            await self._initialize_locked()

    async def logout(self) -> ActionResult:
        """
        Log the paired identity out and drop the session.

        A session that is still pairing or connecting is closed without a
        network logout.

        Returns:
            ActionResult with success=False (and no state change) when no
            session exists.
        """
        async with self._lock:
            if self._session is None:
                logger.info("Logout requested but no active session")
                return ActionResult(False, "No active session to logout")
            return await self._logout_locked()

    async def regenerate_qr(self) -> ActionResult:
        """
        Start a new pairing attempt with a fresh QR code.

        Logs out first if connected. Stored credentials that were not
        revoked are kept, so the session may still resume silently if the
        only problem was a stale code.
        """
        async with self._lock:
            logger.info("QR code regeneration requested")
            if self._state == ConnectionState.CONNECTED:
                await self._logout_locked()
            await self._reset_locked()
            await self._initialize_locked()
            if self._state == ConnectionState.FAILED:
                return ActionResult(False, f"QR code regeneration failed: {self._error}")
            return ActionResult(True, "QR code regeneration initiated")

    async def clear_auth(self) -> ActionResult:
        """
        Erase all pairing material and start pairing from scratch.

        Logs out first if connected, deletes credentials and the QR
        artifact, then re-initializes. The next attempt always issues a
        fresh pairing code.
        """
        async with self._lock:
            logger.info("Clear authentication requested")
            if self._state == ConnectionState.CONNECTED:
                await self._logout_locked()
            await self._reset_locked()
            await self._credentials.clear()
            await self._initialize_locked()
            if self._state == ConnectionState.FAILED:
                return ActionResult(False, f"Authentication cleared but restart failed: {self._error}")
            return ActionResult(True, "Authentication cleared, new QR code will be generated")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[SessionAdapter]:
        """
        Hold the lifecycle lock and yield the connected session.

        Raises:
            ServiceUnavailable: If the state is not CONNECTED.
        """
        async with self._lock:
            if self._state != ConnectionState.CONNECTED or self._session is None:
                raise ServiceUnavailable(self._state.value)
            yield self._session

    async def shutdown(self) -> None:
        """Stop background tasks and close the session without logging out."""
        async with self._lock:
            tasks = await self._discard_session()
            if self._state != ConnectionState.DISCONNECTED:
                self._transition(ConnectionState.DISCONNECTED)
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Chat session shut down")

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    async def handle_event(
        self,
        event: SessionEvent,
        session: SessionAdapter | None = None,
    ) -> None:
        """
        Apply one session event.

        Args:
            event: The event to apply.
            session: The session that emitted it. Events from a session
                that is no longer current are ignored. None means the
                current session.
        """
        if session is not None and session is not self._session:
            logger.debug("Ignoring %s from a stale session", type(event).__name__)
            return

        if isinstance(event, MessageReceived):
            # Outside the lock: handlers may send replies.
            await self._notify_message(event)
            return

        async with self._lock:
            if session is not None and session is not self._session:
                logger.debug("Ignoring %s from a stale session", type(event).__name__)
                return
            await self._apply(event)

    async def _apply(self, event: SessionEvent) -> None:
        if isinstance(event, PairingCodeIssued):
            self._on_pairing_code(event)
        elif isinstance(event, Connecting):
            self._on_connecting()
        elif isinstance(event, ConnectionOpened):
            self._on_open()
        elif isinstance(event, ConnectionClosed):
            await self._on_close(event)
        elif isinstance(event, CredentialsRotated):
            await self._credentials.save(event.blob)
            logger.debug("Session credentials updated")
        else:
            logger.warning("Unhandled session event: %r", event)

    def _on_pairing_code(self, event: PairingCodeIssued) -> None:
        if self._state not in (ConnectionState.CONNECTING, ConnectionState.RECONNECTING,
                               ConnectionState.PAIRING_READY):
            logger.warning("Pairing code received in state %s, ignoring", self._state.value)
            return
        self._qr.publish(event.code)
        self._transition(ConnectionState.PAIRING_READY)

    def _on_connecting(self) -> None:
        if self._state == ConnectionState.PAIRING_READY:
            self._qr.clear()
            self._transition(ConnectionState.CONNECTING)
        elif self._state == ConnectionState.CONNECTING:
            logger.info("Connecting to chat network...")
        else:
            logger.debug("Connecting event in state %s", self._state.value)

    def _on_open(self) -> None:
        self._qr.clear()
        self._reconnect_attempts = 0
        if self._state == ConnectionState.CONNECTED:
            return
        logger.info("Chat session connection established")
        self._transition(ConnectionState.CONNECTED)

    async def _on_close(self, event: ConnectionClosed) -> None:
        if event.is_logout:
            logger.info("Connection closed, logged out")
            await self._discard_session()
            self._qr.clear()
            await self._credentials.clear()
            self._transition(ConnectionState.LOGGED_OUT)
            return

        if self._state not in _RECONNECTABLE_STATES:
            logger.debug("Close (%s) in state %s, ignoring", event.reason.value, self._state.value)
            return

        self._qr.clear()
        self._transition(ConnectionState.RECONNECTING)
        await self._schedule_reconnect(event)

    async def _schedule_reconnect(self, event: ConnectionClosed) -> None:
        self._reconnect_attempts += 1
        attempt = self._reconnect_attempts

        if self._policy.exhausted(attempt):
            error = TransientDisconnect(event.reason.value, attempts=attempt - 1)
            logger.error("%s", error)
            await self._discard_session()
            self._transition(ConnectionState.FAILED, error=str(error))
            return

        delay = self._policy.delay_for(attempt)
        if delay <= 0:
            logger.info("Connection closed (%s), reconnecting...", event.reason.value)
            await self._initialize_locked()
            return

        logger.info(
            "Connection closed (%s), reconnecting in %.1fs (attempt %d)",
            event.reason.value, delay, attempt,
        )
        await self._discard_session()
        self._reconnect_task = asyncio.create_task(
            self._reconnect_later(delay), name="wagateway-reconnect"
        )

    async def _reconnect_later(self, delay: float) -> None:
        await asyncio.sleep(delay)
        async with self._lock:
            self._reconnect_task = None
            if self._state == ConnectionState.RECONNECTING:
                await self._initialize_locked()

    async def _notify_message(self, event: MessageReceived) -> None:
        logger.debug("Received message from %s", event.sender)
        for handler in list(self._message_handlers):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Inbound message handler %r failed", handler)

    async def _pump(self, session: SessionAdapter) -> None:
        """Feed the session's events to handle_event, one at a time."""
        try:
            async for event in session.events():
                try:
                    await self.handle_event(event, session=session)
                except Exception:
                    logger.exception("Error handling session event %r", event)
                if session is not self._session:
                    return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Session event stream failed: %s", e)
            await self.handle_event(ConnectionClosed(detail=str(e)), session=session)
            return

        if session is self._session:
            logger.warning("Session event stream ended without a close event")
            await self.handle_event(
                ConnectionClosed(CloseReason.UNKNOWN, detail="event stream ended"),
                session=session,
            )

    # ------------------------------------------------------------------
    # Internals (lock held)
    # ------------------------------------------------------------------

    def _transition(self, new_state: ConnectionState, error: str | None = None) -> None:
        old_state = self._state
        self._state = new_state
        self._changed_at = datetime.now(timezone.utc)
        self._error = error if new_state == ConnectionState.FAILED else None

        logger.debug("Connection state %s -> %s", old_state.value, new_state.value)
        self._state_changed.set()
        self._state_changed = asyncio.Event()

    async def _initialize_locked(self) -> None:
        if self._state in _ACTIVE_STATES:
            logger.debug("Initialize skipped, session already %s", self._state.value)
            return

        if self._state != ConnectionState.RECONNECTING:
            self._transition(ConnectionState.CONNECTING)
        logger.info("Initializing chat session...")

        await self._discard_session()
        session: SessionAdapter | None = None
        try:
            await self._credentials.prepare()
            credentials = await self._credentials.load()
            session = self._factory()
            await session.open(credentials)
        except Exception as e:
            failure = InitializationFailure(f"Error initializing chat session: {e}")
            logger.error("%s", failure)
            if session is not None:
                await self._close_quietly(session)
            self._transition(ConnectionState.FAILED, error=str(failure))
            return

        self._session = session
        self._pump_task = asyncio.create_task(
            self._pump(session), name="wagateway-session-events"
        )

    async def _logout_locked(self) -> ActionResult:
        session = self._session
        message = "Logged out successfully"
        if session is not None and self._state == ConnectionState.CONNECTED:
            try:
                await session.logout()
            except Exception as e:
                logger.warning("Session logout failed, clearing local state anyway: %s", e)
                message = f"Logged out locally; session logout failed: {e}"
        await self._discard_session()
        self._qr.clear()
        await self._credentials.clear()
        self._reconnect_attempts = 0
        self._transition(ConnectionState.LOGGED_OUT)
        logger.info("Logged out")
        return ActionResult(True, message)

    async def _reset_locked(self) -> None:
        await self._discard_session()
        self._qr.clear()
        self._reconnect_attempts = 0
        self._transition(ConnectionState.DISCONNECTED)

    async def _discard_session(self) -> list[asyncio.Task]:
        """
        Drop the current session and its background tasks.

        Returns:
            The tasks that were cancelled, for callers that wait on them.
        """
        current = asyncio.current_task()
        cancelled: list[asyncio.Task] = []

        reconnect, self._reconnect_task = self._reconnect_task, None
        if reconnect is not None and reconnect is not current:
            reconnect.cancel()
            cancelled.append(reconnect)

        pump, self._pump_task = self._pump_task, None
        if pump is not None and pump is not current:
            pump.cancel()
            cancelled.append(pump)

        session, self._session = self._session, None
        if session is not None:
            await self._close_quietly(session)
        return cancelled

    async def _close_quietly(self, session: SessionAdapter) -> None:
        try:
            await session.close()
        except Exception as e:
            logger.warning("Error closing session: %s", e)

    def __repr__(self) -> str:
        return f"<ConnectionLifecycleManager state={self._state.value}>"
