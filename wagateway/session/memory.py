"""
In-process session adapter.

``MemorySession`` satisfies the :class:`SessionAdapter` protocol without
touching any network. It is the default backend for local development and
the session used throughout the test-suite: tests drive it with
:meth:`MemorySession.pair`, :meth:`MemorySession.drop` and
:meth:`MemorySession.receive` to simulate what a real chat network would
do.
"""

import asyncio
import json
import logging
import secrets
import uuid
from collections.abc import AsyncIterator
from typing import Any

from .base import (
    CloseReason,
    ConnectionClosed,
    ConnectionOpened,
    Connecting,
    CredentialsRotated,
    MessageReceived,
    PairingCodeIssued,
    SessionEvent,
)
from .errors import SessionError

logger = logging.getLogger(__name__)

_END = object()


class MemorySession:
    """
    A fake chat session that keeps everything in memory.

    Opening without credentials issues a pairing code; opening with
    credentials connects straight away. Sent payloads are recorded in
    :attr:`sent`.

    Attributes:
        sent: (address, payload) pairs passed to :meth:`send`.
        credentials: Credentials given to :meth:`open`.
        opened: Whether :meth:`open` was called.
        closed: Whether :meth:`close` was called.
    """

    def __init__(self, fail_on_open: Exception | None = None) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._fail_on_open = fail_on_open
        self._connected = False
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.credentials: bytes | None = None
        self.opened = False
        self.closed = False
        self.logged_out = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def open(self, credentials: bytes | None) -> None:
        if self._fail_on_open is not None:
            raise self._fail_on_open
        if self.closed:
            raise SessionError("Session already closed")

        self.opened = True
        self.credentials = credentials
        self._emit(Connecting())
        if credentials:
            self._connected = True
            self._emit(ConnectionOpened())
        else:
            self.issue_code()

    async def send(self, address: str, payload: dict[str, Any]) -> dict[str, Any]:
        if not self._connected:
            raise SessionError("Connection closed")
        self.sent.append((address, payload))
        message_id = uuid.uuid4().hex[:20].upper()
        logger.debug("MemorySession sent %s to %s", message_id, address)
        return {"key": {"remoteJid": address, "id": message_id}}

    async def logout(self) -> None:
        if not self._connected:
            raise SessionError("Not paired")
        self.logged_out = True
        self._connected = False
        self._emit(ConnectionClosed(CloseReason.LOGGED_OUT))

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._connected = False
        self._queue.put_nowait(_END)

    async def events(self) -> AsyncIterator[SessionEvent]:
        while True:
            event = await self._queue.get()
            if event is _END:
                return
            yield event

    # ------------------------------------------------------------------
    # Simulation helpers
    # ------------------------------------------------------------------

    def issue_code(self) -> str:
        """Emit a new pairing code, as the network does when one expires."""
        code = f"2@{secrets.token_urlsafe(24)},{secrets.token_urlsafe(16)}"
        self._emit(PairingCodeIssued(code))
        return code

    def pair(self) -> bytes:
        """Simulate a successful scan: new credentials, then open."""
        blob = json.dumps({"id": uuid.uuid4().hex, "registered": True}).encode()
        self._emit(CredentialsRotated(blob))
        self._connected = True
        self._emit(ConnectionOpened())
        return blob

    def drop(self, reason: CloseReason = CloseReason.CONNECTION_LOST) -> None:
        """Simulate the network closing the connection."""
        self._connected = False
        self._emit(ConnectionClosed(reason))

    def receive(self, sender: str, message: dict[str, Any]) -> None:
        """Simulate an inbound message."""
        self._emit(MessageReceived(sender=sender, message=message))

    def _emit(self, event: SessionEvent) -> None:
        if not self.closed:
            self._queue.put_nowait(event)
