"""
Session adapter contract for the gateway.

This module defines the boundary around the external chat-protocol
session: the commands the gateway issues (open, send, logout, close) and
the events the session emits while it runs.
"""

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol, Union


INDIVIDUAL_SUFFIX = "@s.whatsapp.net"
GROUP_SUFFIX = "@g.us"


class CloseReason(str, Enum):
    """Why a session connection was closed."""

    LOGGED_OUT = "logged_out"            # Pairing revoked, credentials are dead
    CONNECTION_LOST = "connection_lost"
    CONNECTION_REPLACED = "connection_replaced"
    RESTART_REQUIRED = "restart_required"
    TIMED_OUT = "timed_out"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PairingCodeIssued:
    """The session needs a human to scan a new pairing code."""

    code: str


@dataclass(frozen=True)
class Connecting:
    """The session started (re)connecting to the network."""


@dataclass(frozen=True)
class ConnectionOpened:
    """The session is authenticated and ready to send."""


@dataclass(frozen=True)
class ConnectionClosed:
    """The session connection went away."""

    reason: CloseReason = CloseReason.UNKNOWN
    detail: str | None = None

    @property
    def is_logout(self) -> bool:
        return self.reason == CloseReason.LOGGED_OUT


@dataclass(frozen=True)
class CredentialsRotated:
    """The session produced new credentials that must be persisted."""

    blob: bytes


@dataclass(frozen=True)
class MessageReceived:
    """
    An inbound message observed on the session.

    Attributes:
        sender: Address of the chat the message arrived in.
        message: The raw message as delivered by the session.
        received_at: When the gateway observed the message.
    """

    sender: str
    message: dict[str, Any] = field(default_factory=dict)
    received_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


SessionEvent = Union[
    PairingCodeIssued,
    Connecting,
    ConnectionOpened,
    ConnectionClosed,
    CredentialsRotated,
    MessageReceived,
]


class SessionAdapter(Protocol):
    """Protocol for the external chat-protocol session.

    One instance represents one connection attempt. The lifecycle manager
    builds a fresh instance from a factory every time it (re)initializes,
    and drops the previous one.
    """

    async def open(self, credentials: bytes | None) -> None:
        """Start connecting, reusing ``credentials`` when given.

        Raises:
            Exception: Any failure to start is treated as an
                initialization failure by the lifecycle manager.
        """
        ...

    async def send(self, address: str, payload: dict[str, Any]) -> Any:
        """Transmit one message payload to a normalized address."""
        ...

    async def logout(self) -> None:
        """Revoke the paired identity on the network side."""
        ...

    async def close(self) -> None:
        """Drop the connection without revoking the pairing."""
        ...

    def events(self) -> AsyncIterator[SessionEvent]:
        """Stream of events, delivered one at a time."""
        ...


SessionFactory = Callable[[], SessionAdapter]
