"""
Outbound message dispatch.

Turns request-shaped sends into exactly one call on the connected session:
the recipient is normalized to a full chat address, the payload is shaped
per message kind, and the "must be connected" precondition is enforced the
same way for every kind.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from .base import GROUP_SUFFIX, INDIVIDUAL_SUFFIX
from .errors import InvalidPayload, ServiceUnavailable, SessionError
from .lifecycle import ConnectionLifecycleManager
from .payloads import (
    DEFAULT_DOCUMENT_MIMETYPE,
    DEFAULT_FILENAME,
    DEFAULT_IMAGE_MIMETYPE,
    FilePayload,
)

logger = logging.getLogger(__name__)

DEFAULT_COUNTRY_CODE = "62"

_NON_DIGITS = re.compile(r"\D")


class RecipientKind(str, Enum):
    """Canonical recipient shapes."""

    INDIVIDUAL = "individual"
    GROUP = "group"


class MessageKind(str, Enum):
    """Kinds of outbound message."""

    TEXT = "text"
    DOCUMENT = "document"
    IMAGE = "image"


@dataclass(frozen=True)
class Recipient:
    """A normalized recipient.

    Attributes:
        kind: Individual or group.
        address: Full chat address, always ending in the kind's suffix.
    """

    kind: RecipientKind
    address: str

    @property
    def is_group(self) -> bool:
        return self.kind == RecipientKind.GROUP


def normalize_recipient(
    raw: str,
    kind: RecipientKind = RecipientKind.INDIVIDUAL,
    country_code: str = DEFAULT_COUNTRY_CODE,
) -> Recipient:
    """
    Normalize a phone number or group id into a chat address.

    Individual numbers lose every non-digit character; a leading trunk
    prefix ``0`` is replaced by ``country_code``, and numbers that do not
    already start with it get it prepended. Group ids are kept as-is when
    they already carry the group suffix.

    Examples:
        >>> normalize_recipient("0812-3456-7890").address
        '6281234567890@s.whatsapp.net'
        >>> normalize_recipient("120363025783457581", RecipientKind.GROUP).address
        '120363025783457581@g.us'

    Raises:
        InvalidPayload: If nothing usable is left after normalization.
    """
    if raw is None or not str(raw).strip():
        raise InvalidPayload("Recipient cannot be empty")
    raw = str(raw).strip()

    if kind == RecipientKind.GROUP:
        address = raw if GROUP_SUFFIX in raw else f"{raw}{GROUP_SUFFIX}"
        return Recipient(kind=kind, address=address)

    digits = _NON_DIGITS.sub("", raw)
    if not digits:
        raise InvalidPayload(f"Invalid phone number: {raw!r}")
    if digits.startswith("0"):
        digits = country_code + digits[1:]
    elif not digits.startswith(country_code):
        digits = country_code + digits
    return Recipient(kind=kind, address=f"{digits}{INDIVIDUAL_SUFFIX}")


@dataclass(frozen=True)
class TextMessage:
    recipient: Recipient
    text: str
    footer: str | None = None

    def to_payload(self) -> dict[str, Any]:
        text = self.text
        if self.footer:
            text = f"{text}\n\n{self.footer}"
        return {"text": text}


@dataclass(frozen=True)
class DocumentMessage:
    recipient: Recipient
    data: bytes
    mimetype: str = DEFAULT_DOCUMENT_MIMETYPE
    filename: str = DEFAULT_FILENAME
    caption: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "document": self.data,
            "mimetype": self.mimetype,
            "fileName": self.filename,
        }
        if self.caption:
            payload["caption"] = self.caption
        return payload


@dataclass(frozen=True)
class ImageMessage:
    recipient: Recipient
    data: bytes
    mimetype: str = DEFAULT_IMAGE_MIMETYPE
    caption: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"image": self.data, "mimetype": self.mimetype}
        if self.caption:
            payload["caption"] = self.caption
        return payload


OutboundMessage = Union[TextMessage, DocumentMessage, ImageMessage]


@dataclass(frozen=True)
class DispatchResult:
    success: bool
    message: str
    recipient: Recipient
    message_id: str | None = None
    outbound: OutboundMessage | None = None


_SUCCESS_MESSAGES = {
    (MessageKind.TEXT, RecipientKind.INDIVIDUAL): "Message sent successfully",
    (MessageKind.TEXT, RecipientKind.GROUP): "Group message sent successfully",
    (MessageKind.DOCUMENT, RecipientKind.INDIVIDUAL): "Document sent successfully",
    (MessageKind.DOCUMENT, RecipientKind.GROUP): "Document sent successfully",
    (MessageKind.IMAGE, RecipientKind.INDIVIDUAL): "Image sent successfully",
    (MessageKind.IMAGE, RecipientKind.GROUP): "Image sent successfully",
}


def _resolve_file(payload: Any) -> FilePayload:
    if isinstance(payload, FilePayload):
        resolved = payload
    elif isinstance(payload, (bytes, bytearray, memoryview)):
        resolved = FilePayload(data=bytes(payload))
    else:
        raise InvalidPayload("File payload must be bytes or an uploaded file")
    if not resolved.data:
        raise InvalidPayload("File payload is empty")
    return resolved


class OutboundDispatcher:
    """
    Sends messages through the lifecycle manager's connected session.

    Attributes:
        country_code: Calling code used to normalize individual numbers.
        footer: Text appended to every text message (empty for none).
    """

    def __init__(
        self,
        manager: ConnectionLifecycleManager,
        country_code: str = DEFAULT_COUNTRY_CODE,
        footer: str = "",
    ) -> None:
        if not country_code.isdigit():
            raise ValueError("country_code must contain digits only")
        self._manager = manager
        self.country_code = country_code
        self.footer = footer

    def build(
        self,
        kind: MessageKind,
        recipient: str,
        payload: Any,
        caption: str | None = None,
        recipient_kind: RecipientKind = RecipientKind.INDIVIDUAL,
    ) -> OutboundMessage:
        """
        Validate and shape one outbound message.

        Raises:
            InvalidPayload: For an empty text, an unusable file payload or
                a recipient that normalizes to nothing.
        """
        target = normalize_recipient(recipient, recipient_kind, self.country_code)

        if kind == MessageKind.TEXT:
            if not isinstance(payload, str) or not payload.strip():
                raise InvalidPayload("Message must be a non-empty string")
            return TextMessage(target, payload.strip(), footer=self.footer or None)

        file = _resolve_file(payload)
        if kind == MessageKind.DOCUMENT:
            return DocumentMessage(
                target,
                data=file.data,
                mimetype=file.mimetype or DEFAULT_DOCUMENT_MIMETYPE,
                filename=file.filename or DEFAULT_FILENAME,
                caption=caption or None,
            )
        if kind == MessageKind.IMAGE:
            return ImageMessage(
                target,
                data=file.data,
                mimetype=file.mimetype or DEFAULT_IMAGE_MIMETYPE,
                caption=caption or None,
            )
        raise InvalidPayload(f"Unsupported message kind: {kind!r}")

    def ensure_connected(self, kind: MessageKind | None = None) -> None:
        """Raise ServiceUnavailable unless the session is CONNECTED."""
        if not self._manager.is_connected:
            logger.warning(
                "Chat session not connected, refusing %s send",
                kind.value if kind is not None else "a",
            )
            raise ServiceUnavailable(self._manager.state.value)

    async def dispatch(
        self,
        kind: MessageKind,
        recipient: str,
        payload: Any,
        caption: str | None = None,
        *,
        recipient_kind: RecipientKind = RecipientKind.INDIVIDUAL,
    ) -> DispatchResult:
        """
        Send one message.

        Args:
            kind: Text, document or image.
            recipient: Phone number or group id as given by the caller.
            payload: Text for TEXT; bytes or a FilePayload otherwise.
            caption: Optional caption for documents and images.
            recipient_kind: Whether ``recipient`` is a person or a group.

        Returns:
            DispatchResult with success=True.

        Raises:
            ServiceUnavailable: If the session is not connected.
            InvalidPayload: If the message cannot be built.
            SessionError: If the session fails to send.
        """
        self.ensure_connected(kind)

        message = self.build(kind, recipient, payload, caption, recipient_kind)
        address = message.recipient.address

        async with self._manager.session() as session:
            logger.info("Sending %s to %s", kind.value, address)
            try:
                ack = await session.send(address, message.to_payload())
            except SessionError:
                logger.error("Error sending %s to %s", kind.value, address)
                raise
            except Exception as e:
                logger.error("Error sending %s to %s: %s", kind.value, address, e)
                raise SessionError(f"Failed to send message: {e}") from e

        logger.info("%s sent successfully to %s", kind.value.capitalize(), address)
        return DispatchResult(
            success=True,
            message=_SUCCESS_MESSAGES[(kind, message.recipient.kind)],
            recipient=message.recipient,
            message_id=_message_id(ack),
            outbound=message,
        )


def _message_id(ack: Any) -> str | None:
    if isinstance(ack, dict):
        key = ack.get("key")
        if isinstance(key, dict) and key.get("id"):
            return str(key["id"])
    return None
