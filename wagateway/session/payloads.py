"""File payloads for document and image sends.

HTTP callers hand files over either as base64 (optionally a ``data:`` URL)
inside a JSON body or as a multipart upload. Both are resolved once, at
the HTTP boundary, into a :class:`FilePayload`.
"""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Any

from .errors import InvalidPayload

DEFAULT_DOCUMENT_MIMETYPE = "application/octet-stream"
DEFAULT_IMAGE_MIMETYPE = "image/jpeg"
DEFAULT_FILENAME = "document"

_DATA_URL_RE = re.compile(r"^data:(?P<meta>[^,]*?);base64,(?P<data>.*)$", re.DOTALL)
_FILENAME_RE = re.compile(r'(?:file)?name="?([^";]+)"?')


@dataclass(frozen=True)
class FilePayload:
    """A file to send, with whatever metadata the caller supplied.

    Attributes:
        data: The raw file bytes.
        mimetype: Declared or detected MIME type, if any.
        filename: Declared file name, if any.
        is_data_url: True when decoded from a ``data:`` URL.
    """

    data: bytes
    mimetype: str | None = None
    filename: str | None = None
    is_data_url: bool = False

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_base64(
        cls,
        value: str,
        filename: str | None = None,
        mimetype: str | None = None,
    ) -> FilePayload:
        """Decode a base64 string or data URL.

        Explicit ``filename`` / ``mimetype`` arguments take precedence over
        anything found in the data URL.

        Raises:
            InvalidPayload: If the value is not valid base64.
        """
        decoded = decode_base64_file(value)
        return cls(
            data=decoded.data,
            mimetype=mimetype or decoded.mimetype,
            filename=filename or decoded.filename,
            is_data_url=decoded.is_data_url,
        )

    @classmethod
    def from_upload(
        cls,
        data: bytes,
        content_type: str | None = None,
        filename: str | None = None,
    ) -> FilePayload:
        return cls(data=data, mimetype=content_type or None, filename=filename or None)

    def info(self) -> dict[str, Any]:
        """Summary used by the analyze endpoint."""
        return {
            "filename": self.filename or DEFAULT_FILENAME,
            "mimetype": self.mimetype or DEFAULT_DOCUMENT_MIMETYPE,
            "fileSize": self.size,
            "isDataUrl": self.is_data_url,
        }


def _b64decode(data: str) -> bytes:
    cleaned = "".join(data.split())
    cleaned += "=" * (-len(cleaned) % 4)
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidPayload("Invalid base64 format") from e


def decode_base64_file(value: str) -> FilePayload:
    """Decode plain base64 or a ``data:<mime>[;name=...];base64,<data>`` URL.

    Plain base64 carries no metadata, so mimetype and filename stay None.
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidPayload("File content is empty")

    value = value.strip()
    match = _DATA_URL_RE.match(value)
    if match:
        meta = match.group("meta").split(";")
        mimetype = meta[0].strip() or None
        filename = None
        for param in meta[1:]:
            name_match = _FILENAME_RE.fullmatch(param.strip())
            if name_match:
                filename = name_match.group(1)
        return FilePayload(
            data=_b64decode(match.group("data")),
            mimetype=mimetype,
            filename=filename,
            is_data_url=True,
        )

    if value.startswith("data:"):
        raise InvalidPayload("Invalid base64 format")
    return FilePayload(data=_b64decode(value))
