"""FastAPI routes for outbound messages and file helpers.

Text, document and image sends all go through the OutboundDispatcher.
File bodies are resolved into a FilePayload here, once, whether they
arrive as base64 in JSON or as a multipart upload.

Request checks run in a fixed order: required fields and text format,
then the connection, then base64 decoding.
"""

from __future__ import annotations

import base64
import logging
from typing import Any

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel

from wagateway.api.common import (
    MissingFields,
    get_dispatcher,
    get_settings,
    now_iso,
    ok,
    require,
)
from wagateway.config.settings import Settings
from wagateway.session import (
    FilePayload,
    InvalidPayload,
    MessageKind,
    OutboundDispatcher,
    RecipientKind,
)

logger = logging.getLogger("wagateway.api.messages")

router = APIRouter(prefix="/api/v1", tags=["messages"])

ALLOWED_UPLOAD_MIMETYPES = frozenset({
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "text/plain",
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "audio/mpeg",
    "audio/wav",
    "audio/ogg",
    "video/mp4",
    "video/avi",
    "video/mov",
})


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SendMessageRequest(BaseModel):
    phoneNumber: str | None = None
    message: str | None = None


class SendGroupMessageRequest(BaseModel):
    groupId: str | None = None
    message: str | None = None


class SendFileRequest(BaseModel):
    """JSON body carrying a base64 file or data URL."""

    phoneNumber: str | None = None
    file: str | None = None
    caption: str | None = None
    filename: str | None = None
    mimetype: str | None = None


class AnalyzeBase64Request(BaseModel):
    file: str | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _read_upload(upload: UploadFile, settings: Settings) -> FilePayload:
    """Read a multipart upload, enforcing the size limit and type allow-list."""
    content_type = (upload.content_type or "").split(";")[0].strip().lower()
    if content_type not in ALLOWED_UPLOAD_MIMETYPES:
        raise InvalidPayload(
            "Invalid file type. Only documents, images, audio, and video files are allowed."
        )

    data = await upload.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise InvalidPayload(
            f"File too large. Maximum size is {settings.MAX_UPLOAD_BYTES} bytes."
        )
    if not data:
        raise InvalidPayload("Uploaded file is empty")
    return FilePayload.from_upload(data, content_type=content_type, filename=upload.filename)


async def _send_text(
    dispatcher: OutboundDispatcher,
    target_field: str,
    target: str | None,
    message: str | None,
    recipient_kind: RecipientKind,
) -> dict[str, Any]:
    require(**{target_field: target, "message": message})
    if not message.strip():
        raise InvalidPayload("Message must be a non-empty string")
    logger.debug("Send %s message request received for %s", recipient_kind.value, target)

    result = await dispatcher.dispatch(
        MessageKind.TEXT, target, message, recipient_kind=recipient_kind,
    )
    return ok(
        {
            target_field: target,
            "message": message.strip(),
            "status": "sent",
            "messageId": result.message_id,
            "timestamp": now_iso(),
        },
        message=result.message,
    )


async def _send_file(
    dispatcher: OutboundDispatcher,
    kind: MessageKind,
    phone_number: str,
    payload: FilePayload,
    caption: str | None,
) -> dict[str, Any]:
    result = await dispatcher.dispatch(kind, phone_number, payload, caption)
    built = result.outbound
    data: dict[str, Any] = {
        "phoneNumber": phone_number,
        "mimetype": built.mimetype,
        "fileSize": payload.size,
        "caption": caption,
        "status": "sent",
        "messageId": result.message_id,
        "timestamp": now_iso(),
    }
    if kind == MessageKind.DOCUMENT:
        data["filename"] = built.filename
    return ok(data, message=result.message)


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------


@router.post("/message")
async def send_personal_message(
    body: SendMessageRequest,
    dispatcher: OutboundDispatcher = Depends(get_dispatcher),
) -> dict:
    return await _send_text(
        dispatcher, "phoneNumber", body.phoneNumber, body.message, RecipientKind.INDIVIDUAL,
    )


@router.post("/message/group")
async def send_group_message(
    body: SendGroupMessageRequest,
    dispatcher: OutboundDispatcher = Depends(get_dispatcher),
) -> dict:
    return await _send_text(
        dispatcher, "groupId", body.groupId, body.message, RecipientKind.GROUP,
    )


# ---------------------------------------------------------------------------
# Documents and images
# ---------------------------------------------------------------------------


@router.post("/document")
async def send_document(
    body: SendFileRequest,
    dispatcher: OutboundDispatcher = Depends(get_dispatcher),
) -> dict:
    require(phoneNumber=body.phoneNumber, file=body.file)
    dispatcher.ensure_connected(MessageKind.DOCUMENT)
    payload = FilePayload.from_base64(body.file, filename=body.filename, mimetype=body.mimetype)
    logger.debug("Document for %s: %s (%s)", body.phoneNumber, payload.filename, payload.mimetype)
    return await _send_file(dispatcher, MessageKind.DOCUMENT, body.phoneNumber, payload, body.caption)


@router.post("/document/upload")
async def send_document_upload(
    file: UploadFile | None = File(None),
    phoneNumber: str | None = Form(None),
    caption: str | None = Form(None),
    dispatcher: OutboundDispatcher = Depends(get_dispatcher),
    settings: Settings = Depends(get_settings),
) -> dict:
    require(phoneNumber=phoneNumber, file=file)
    payload = await _read_upload(file, settings)
    return await _send_file(dispatcher, MessageKind.DOCUMENT, phoneNumber, payload, caption)


@router.post("/image")
async def send_image(
    body: SendFileRequest,
    dispatcher: OutboundDispatcher = Depends(get_dispatcher),
) -> dict:
    require(phoneNumber=body.phoneNumber, file=body.file)
    dispatcher.ensure_connected(MessageKind.IMAGE)
    payload = FilePayload.from_base64(body.file, filename=body.filename, mimetype=body.mimetype)
    return await _send_file(dispatcher, MessageKind.IMAGE, body.phoneNumber, payload, body.caption)


@router.post("/image/upload")
async def send_image_upload(
    file: UploadFile | None = File(None),
    phoneNumber: str | None = Form(None),
    caption: str | None = Form(None),
    dispatcher: OutboundDispatcher = Depends(get_dispatcher),
    settings: Settings = Depends(get_settings),
) -> dict:
    require(phoneNumber=phoneNumber, file=file)
    payload = await _read_upload(file, settings)
    if not (payload.mimetype or "").startswith("image/"):
        raise InvalidPayload("Uploaded file is not an image")
    return await _send_file(dispatcher, MessageKind.IMAGE, phoneNumber, payload, caption)


# ---------------------------------------------------------------------------
# Utilities
# ---------------------------------------------------------------------------


@router.post("/analyze-base64")
async def analyze_base64_file(body: AnalyzeBase64Request) -> dict:
    if not body.file:
        raise MissingFields("file")
    payload = FilePayload.from_base64(body.file)
    return ok(
        {**payload.info(), "timestamp": now_iso()},
        message="Base64 file analyzed successfully",
    )


@router.post("/convert-to-base64")
async def convert_file_to_base64(
    file: UploadFile | None = File(None),
    settings: Settings = Depends(get_settings),
) -> dict:
    if file is None:
        raise MissingFields("file")
    payload = await _read_upload(file, settings)
    return ok(
        {
            "fileName": payload.filename,
            "fileSize": payload.size,
            "mimeType": payload.mimetype,
            "base64": base64.b64encode(payload.data).decode("ascii"),
            "timestamp": now_iso(),
        },
        message="File converted to base64 successfully",
    )
