"""FastAPI routes for pairing: QR status/image and session actions."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse, JSONResponse

from wagateway.api.common import failure, get_manager, now_iso, ok
from wagateway.session import ActionResult, ConnectionLifecycleManager, ConnectionState

logger = logging.getLogger("wagateway.api.qr")

router = APIRouter(prefix="/api/v1/qr", tags=["qr"])

_NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _action_response(manager: ConnectionLifecycleManager, result: ActionResult) -> dict:
    return {
        "success": result.success,
        "data": {
            "message": result.message,
            "connectionStatus": manager.state.value,
            "timestamp": now_iso(),
        },
    }


@router.get("/status")
async def get_qr_status(manager: ConnectionLifecycleManager = Depends(get_manager)) -> dict:
    snapshot = manager.get_status()
    logger.debug("QR status: %s", snapshot.state.value)
    return ok(
        {
            "qrAvailable": snapshot.state == ConnectionState.PAIRING_READY,
            "connectionStatus": snapshot.state.value,
            "qrCodeImageUrl": snapshot.pairing_image_url,
            "timestamp": snapshot.changed_at.isoformat(),
        }
    )


@router.get("/image", response_model=None)
async def get_qr_image(
    manager: ConnectionLifecycleManager = Depends(get_manager),
) -> FileResponse | JSONResponse:
    if manager.state != ConnectionState.PAIRING_READY:
        return failure(
            404,
            "QR Code not available",
            "Chat session is not in QR code generation state",
        )

    image_path = manager.get_pairing_image_path()
    if image_path is None:
        return failure(404, "QR Code image not found", "QR Code image file does not exist")

    return FileResponse(image_path, media_type="image/png", headers=_NO_CACHE_HEADERS)


@router.post("/logout")
async def logout(manager: ConnectionLifecycleManager = Depends(get_manager)) -> dict:
    result = await manager.logout()
    logger.debug("Logout response: %s", result.message)
    return _action_response(manager, result)


@router.post("/regenerate")
async def regenerate_qr(manager: ConnectionLifecycleManager = Depends(get_manager)) -> dict:
    result = await manager.regenerate_qr()
    logger.debug("QR regeneration response: %s", result.message)
    return _action_response(manager, result)


@router.post("/clear-auth")
async def clear_auth(manager: ConnectionLifecycleManager = Depends(get_manager)) -> dict:
    result = await manager.clear_auth()
    logger.debug("Clear auth response: %s", result.message)
    return _action_response(manager, result)
