"""Liveness and connection status endpoints."""

from fastapi import APIRouter, Depends

from wagateway import __version__
from wagateway.api.common import get_manager, now_iso, ok
from wagateway.session import ConnectionLifecycleManager

router = APIRouter(prefix="/api/v1", tags=["health"])


@router.get("/ping")
async def ping(manager: ConnectionLifecycleManager = Depends(get_manager)) -> dict:
    return ok(
        {
            "status": "ok",
            "version": __version__,
            "serviceAlive": manager.is_alive,
            "timestamp": now_iso(),
        },
        message="pong",
    )


@router.get("/status")
async def status(manager: ConnectionLifecycleManager = Depends(get_manager)) -> dict:
    snapshot = manager.get_status()
    return ok(
        {
            "isConnected": snapshot.connected,
            "connectionStatus": snapshot.state.value,
            "qrCodeImageUrl": snapshot.pairing_image_url,
            "serviceAlive": manager.is_alive,
            "error": snapshot.error,
            "timestamp": snapshot.changed_at.isoformat(),
        }
    )
