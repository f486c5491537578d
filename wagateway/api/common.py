"""Shared helpers for the HTTP routes: dependencies and response envelopes."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from wagateway.config.settings import Settings
from wagateway.session import (
    ConnectionLifecycleManager,
    InvalidPayload,
    OutboundDispatcher,
)


class MissingFields(InvalidPayload):
    """Required request fields were not supplied."""

    def __init__(self, *names: str):
        self.names = names
        verb = "is" if len(names) == 1 else "are"
        super().__init__(f"{' and '.join(names)} {verb} required")


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def require(**fields: Any) -> None:
    """Raise MissingFields listing every empty value in ``fields``."""
    missing = [name for name, value in fields.items() if value in (None, "")]
    if missing:
        raise MissingFields(*missing)


def ok(data: dict[str, Any] | None = None, message: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message is not None:
        body["message"] = message
    return body


def failure(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": error,
            "message": message,
            "timestamp": now_iso(),
        },
    )


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_manager(request: Request) -> ConnectionLifecycleManager:
    return request.app.state.manager


def get_dispatcher(request: Request) -> OutboundDispatcher:
    return request.app.state.dispatcher


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
