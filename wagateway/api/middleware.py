"""Request-logging and API-token middleware for FastAPI."""

from __future__ import annotations

import hmac
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

logger = logging.getLogger("wagateway.api")

# ---------------------------------------------------------------------------
# Request logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Attach a unique request ID and log method/path/status/duration."""

    async def dispatch(self, request: Request, call_next):  # noqa: ANN001
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        start = time.perf_counter()
        response: Response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        logger.debug(
            "method=%s path=%s status_code=%s duration_ms=%.1f request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            request_id,
        )

        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

_EXEMPT_PREFIXES = ("/api/v1/ping", "/docs", "/redoc", "/openapi.json")


def _unauthorized(message: str) -> JSONResponse:
    return JSONResponse(
        {"success": False, "error": "Unauthorized", "message": message},
        status_code=401,
    )


class AuthMiddleware(BaseHTTPMiddleware):
    """API-token authentication.

    The token is accepted from ``Authorization: Bearer <token>`` or, as a
    fallback, from the ``X-API-Token`` header. An empty ``api_token``
    disables the check (development mode).
    """

    def __init__(self, app: ASGIApp, api_token: str = "") -> None:
        super().__init__(app)
        self._api_token = api_token

    async def dispatch(self, request: Request, call_next):  # noqa: ANN001
        path = request.url.path

        if any(path.startswith(p) for p in _EXEMPT_PREFIXES):
            return await call_next(request)

        if not self._api_token:
            return await call_next(request)

        client = request.client.host if request.client else "unknown"
        auth_header = request.headers.get("authorization", "")
        token = None
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
        elif request.headers.get("x-api-token"):
            token = request.headers["x-api-token"]

        if not token:
            logger.warning("Unauthorized access attempt from %s - No token provided", client)
            return _unauthorized(
                "API token is required. Include it in Authorization header "
                "(Bearer <token>) or X-API-Token header"
            )

        if not hmac.compare_digest(token.encode(), self._api_token.encode()):
            logger.warning("Unauthorized access attempt from %s - Invalid token", client)
            return _unauthorized("Invalid API token")

        logger.debug("Authenticated request from %s", client)
        return await call_next(request)
