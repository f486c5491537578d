"""wagateway FastAPI application."""

from __future__ import annotations

import importlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from wagateway import __version__
from wagateway.api.common import MissingFields, failure
from wagateway.api.middleware import AuthMiddleware, RequestLoggingMiddleware
from wagateway.config import configure_logging, load_session_factory, settings as default_settings, validate_settings
from wagateway.config.settings import Settings
from wagateway.session import (
    ConfigurationError,
    ConnectionLifecycleManager,
    CredentialStore,
    FileCredentialStore,
    GatewayError,
    InvalidPayload,
    OutboundDispatcher,
    QRArtifactManager,
    ReconnectPolicy,
    ServiceUnavailable,
    SessionError,
    SessionFactory,
)

logger = logging.getLogger("wagateway")

_route_modules = [
    "wagateway.api.routes.health",
    "wagateway.api.routes.messages",
    "wagateway.api.routes.qr",
]


def build_manager(
    s: Settings,
    session_factory: SessionFactory | None = None,
    credentials: CredentialStore | None = None,
) -> ConnectionLifecycleManager:
    """Wire a lifecycle manager from settings."""
    return ConnectionLifecycleManager(
        session_factory=session_factory or load_session_factory(s.SESSION_FACTORY),
        credentials=credentials or FileCredentialStore(s.AUTH_DIR),
        qr=QRArtifactManager(s.QR_IMAGE_PATH, print_in_terminal=s.PRINT_QR_IN_TERMINAL),
        policy=ReconnectPolicy(
            base_delay=s.RECONNECT_BASE_DELAY,
            factor=s.RECONNECT_FACTOR,
            max_delay=s.RECONNECT_MAX_DELAY,
            max_attempts=s.RECONNECT_MAX_ATTEMPTS,
        ),
        pairing_image_url=s.QR_IMAGE_URL,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    manager: ConnectionLifecycleManager = app.state.manager
    if app.state.initialize_on_startup:
        await manager.initialize()
    logger.info("Chat gateway API started (auth %s)",
                "enabled" if app.state.settings.auth_required else "disabled")
    yield
    await manager.shutdown()


def create_app(
    s: Settings | None = None,
    session_factory: SessionFactory | None = None,
    credentials: CredentialStore | None = None,
    initialize_on_startup: bool = True,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        s: Settings to use. Defaults to the environment settings.
        session_factory: Overrides SESSION_FACTORY (used by tests).
        credentials: Overrides the file credential store.
        initialize_on_startup: Open the session from the lifespan hook.

    Raises:
        ConfigurationError: If the settings are unusable.
    """
    s = s or default_settings
    validate_settings(s)
    configure_logging(s.LOG_LEVEL, s.LOG_FORMAT, s.LOG_FILE or None)

    manager = build_manager(s, session_factory, credentials)

    app = FastAPI(
        title="wagateway",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = s
    app.state.manager = manager
    app.state.dispatcher = OutboundDispatcher(
        manager, country_code=s.COUNTRY_CODE, footer=s.MESSAGE_FOOTER,
    )
    app.state.initialize_on_startup = initialize_on_startup

    # Order matters: the last added middleware runs first.
    app.add_middleware(AuthMiddleware, api_token=s.API_TOKEN)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=s.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for mod_path in _route_modules:
        module = importlib.import_module(mod_path)
        app.include_router(module.router)

    _register_exception_handlers(app)
    return app


# --- Exception handlers ---


def _register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(MissingFields)
    async def missing_fields_handler(request: Request, exc: MissingFields) -> JSONResponse:
        logger.warning("Missing required fields: %s", ", ".join(exc.names))
        return failure(400, "Missing required fields", str(exc))

    @app.exception_handler(InvalidPayload)
    async def invalid_payload_handler(request: Request, exc: InvalidPayload) -> JSONResponse:
        logger.warning("Invalid payload: %s", exc)
        return failure(400, "Invalid payload", str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return failure(400, "Invalid request", str(exc.errors()))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            logger.warning("404 - Route not found: %s %s", request.method, request.url.path)
            return failure(404, "Route not found", f"{request.method} {request.url.path}")
        return failure(exc.status_code, str(exc.detail), str(exc.detail))

    @app.exception_handler(ServiceUnavailable)
    async def unavailable_handler(request: Request, exc: ServiceUnavailable) -> JSONResponse:
        return failure(
            503,
            "Service unavailable",
            "Chat session is not connected. Please check connection status.",
        )

    @app.exception_handler(SessionError)
    async def session_error_handler(request: Request, exc: SessionError) -> JSONResponse:
        return failure(500, "Failed to send message", str(exc))

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
        logger.error("Configuration error: %s", exc)
        return failure(500, "Server configuration error", str(exc))

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        logger.error("Gateway error: %s", exc)
        return failure(500, "Gateway error", str(exc))

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error: %s", exc)
        return failure(500, "Internal server error", str(exc))


app = create_app()
