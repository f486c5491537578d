"""wagateway configuration via environment / .env file."""

from __future__ import annotations

import importlib
import os
from pathlib import Path
from typing import Any, Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from wagateway.session.errors import ConfigurationError


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Server ---
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # --- Auth ---
    API_TOKEN: str = ""

    # --- Session storage ---
    AUTH_DIR: str = "auth"
    QR_IMAGE_PATH: str = "public/qr/qr-code.png"
    QR_IMAGE_URL: str = "/api/v1/qr/image"
    PRINT_QR_IN_TERMINAL: bool = True

    # --- Session backend ---
    SESSION_FACTORY: str = "wagateway.session.memory:MemorySession"

    # --- Dispatch ---
    COUNTRY_CODE: str = "62"
    MESSAGE_FOOTER: str = ""
    MAX_UPLOAD_BYTES: int = 16 * 1024 * 1024

    # --- Reconnect policy ---
    RECONNECT_BASE_DELAY: float = 1.0
    RECONNECT_FACTOR: float = 2.0
    RECONNECT_MAX_DELAY: float = 60.0
    RECONNECT_MAX_ATTEMPTS: int = 0

    # --- Logging ---
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_FORMAT: Literal["rich", "plain"] = "rich"
    LOG_FILE: str = ""

    # --- CORS ---
    CORS_ORIGINS: list[str] = ["*"]

    @field_validator("COUNTRY_CODE", mode="before")
    @classmethod
    def _strip_country_code(cls, v: Any) -> str:
        v = str(v).strip().lstrip("+")
        if not v.isdigit():
            raise ValueError("COUNTRY_CODE must contain digits only")
        return v

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _upper_log_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @property
    def auth_required(self) -> bool:
        return bool(self.API_TOKEN)


def load_session_factory(path: str) -> Any:
    """
    Import a session factory from a ``module:attribute`` path.

    Raises:
        ConfigurationError: If the path is malformed or cannot be imported.
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigurationError(
            f"SESSION_FACTORY must look like 'package.module:factory', got {path!r}"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import session module {module_name!r}: {e}") from e
    try:
        factory = getattr(module, attr)
    except AttributeError as e:
        raise ConfigurationError(f"{module_name!r} has no attribute {attr!r}") from e
    if not callable(factory):
        raise ConfigurationError(f"SESSION_FACTORY {path!r} is not callable")
    return factory


def validate_settings(s: Settings) -> None:
    """
    Fail fast on deployment parameters the gateway cannot run without.

    Raises:
        ConfigurationError: On the first problem found.
    """
    if not s.AUTH_DIR.strip():
        raise ConfigurationError("AUTH_DIR is required")
    if not s.QR_IMAGE_PATH.strip():
        raise ConfigurationError("QR_IMAGE_PATH is required")
    if Path(s.QR_IMAGE_PATH).suffix.lower() != ".png":
        raise ConfigurationError("QR_IMAGE_PATH must point to a .png file")
    if s.MAX_UPLOAD_BYTES <= 0:
        raise ConfigurationError("MAX_UPLOAD_BYTES must be positive")
    if s.RECONNECT_BASE_DELAY < 0:
        raise ConfigurationError("RECONNECT_BASE_DELAY cannot be negative")
    if s.RECONNECT_FACTOR < 1:
        raise ConfigurationError("RECONNECT_FACTOR must be at least 1")
    if s.RECONNECT_MAX_DELAY < s.RECONNECT_BASE_DELAY:
        raise ConfigurationError("RECONNECT_MAX_DELAY must be >= RECONNECT_BASE_DELAY")
    if s.RECONNECT_MAX_ATTEMPTS < 0:
        raise ConfigurationError("RECONNECT_MAX_ATTEMPTS cannot be negative")
    load_session_factory(s.SESSION_FACTORY)


def writable_dir(path: str | os.PathLike) -> bool:
    """True if ``path`` exists as a writable directory or could be created."""
    p = Path(path)
    while not p.exists():
        if p.parent == p:
            return False
        p = p.parent
    return p.is_dir() and os.access(p, os.W_OK)


settings = Settings()
