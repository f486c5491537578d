"""wagateway configuration -- environment settings and logging setup."""

from .logging_config import configure_logging
from .settings import (
    Settings,
    load_session_factory,
    settings,
    validate_settings,
    writable_dir,
)

__all__ = [
    "Settings",
    "configure_logging",
    "load_session_factory",
    "settings",
    "validate_settings",
    "writable_dir",
]
