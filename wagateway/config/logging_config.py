"""Logging setup shared by the API server and the CLI."""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

from rich.logging import RichHandler

_PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(
    level: str = "INFO",
    fmt: str = "rich",
    log_file: str | None = None,
    max_log_size_mb: int = 10,
    backup_count: int = 5,
) -> None:
    """
    Configure the ``wagateway`` logger tree.

    Args:
        level: Level name for the ``wagateway`` loggers.
        fmt: "rich" for a colored console handler, "plain" otherwise.
        log_file: Optional path of a rotating log file.
        max_log_size_mb: Rotation threshold for the log file.
        backup_count: Rotated files to keep.
    """
    logger = logging.getLogger("wagateway")
    logger.setLevel(level.upper())

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if fmt == "rich":
        console: logging.Handler = RichHandler(rich_tracebacks=True, show_path=False)
        console.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    else:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(_PLAIN_FORMAT))
    logger.addHandler(console)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_log_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(_PLAIN_FORMAT))
        logger.addHandler(file_handler)

    logger.propagate = False
