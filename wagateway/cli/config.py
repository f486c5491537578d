"""
wagateway CLI - Configuration Commands

Commands:
    show - Display the effective configuration
"""

from __future__ import annotations

from typing import Any, Optional

import typer

from wagateway.cli import config_app
from wagateway.cli.output import print_error, print_json, print_table
from wagateway.config import settings

_SECRET_KEYS = frozenset({"API_TOKEN"})


def _mask(value: Any) -> str:
    text = str(value)
    if not text:
        return "(not set)"
    if len(text) <= 4:
        return "****"
    return f"{text[:2]}****{text[-2:]}"


def effective_config(show_secrets: bool = False) -> dict[str, Any]:
    """The loaded settings as a dict, secrets masked unless asked otherwise."""
    data = settings.model_dump()
    if not show_secrets:
        for key in _SECRET_KEYS:
            data[key] = _mask(data.get(key, ""))
    return data


@config_app.command("show")
def show_config(
    key: Optional[str] = typer.Argument(
        None,
        help="Only show this setting (e.g. COUNTRY_CODE).",
    ),
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format: table, json.",
    ),
    show_secrets: bool = typer.Option(
        False,
        "--show-secrets",
        help="Print secrets in clear text.",
    ),
) -> None:
    """
    Display the configuration read from the environment and .env.
    """
    data = effective_config(show_secrets)

    if key is not None:
        key = key.upper()
        if key not in data:
            print_error(f"Unknown setting: {key}")
            raise typer.Exit(1)
        data = {key: data[key]}

    if format == "json":
        print_json(data)
        return

    print_table(
        "wagateway configuration",
        ["Setting", "Value"],
        [[name, str(value)] for name, value in data.items()],
        styles=["cyan", None],
    )
