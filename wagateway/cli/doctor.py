"""
wagateway CLI - Doctor Commands

Diagnostic checks for a gateway deployment: configuration, storage
locations and the configured session backend.

Commands:
    run - Run all diagnostic checks
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

import typer
from rich.panel import Panel

from wagateway.cli import console, doctor_app
from wagateway.config import load_session_factory, settings, validate_settings, writable_dir
from wagateway.config.settings import Settings
from wagateway.session import ConfigurationError


class CheckResult:
    """Result of a diagnostic check."""

    def __init__(
        self,
        name: str,
        passed: bool,
        message: str,
        fix_command: str | None = None,
    ):
        self.name = name
        self.passed = passed
        self.message = message
        self.fix_command = fix_command

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "passed": self.passed,
            "message": self.message,
            "fix_command": self.fix_command,
        }


CHECKS: dict[str, Callable[[Settings], CheckResult]] = {}


def register_check(name: str):
    """Decorator to register a diagnostic check."""
    def decorator(func: Callable[[Settings], CheckResult]):
        CHECKS[name] = func
        return func
    return decorator


@register_check("config")
def check_config(s: Settings) -> CheckResult:
    try:
        validate_settings(s)
    except ConfigurationError as e:
        return CheckResult("Configuration", False, str(e))
    return CheckResult("Configuration", True, "Settings are valid")


@register_check("token")
def check_token(s: Settings) -> CheckResult:
    if s.auth_required:
        return CheckResult("API token", True, "Authentication enabled")
    return CheckResult(
        "API token", False, "API_TOKEN is empty, every request is accepted",
        fix_command="export API_TOKEN=$(openssl rand -hex 32)",
    )


@register_check("auth_dir")
def check_auth_dir(s: Settings) -> CheckResult:
    if writable_dir(s.AUTH_DIR):
        return CheckResult("Auth directory", True, f"{s.AUTH_DIR} is writable")
    return CheckResult("Auth directory", False, f"{s.AUTH_DIR} is not writable")


@register_check("qr_dir")
def check_qr_dir(s: Settings) -> CheckResult:
    qr_dir = Path(s.QR_IMAGE_PATH).parent
    if writable_dir(qr_dir):
        return CheckResult("QR directory", True, f"{qr_dir} is writable")
    return CheckResult("QR directory", False, f"{qr_dir} is not writable")


@register_check("session")
def check_session_factory(s: Settings) -> CheckResult:
    try:
        load_session_factory(s.SESSION_FACTORY)
    except ConfigurationError as e:
        return CheckResult("Session backend", False, str(e))
    message = s.SESSION_FACTORY
    if s.SESSION_FACTORY.startswith("wagateway.session.memory:"):
        message += " (in-memory, nothing is sent to a real network)"
    return CheckResult("Session backend", True, message)


def run_checks(s: Settings, only: Optional[list[str]] = None) -> list[CheckResult]:
    """Run the registered checks (or the named subset) against ``s``."""
    names = only or list(CHECKS)
    unknown = [n for n in names if n not in CHECKS]
    if unknown:
        raise typer.BadParameter(f"Unknown check(s): {', '.join(unknown)}")
    return [CHECKS[name](s) for name in names]


@doctor_app.command("run")
def run_diagnostics(
    check: Optional[list[str]] = typer.Option(
        None,
        "--check",
        "-c",
        help=f"Run specific checks only ({', '.join(CHECKS)}).",
    ),
    output: str = typer.Option(
        "rich",
        "--output",
        "-o",
        help="Output format: rich, json.",
    ),
) -> None:
    """
    Run diagnostic checks on the gateway configuration.

    Exits with status 1 if any check fails.
    """
    from wagateway.cli.output import print_json, print_status, print_success, print_warning

    results = run_checks(settings, check)
    failed = [r for r in results if not r.passed]

    if output == "json":
        print_json([r.to_dict() for r in results])
    else:
        console.print(Panel.fit("wagateway diagnostics", title="Doctor"))
        console.print()
        print_status([(r.name, r.passed, r.message) for r in results])
        console.print()
        for r in failed:
            if r.fix_command:
                console.print(f"  [dim]Fix for {r.name}:[/dim] [cyan]{r.fix_command}[/cyan]")
        if failed:
            print_warning(f"{len(failed)} of {len(results)} checks failed")
        else:
            print_success("All checks passed")

    if failed:
        raise typer.Exit(1)
