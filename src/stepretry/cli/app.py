"""
Root Typer application for the stepretry CLI.

Commands:
    stepretry policies          list registered retry policy variants
    stepretry check CONFIG      validate an orchestrator config file
"""

from __future__ import annotations

from pathlib import Path

import typer
from typer import Typer

from stepretry import __version__
from stepretry.cli.utils import fail, load_mapping, output_json, print_dict, print_table
from stepretry.core.errors import ConfigurationError
from stepretry.core.logging import configure_logging
from stepretry.core.settings import load_settings
from stepretry.orchestration.config import orchestrator_config_from_mapping
from stepretry.policies.factory import default_policy_factory

app = Typer(
    name="stepretry",
    help="stepretry: retry orchestration for step sequences.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"stepretry {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Override STEPRETRY_LOG_LEVEL."),
) -> None:
    """stepretry CLI: inspect policies and validate retry configuration."""
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        fail(exc)
        return
    configure_logging(level=log_level or settings.log_level, json_format=settings.log_json)


@app.command("policies")
def list_policies(
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List registered retry policy variants."""
    rows = [variant.to_dict() for variant in default_policy_factory().variants()]
    if json_out:
        output_json(rows)
        return
    print_table(rows, title="Retry policies")


@app.command("check")
def check_config(
    path: Path = typer.Argument(..., help="YAML or JSON orchestrator config"),
    strict: bool = typer.Option(False, "--strict", help="Reject unresolvable error categories."),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Validate an orchestrator config and show the normalised result."""
    factory = default_policy_factory()
    try:
        config = orchestrator_config_from_mapping(load_mapping(path), factory)
        factory.validate(config.policy, strict=strict)
    except ConfigurationError as exc:
        fail(exc)
        return

    payload = {**config.to_dict(), "total_attempts": config.total_attempts}
    if json_out:
        output_json(payload)
        return
    print_dict(payload, title=f"Config: {path.name}")


if __name__ == "__main__":
    app()
