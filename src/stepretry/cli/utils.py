"""
CLI utility helpers: config loading and output formatting.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import typer
import yaml
from rich.console import Console
from rich.table import Table

from stepretry.core.errors import ConfigurationError

console = Console()
err_console = Console(stderr=True)


# ── Config loading ───────────────────────────────────────────────────────


def load_mapping(path: Path) -> dict[str, Any]:
    """Read a YAML or JSON file into a dict. Empty files give ``{}``."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Cannot read {path}: {exc}", field="path", cause=exc) from exc

    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text) if text.strip() else None
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Cannot parse {path}: {exc}", field="path", cause=exc) from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping at the top level", field="path")
    return data


# ── Output helpers ───────────────────────────────────────────────────────


def fail(error: ConfigurationError) -> None:
    """Print a configuration error and exit with code 1."""
    where = f" [dim]({error.field})[/dim]" if error.field else ""
    err_console.print(f"[bold red]Configuration error[/bold red]{where}: {error.message}")
    raise typer.Exit(code=1)


def output_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


def print_table(rows: list[dict[str, Any]], *, title: str = "") -> None:
    """Render a list of dicts as a Rich table."""
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in rows[0]:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*(str(v) for v in row.values()))
    console.print(table)


def print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
