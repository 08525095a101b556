"""Configuration management commands."""

import json
from dataclasses import asdict
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from tagdag.compiler.config_loader import load_config
from tagdag.kernel.config.models import TagDAGConfig

app = typer.Typer(help="Configuration management commands")
console = Console()


def _effective_config(ctx: typer.Context, path: Path | None) -> TagDAGConfig:
    if path is not None:
        if not path.exists():
            console.print(f"[red]Error: Configuration file not found: {path}[/red]")
            raise typer.Exit(1)
        return load_config(path)
    if ctx.obj and ctx.obj.get("config") is not None:
        return ctx.obj["config"]
    return load_config()


@app.command("show")
def show_config(
    ctx: typer.Context,
    path: Annotated[
        Path | None,
        typer.Option("--path", "-p", help="Show this file instead of the discovered one"),
    ] = None,
    json_out: Annotated[bool, typer.Option("--json", help="Output machine-readable JSON")] = False,
) -> None:
    """Show the effective configuration."""
    config = _effective_config(ctx, path)
    data = asdict(config)

    if json_out:
        typer.echo(json.dumps(data, indent=2, default=list))
        return

    for section in ("logging", "resolver"):
        table = Table(title=f"[bold]{section}[/bold]", show_header=True)
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="green")
        for key, value in data[section].items():
            table.add_row(key, str(value))
        console.print(table)

    if config.settings:
        console.print("[bold]settings[/bold]")
        console.print(config.settings)
