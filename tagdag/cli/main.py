"""tagDAG CLI - Main entrypoint."""

from pathlib import Path

import typer
from rich.console import Console

from tagdag import __version__
from tagdag.cli.commands import config_cmd, resolve_cmd
from tagdag.compiler.config_loader import ConfigLoader, load_config
from tagdag.kernel.exceptions import TagDAGError
from tagdag.kernel.logging import configure_logging

# Create the main Typer app
app = typer.Typer(
    name="tagdag",
    help="tagDAG - Dependency resolution and creation ordering for tag-manager workspaces.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=False,
)

console = Console()
err_console = Console(stderr=True)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"[bold blue]tagDAG[/bold blue] version [green]{__version__}[/green]")
        raise typer.Exit()


app.add_typer(resolve_cmd.app, name="resolve", help="Resolve dependencies of workspace tags")
app.add_typer(config_cmd.app, name="config", help="Configuration management")


@app.callback()
def callback(
    ctx: typer.Context,
    *,
    quiet: bool = typer.Option(False, "-q", "--quiet", help="Suppress non-error output"),
    verbose: bool = typer.Option(False, "-V", "--verbose", help="Enable verbose logging"),
    config_path: Path | None = typer.Option(
        None, "--config", "-c", help="Path to a kind: Config YAML or TOML file"
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """tagDAG CLI.

    Global flags are parsed here and stored on `ctx.obj` for subcommands.
    """
    if ctx.obj is None:
        ctx.obj = {}

    if config_path is None:
        config = load_config()
    else:
        try:
            config = ConfigLoader().load_config_file(config_path)
        except (FileNotFoundError, TagDAGError) as e:
            err_console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(1) from e

    effective_level = config.logging.level
    if quiet:
        effective_level = "ERROR"
    elif verbose:
        effective_level = "DEBUG"

    ctx.obj.update({
        "quiet": quiet,
        "verbose": verbose,
        "config_path": config_path,
        "config": config,
        "log_level": effective_level,
    })

    configure_logging(
        level=effective_level,
        format=config.logging.format,
        output_file=config.logging.output_file,
        use_color=config.logging.use_color,
        include_timestamp=config.logging.include_timestamp,
        use_rich=config.logging.use_rich,
        dual_sink=config.logging.dual_sink,
        enable_stdlib_bridge=config.logging.enable_stdlib_bridge,
        backtrace=config.logging.backtrace,
        diagnose=config.logging.diagnose,
        force_reconfigure=True,
    )


def main() -> None:
    """Main CLI entrypoint."""
    app()


if __name__ == "__main__":
    main()
