"""Dependency resolution commands for tagDAG CLI."""

from pathlib import Path
from typing import Annotated

import typer
from pydantic import TypeAdapter
from rich.console import Console
from rich.table import Table

from tagdag.compiler.config_loader import load_config
from tagdag.compiler.workspace_loader import load_workspace
from tagdag.kernel.config.models import TagDAGConfig
from tagdag.kernel.domain.dependency import DependencyGraph
from tagdag.kernel.exceptions import TagDAGError
from tagdag.kernel.resolver.graph_builder import BuildOptions, DependencyGraphBuilder
from tagdag.kernel.resolver.summary import UnresolvedReference, summarize, to_analysis_result

app = typer.Typer()
console = Console()
err_console = Console(stderr=True)

WorkspaceArg = Annotated[
    Path,
    typer.Argument(help="Workspace snapshot (container export or flat JSON/YAML)"),
]
TagOpt = Annotated[
    list[str] | None,
    typer.Option("--tag", "-t", help="Root tag id (repeatable)"),
]
AllTagsOpt = Annotated[bool, typer.Option("--all-tags", help="Use every tag as a root")]
ReverseOpt = Annotated[
    bool | None,
    typer.Option(
        "--reverse/--no-reverse",
        help="Also discover companion users and event pushers (default from config)",
    ),
]
JsonOpt = Annotated[bool, typer.Option("--json", help="Output machine-readable JSON")]

_UNRESOLVED_LIST = TypeAdapter(list[UnresolvedReference])


def _config(ctx: typer.Context) -> TagDAGConfig:
    if ctx.obj and ctx.obj.get("config") is not None:
        return ctx.obj["config"]
    return load_config()


def _build(
    ctx: typer.Context,
    workspace: Path,
    tags: list[str] | None,
    all_tags: bool,
    reverse: bool | None,
) -> DependencyGraph:
    """Load the snapshot and build the graph of the selected tags."""
    try:
        pool = load_workspace(workspace)
    except TagDAGError as e:
        err_console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e

    if all_tags:
        selected = list(pool.tags)
    else:
        by_id = {tag.entity_id: tag for tag in pool.tags}
        selected = [by_id[tag_id] for tag_id in dict.fromkeys(tags or []) if tag_id in by_id]
        for tag_id in tags or []:
            if tag_id not in by_id:
                err_console.print(f"[yellow]⚠ Tag {tag_id} not in {workspace.name}[/yellow]")

    if not selected:
        err_console.print("[red]Error: no selected tag exists in the workspace[/red]")
        err_console.print("[dim]Pass --tag ID or --all-tags[/dim]")
        raise typer.Exit(1)

    config = _config(ctx)
    options = BuildOptions(
        enable_reverse_tracking=(
            config.resolver.enable_reverse_tracking if reverse is None else reverse
        ),
        candidate_tags=pool.tags,
    )
    builder = DependencyGraphBuilder(config=config.resolver)
    try:
        return builder.build_from_entities(
            selected, pool.triggers, pool.variables, pool.templates, options
        )
    except TagDAGError as e:
        err_console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e


@app.command("order")
def creation_order(
    ctx: typer.Context,
    workspace: WorkspaceArg,
    tags: TagOpt = None,
    all_tags: AllTagsOpt = False,
    reverse: ReverseOpt = None,
    json_out: JsonOpt = False,
) -> None:
    """Print the order in which the selected tags' dependencies must be created."""
    graph = _build(ctx, workspace, tags, all_tags, reverse)
    result = to_analysis_result(graph)

    if json_out:
        typer.echo(result.model_dump_json(indent=2))
        return

    table = Table(title=f"Creation order for [bold]{graph.root_name}[/bold]")
    table.add_column("Step", justify="right", style="dim")
    table.add_column("Kind", style="cyan")
    table.add_column("ID", style="green")
    table.add_column("Name")
    table.add_column("Type", style="dim")
    recovered = set(graph.recovered)
    for item in result.creation_order:
        name = f"{item.name} [yellow](cycle)[/yellow]" if item.id in recovered else item.name
        table.add_row(str(item.step), item.kind.value, item.id, name, item.type)
    console.print(table)

    if graph.recovered:
        console.print(
            f"[yellow]⚠ {len(graph.recovered)} node(s) placed outside dependency order[/yellow]"
        )


@app.command("summary")
def summary(
    ctx: typer.Context,
    workspace: WorkspaceArg,
    tags: TagOpt = None,
    all_tags: AllTagsOpt = False,
    reverse: ReverseOpt = None,
    json_out: JsonOpt = False,
) -> None:
    """Count the entities the selected tags depend on."""
    graph = _build(ctx, workspace, tags, all_tags, reverse)
    counts = summarize(graph)

    if json_out:
        typer.echo(counts.model_dump_json(indent=2))
        return

    table = Table(title=f"Summary for [bold]{graph.root_name}[/bold]", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right", style="green")
    for field_name, value in counts.model_dump().items():
        table.add_row(field_name.replace("_", " "), str(value))
    console.print(table)


@app.command("unresolved")
def unresolved(
    ctx: typer.Context,
    workspace: WorkspaceArg,
    tags: TagOpt = None,
    all_tags: AllTagsOpt = False,
    reverse: ReverseOpt = None,
    json_out: JsonOpt = False,
) -> None:
    """List references that did not resolve to an entity of the workspace."""
    graph = _build(ctx, workspace, tags, all_tags, reverse)
    result = to_analysis_result(graph)

    if json_out:
        typer.echo(_UNRESOLVED_LIST.dump_json(result.unresolved, indent=2).decode())
        return

    if not result.unresolved:
        console.print("[green]✓ All references resolved[/green]")
        return

    table = Table(title=f"Unresolved references ({len(result.unresolved)})")
    table.add_column("Source", style="cyan")
    table.add_column("Target", style="red")
    table.add_column("Kind")
    table.add_column("Type", style="dim")
    table.add_column("Location", style="dim")
    for ref in result.unresolved:
        table.add_row(
            f"{ref.source_name} ({ref.source_id})",
            ref.target,
            ref.target_kind.value,
            ref.dependency_type.value,
            ref.location,
        )
    console.print(table)
