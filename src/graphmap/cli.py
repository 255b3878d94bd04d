"""
graphmap command line.

Usage:
    graphmap render <template.json> [--output graph.svg]
    graphmap layers <tasks.json>
    graphmap tour <template.json>
    graphmap templates <registry.json>
"""

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from graphmap.api import load_template, render_svg
from graphmap.errors import GraphmapError
from graphmap.preprocess import sanitize
from graphmap.settings import get_settings
from graphmap.templates import TemplateKind, TemplateStore
from graphmap.tour import resolve_steps

app = typer.Typer(
    name="graphmap",
    help="Layered node/edge graphs: layout, layering and guided tours",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def setup_logging(level: str = "INFO") -> None:
    """Configure logging with rich output."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True)],
    )


def _load(path: Path):
    try:
        return load_template(path)
    except GraphmapError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)


@app.command()
def render(
    path: Path = typer.Argument(..., help="Template file (career export or task database)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the SVG here instead of stdout"),
    width: Optional[float] = typer.Option(None, help="Viewport width in pixels"),
    height: Optional[float] = typer.Option(None, help="Viewport height in pixels"),
):
    """Lay a template out until stable and emit it as SVG."""
    settings = get_settings()
    setup_logging(settings.log_level)

    template = _load(path)
    try:
        svg = render_svg(template, width=width, height=height, settings=settings)
    except GraphmapError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    if output is None:
        typer.echo(svg)
        return
    output.write_text(svg, encoding="utf-8")
    console.print(f"[green]Wrote {output}[/green] ({len(template.nodes)} nodes, {len(template.links)} links)")


@app.command()
def layers(
    path: Path = typer.Argument(..., help="Template file"),
):
    """Show the layer of every node; task databases also show dependency cycles."""
    setup_logging(get_settings().log_level)

    template = _load(path)
    table = Table(title=f"Layers of {template.name}")
    table.add_column("Node", style="cyan", no_wrap=True)
    table.add_column("Label", style="white")
    table.add_column("Layer", style="green", justify="right")

    if template.kind == TemplateKind.TASK_MANAGEMENT:
        store = TemplateStore()
        store.add(template)
        assignment = store.layers_for(template.id)
        table.add_column("Cycle", style="red")
        for node in template.nodes:
            cyclic = ""
            if node.get("templateType") == "task":
                task_id = int(node["id"].removeprefix("task-"))
                cyclic = "yes" if assignment.is_cyclic(task_id) else ""
            table.add_row(node["id"], str(node.get("label", "")), str(node.get("layer", 0)), cyclic)
    else:
        for node in sorted(template.nodes, key=lambda n: (n.get("layer", 0), n["id"])):
            table.add_row(node["id"], str(node.get("label", "")), str(node.get("layer", 0)))

    console.print(table)


@app.command()
def tour(
    path: Path = typer.Argument(..., help="Template file"),
):
    """List the guided tour steps a template resolves to."""
    setup_logging(get_settings().log_level)

    template = _load(path)
    graph = sanitize(template.nodes, template.links)
    steps = resolve_steps(template.kind, graph.nodes, template.details, template.meta, base_dir=path.parent)

    table = Table(title=f"Tour of {template.name}")
    table.add_column("#", justify="right")
    table.add_column("Title", style="cyan")
    table.add_column("Node", style="green")
    table.add_column("Target", style="yellow")
    table.add_column("Demo", style="magenta")
    for i, step in enumerate(steps):
        demos = [name for name, on in (("hover", step.hover_node), ("click", step.click_node)) if on]
        if step.search_demo:
            demos.append(f"search {step.search_demo!r}")
        table.add_row(str(i), step.title, step.node_id or "", step.target or "", ", ".join(demos))
    console.print(table)


@app.command()
def templates(
    registry: Path = typer.Argument(..., help="Registry file listing template entries"),
):
    """Load a template registry and list what it provides."""
    setup_logging(get_settings().log_level)

    store = TemplateStore()
    try:
        store.load_registry(registry)
    except GraphmapError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    default = store.default_id()
    table = Table(title="Templates")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="white")
    table.add_column("Kind", style="yellow")
    table.add_column("Nodes", justify="right")
    for template in store.available():
        marker = " (default)" if template.id == default else ""
        table.add_row(f"{template.id}{marker}", template.name, template.kind.value, str(len(template.nodes)))
    console.print(table)


if __name__ == "__main__":
    app()
