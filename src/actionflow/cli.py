"""
actionflow command line.

Commands:
- graph: print a built-in action graph (Mermaid or JSON)
- check: load model definitions and show their resolved relationships
- run:   execute an action against the in-memory operator
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from actionflow import __version__
from actionflow.core.config import load_settings
from actionflow.core.errors import ActionFlowError

app = typer.Typer(
    help="Declarative backend execution core",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"actionflow {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version"),
    ] = False,
) -> None:
    """Declarative backend execution core."""


def _read_json(path: Path, what: str) -> Any:
    try:
        return json.loads(path.read_text())
    except OSError as e:
        err_console.print(f"[red]Cannot read {what} file {path}: {e}[/red]")
        raise typer.Exit(code=1)
    except json.JSONDecodeError as e:
        err_console.print(f"[red]Invalid JSON in {what} file {path}: {e}[/red]")
        raise typer.Exit(code=1)


def _parse_json_option(value: str | None, what: str) -> Any:
    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        err_console.print(f"[red]Invalid JSON for {what}: {e}[/red]")
        raise typer.Exit(code=1)


def load_models(path: Path) -> Any:
    """
    Build a frozen model registry from a JSON file.

    The file holds either a list of model definitions or an object
    ``{"models": [...], "views": [...]}``.
    """
    from actionflow.runtime.registry import ModelRegistry

    data = _read_json(path, "models")
    if isinstance(data, list):
        data = {"models": data}

    registry = ModelRegistry()
    for model in data.get("models", []):
        registry.register(model)
    for view in data.get("views", []):
        registry.register_view(view)
    registry.freeze()
    return registry


# =============================================================================
# Commands
# =============================================================================


@app.command()
def graph(
    action: Annotated[str, typer.Argument(help="Action name (create, readOne, ...)")],
    format: Annotated[
        str, typer.Option("--format", "-f", help="Output format (mermaid or json)")
    ] = "mermaid",
) -> None:
    """
    Print the state graph of a built-in action.

    Examples:
        actionflow graph create
        actionflow graph delete -f json
    """
    from actionflow.runtime.actions import graph_for
    from actionflow.runtime.mermaid import render_mermaid

    try:
        spec = graph_for(action)
    except ActionFlowError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1)

    if format.lower() == "json":
        typer.echo(json.dumps(spec.to_wire(), indent=2))
    elif format.lower() == "mermaid":
        typer.echo(render_mermaid(spec, title=action))
    else:
        err_console.print(f"[red]Unknown format '{format}' (expected mermaid or json)[/red]")
        raise typer.Exit(code=1)


@app.command()
def check(
    models_file: Annotated[Path, typer.Argument(help="JSON file with model definitions")],
) -> None:
    """Validate model definitions and show each relationship's keys."""
    from actionflow.runtime.relationships import relationship_keys

    try:
        registry = load_models(models_file)
    except ActionFlowError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1)

    table = Table(title=f"{len(registry)} model(s)")
    table.add_column("Model", style="cyan")
    table.add_column("Table")
    table.add_column("Relationship")
    table.add_column("Kind")
    table.add_column("Keys", style="dim")

    for model in registry:
        if not model.relationships:
            table.add_row(model.name, model.config.table, "-", "-", "-")
            continue
        for name, rel in model.relationships.items():
            keys = relationship_keys(rel)
            table.add_row(
                model.name,
                model.config.table,
                f"{name} -> {rel.related_model}",
                rel.kind,
                f"{keys.current_key} = {rel.related_model}.{keys.related_key}",
            )

    console.print(table)
    console.print("[green]Model definitions are valid[/green]")


@app.command()
def run(
    models_file: Annotated[Path, typer.Argument(help="JSON file with model definitions")],
    model: Annotated[str, typer.Argument(help="Model name")],
    action: Annotated[str, typer.Argument(help="Action name")],
    input: Annotated[
        str | None, typer.Option("--input", "-i", help="Action input as JSON")
    ] = None,
    data: Annotated[
        Path | None,
        typer.Option("--data", "-d", help="JSON file with rows by table name"),
    ] = None,
    config: Annotated[
        str | None, typer.Option("--config", "-c", help="Model config overrides as JSON")
    ] = None,
    history: Annotated[
        bool, typer.Option("--history", help="Show the executed states")
    ] = False,
) -> None:
    """
    Execute an action against in-memory tables.

    Examples:
        actionflow run models.json post readList -d rows.json
        actionflow run models.json post readOne -i '{"filters": {"id": 1}}' --history
    """
    from actionflow.runtime.logging import setup_logging
    from actionflow.runtime.memory_operator import InMemoryOperator
    from actionflow.runtime.orchestrator import ActionOrchestrator
    from actionflow.runtime.registry import OperatorRegistry

    try:
        settings = load_settings(Path.cwd())
    except ActionFlowError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1)
    setup_logging(
        settings.log_dir, level=settings.log_level_number, to_file=settings.log_to_file
    )

    payload = _parse_json_option(input, "--input")
    overrides = _parse_json_option(config, "--config")
    fixtures = _read_json(data, "data") if data else {}

    try:
        registry = load_models(models_file)
        tables = {m.config.table: [] for m in registry}
        tables.update(fixtures)
        memory = InMemoryOperator(
            tables, primary_keys={m.config.table: m.primary_key for m in registry}
        )
        operators = OperatorRegistry()
        connections = {m.config.connection or settings.default_connection for m in registry}
        for connection in sorted(connections):
            operators.register(connection, memory)
        orchestrator = ActionOrchestrator(registry, operators=operators, settings=settings)
        packet = orchestrator.execute_packet(model, action, payload, config=overrides)
    except ActionFlowError as e:
        err_console.print(f"[red]{type(e).__name__}: {escape(str(e))}[/red]")
        raise typer.Exit(code=1)

    if history:
        table = Table(title=f"{model}.{action}")
        table.add_column("#", justify="right")
        table.add_column("State", style="cyan")
        table.add_column("Duration (ms)", justify="right")
        for index, entry in enumerate(packet.state_history, start=1):
            table.add_row(str(index), entry.state_name, f"{(entry.duration or 0) * 1000:.2f}")
        console.print(table)

    console.print_json(json.dumps(packet.current_output, default=str))


if __name__ == "__main__":
    app()
