"""gwgen resolve command - print the resolved instance graph."""

import json
from pathlib import Path

import click
from rich.table import Table

from gatewaygen.build.orchestrator import BuildOrchestrator
from gatewaygen.cli.utils import fail, load_project
from gatewaygen.core.errors import GatewayGenError
from gatewaygen.core.progress import get_console
from gatewaygen.module.models import ResolvedGraph


def _graph_json(graph: ResolvedGraph) -> list[dict[str, object]]:
    return [
        {
            "className": ri.class_name,
            "instanceName": ri.instance_name,
            "type": ri.type_name,
            "directory": ri.relative_directory,
            "dependencies": {
                class_name: [dep.instance_name for dep in deps]
                for class_name, deps in ri.resolved_dependencies.items()
            },
            "recursiveDependencies": {
                class_name: [dep.instance_name for dep in deps]
                for class_name, deps in ri.recursive_dependencies.items()
            },
            "dependencyOrder": ri.dependency_order,
        }
        for ri in graph.order
    ]


@click.command()
@click.option(
    "--config",
    "config_path",
    required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Build configuration file (YAML or JSON)",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def resolve_command(ctx: click.Context, config_path: Path, as_json: bool) -> None:
    """Print every instance in emission order with its dependencies."""
    try:
        config, system = load_project(ctx, config_path)
        graph = BuildOrchestrator(config, system, quiet=True).resolve()
    except GatewayGenError as e:
        fail(e)

    if as_json:
        click.echo(json.dumps(_graph_json(graph), indent=2))
        return

    table = Table(title=f"{len(graph)} instances", show_lines=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Class", style="cyan")
    table.add_column("Instance", style="bold")
    table.add_column("Type")
    table.add_column("Depends on")
    for i, ri in enumerate(graph.order, 1):
        deps = ", ".join(str(dep.key) for deps in ri.resolved_dependencies.values() for dep in deps)
        table.add_row(str(i), ri.class_name, ri.instance_name, ri.type_name, deps or "-")
    get_console().print(table)
