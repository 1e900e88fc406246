"""gwgen clean command - remove generated code and the incremental cache."""

import shutil
from pathlib import Path

import click
import questionary
from rich.console import Console

from gatewaygen.cli.utils import fail
from gatewaygen.codegen.package import PackageHelper
from gatewaygen.config.loader import load_build_config
from gatewaygen.core.errors import GatewayGenError


def clean_target(target_dir: Path, *, yes: bool = False) -> bool:
    """Remove the generated-code tree, cache included.

    Returns True if removed, False if cancelled or nothing to remove.
    """
    console = Console(stderr=True)
    if not target_dir.exists():
        console.print("[yellow]Nothing to clean[/yellow] - no generated code found")
        return False

    console.print("\n[bold]The following will be permanently deleted:[/bold]\n")
    console.print(f"  [cyan]•[/cyan] {target_dir}")
    console.print()

    if not yes:
        answer = questionary.select(
            "Generated code can be rebuilt with 'gwgen build'. Delete it?",
            choices=[
                questionary.Choice("No, keep it", value=False),
                questionary.Choice("Yes, delete it", value=True),
            ],
            style=questionary.Style(
                [
                    ("question", "bold"),
                    ("highlighted", "fg:red bold"),
                    ("selected", "fg:red"),
                ]
            ),
        ).ask()

        if not answer:
            console.print("[dim]Cancelled[/dim]")
            return False

    try:
        shutil.rmtree(target_dir)
    except OSError as e:
        console.print(f"  [red]✗[/red] Failed to remove {target_dir}: {e}")
        raise click.ClickException("Failed to clean generated code") from e
    console.print(f"  [green]✓[/green] Removed {target_dir}")
    return True


@click.command()
@click.option(
    "--config",
    "config_path",
    required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Build configuration file (YAML or JSON)",
)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
def clean_command(config_path: Path, yes: bool) -> None:
    """Delete the generated-code directory named by targetGenDir."""
    try:
        config = load_build_config(config_path)
        target_dir = PackageHelper(config.build).code_gen_target_path()
    except GatewayGenError as e:
        fail(e)
    clean_target(target_dir, yes=yes)
