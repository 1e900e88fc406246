"""gatewaygen CLI - gwgen command."""

import click

from gatewaygen.cli.build import build_command
from gatewaygen.cli.clean import clean_command
from gatewaygen.cli.resolve import resolve_command
from gatewaygen.cli.schema import schema_command
from gatewaygen.core.logging import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="gwgen")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, json_logs: bool) -> None:
    """gatewaygen - code generator for module-oriented RPC gateways."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["json_logs"] = json_logs
    configure_logging(level="DEBUG" if verbose else "WARNING", json_format=json_logs)


cli.add_command(build_command, name="build")
cli.add_command(resolve_command, name="resolve")
cli.add_command(clean_command, name="clean")
cli.add_command(schema_command, name="schema")


if __name__ == "__main__":
    cli()
