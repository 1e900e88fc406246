"""gwgen schema command - show generator option schemas."""

import json

import click

from gatewaygen.cli.utils import fail
from gatewaygen.codegen.system import new_default_module_system
from gatewaygen.core.errors import GatewayGenError


@click.command()
@click.argument("class_name", required=False)
@click.argument("type_name", required=False)
@click.option("--list", "list_types", is_flag=True, help="List registered classes and types")
def schema_command(class_name: str | None, type_name: str | None, list_types: bool) -> None:
    """Print the JSON schema of an instance's ``config`` for CLASS_NAME TYPE_NAME."""
    system = new_default_module_system()

    if list_types or class_name is None:
        for name, type_, has_generator in system.describe():
            suffix = "" if has_generator else "  (no generator)"
            click.echo(f"{name}/{type_}{suffix}")
        return

    if type_name is None:
        raise click.ClickException("TYPE_NAME is required with CLASS_NAME")

    try:
        schema = system.option_schema(class_name, type_name)
    except GatewayGenError as e:
        fail(e)

    if schema is None:
        click.echo(f"{class_name}/{type_name} takes no options")
        return
    click.echo(json.dumps(schema, indent=2, sort_keys=True))
