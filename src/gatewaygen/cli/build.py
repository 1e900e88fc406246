"""gwgen build command - generate code for a service tree."""

import json
from pathlib import Path

import click

from gatewaygen.build.formatters import FormatterPipeline
from gatewaygen.build.orchestrator import BuildMode, BuildOrchestrator, BuildReport
from gatewaygen.cli.utils import fail, load_project, parse_instance_keys
from gatewaygen.core.errors import GatewayGenError
from gatewaygen.module.models import InstanceKey


def _report_json(report: BuildReport) -> dict[str, object]:
    return {
        "buildId": report.build_id,
        "mode": str(report.mode),
        "order": [str(k) for k in report.order],
        "generated": [str(k) for k in report.generated],
        "hot": [str(k) for k in report.hot],
        "skippedNoGenerator": [str(k) for k in report.skipped_no_generator],
        "pruned": [str(k) for k in report.pruned],
        "filesWritten": report.files_written,
        "durationSeconds": round(report.duration_seconds, 3),
    }


@click.command()
@click.option(
    "--config",
    "config_path",
    required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Build configuration file (YAML or JSON)",
)
@click.option("--instance", "instance_name", help="Build only this instance (needs --type)")
@click.option("--type", "class_name", help="Module class of --instance")
@click.option(
    "--selective",
    multiple=True,
    metavar="CLASS/INSTANCE",
    help="Build these instances and their dependents (repeatable)",
)
@click.option("--full/--incremental", default=False, help="Ignore the incremental cache (default: incremental)")
@click.option("--no-format", is_flag=True, help="Skip source formatters")
@click.option("-q", "--quiet", is_flag=True, help="No progress output")
@click.option("--json", "as_json", is_flag=True, help="Print the build report as JSON")
@click.pass_context
def build_command(
    ctx: click.Context,
    config_path: Path,
    instance_name: str | None,
    class_name: str | None,
    selective: tuple[str, ...],
    full: bool,
    no_format: bool,
    quiet: bool,
    as_json: bool,
) -> None:
    """Generate code for every configured module instance.

    By default only instances whose inputs changed since the last build are
    regenerated. --instance/--type and --selective restrict the build to
    the named instances plus everything that depends on them.
    """
    if (instance_name is None) != (class_name is None):
        raise click.ClickException("--instance and --type must be given together")

    selection: list[InstanceKey] | None = None
    if selective or instance_name:
        selection = parse_instance_keys(selective)
        if instance_name and class_name:
            selection.append(InstanceKey(class_name, instance_name))

    try:
        config, system = load_project(ctx, config_path)
        orchestrator = BuildOrchestrator(
            config,
            system,
            formatters=FormatterPipeline.disabled() if no_format else None,
            quiet=quiet or as_json,
        )
        report = orchestrator.build(BuildMode.FULL if full else BuildMode.INCREMENTAL, selection)
    except GatewayGenError as e:
        fail(e)

    if as_json:
        click.echo(json.dumps(_report_json(report), indent=2))
