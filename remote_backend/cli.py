from pathlib import Path
from typing import Iterable, Optional

import click
from pydantic import ValidationError

from . import __version__, terminal
from .config import BackendSettings
from .engine import BackendExecutor, render_descriptor
from .errors import StateDirectoryNotFound
from .logs import setup_logging
from .models import BackendDescriptor, ExecutionContext, MigrationResult, Outcome, StepResult

CLICK_CONTEXT_SETTINGS = dict(
    help_option_names=["-h", "--help"],
    show_default=True,
)

pass_executor = click.make_pass_decorator(BackendExecutor)


class BackendGroup(click.Group):
    """Prints usage and exits with status 1 on an unknown command."""

    def resolve_command(self, ctx: click.Context, args):
        if args and self.get_command(ctx, args[0]) is None:
            click.echo(f"Unknown command: {args[0]}\n")
            click.echo(ctx.get_help())
            ctx.exit(1)
        return super().resolve_command(ctx, args)


@click.group(
    cls=BackendGroup,
    invoke_without_command=True,
    context_settings=CLICK_CONTEXT_SETTINGS,
    epilog="""
    \b
    Examples:
      {prog} setup          - Set up backend infrastructure
      {prog} migrate dev    - Migrate state for dev workspace
      {prog} migrate-all    - Migrate state for all detected workspaces
      {prog} list           - List available workspaces with state files
      {prog} destroy        - Destroy backend infrastructure
    """.format(prog="remote-backend"),
)
@click.option("--region", default=None, help="AWS region of the backend. [default: from settings]")
@click.option(
    "--working-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    help="Terraform project root holding backend.tf.",
)
@click.option(
    "--state-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Local workspace state directory. [default: <working-dir>/terraform.tfstate.d]",
)
@click.option("--profile", default=None, help="AWS shared config profile.")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR).")
@click.option("--json-logs", is_flag=True, default=False, help="Emit logs as JSON.")
@click.version_option(__version__, prog_name="remote-backend")
@click.pass_context
def cli(
    ctx: click.Context,
    region: Optional[str],
    working_dir: Path,
    state_dir: Optional[Path],
    profile: Optional[str],
    log_level: Optional[str],
    json_logs: bool,
):
    """Set up a Terraform S3 backend and migrate local workspace state into it."""
    try:
        settings = BackendSettings()
    except ValidationError as e:
        terminal.error(f"Invalid configuration: {e}")

    overrides = {"region": region, "aws_profile": profile, "log_level": log_level}
    settings = settings.model_copy(update={k: v for k, v in overrides.items() if v})
    if json_logs:
        settings = settings.model_copy(update={"log_format": "json"})

    setup_logging(settings.log_level, json_format=settings.log_format == "json")

    working_dir = working_dir.resolve()
    context = ExecutionContext(
        working_directory=working_dir,
        region=settings.region,
        state_dir=(state_dir or working_dir / settings.state_dir_name).resolve(),
        state_file_name=settings.state_file_name,
        descriptor_file_name=settings.descriptor_file_name,
        key_prefix=settings.key_prefix,
    )
    ctx.obj = BackendExecutor(context, settings)

    terminal.detail(f"Using state directory: {context.state_dir}")

    if ctx.invoked_subcommand is None:
        ctx.invoke(setup)


@cli.command(help="Set up S3 bucket and DynamoDB table for Terraform backend.")
@pass_executor
def setup(executor: BackendExecutor):
    terminal.header("Setting up Terraform backend infrastructure")

    result = executor.setup()
    _print_steps(result.steps)

    if not result.success:
        terminal.error(result.error)

    _show_backend_config(result.descriptor)
    terminal.success(f"Backend configuration written to {executor.context.descriptor_file_name}")


def _workspace_name(ctx: click.Context, param: click.Parameter, value: str) -> str:
    if not value or "/" in value or value in (".", ".."):
        raise click.BadParameter(f"invalid workspace name: {value!r}")
    return value


@cli.command(help="Migrate state for a specific workspace.")
@click.argument("workspace", default="dev", required=False, callback=_workspace_name)
@pass_executor
def migrate(executor: BackendExecutor, workspace: str):
    terminal.header(f"Migrating state for workspace: {workspace}")

    result = executor.migrate(workspace)
    if not result.success:
        terminal.error(result.error)

    _print_migrations(result.migrations)


@cli.command("migrate-all", help="Migrate state for all detected workspaces.")
@pass_executor
def migrate_all(executor: BackendExecutor):
    terminal.header("Migrating state for all workspaces")

    result = executor.migrate_all()
    if result.workspaces:
        terminal.print(f"Found workspaces: {' '.join(w.name for w in result.workspaces)}")

    _print_migrations(result.migrations)

    if not result.success:
        terminal.error(result.error)


@cli.command("list", help="List available workspaces with state files.")
@pass_executor
def list_(executor: BackendExecutor):
    try:
        result = executor.list_workspaces()
    except StateDirectoryNotFound as e:
        terminal.warn(e.message)
        raise SystemExit(1)

    if not result.workspaces:
        terminal.warn(f"No workspaces with state files found in {executor.context.state_dir}")
        raise SystemExit(1)

    terminal.print(f"Found workspaces: {' '.join(w.name for w in result.workspaces)}")


@cli.command(help="Destroy backend infrastructure (S3 bucket and DynamoDB table).")
@click.option("--yes", "-y", is_flag=True, default=False, help="Skip the confirmation prompt.")
@pass_executor
def destroy(executor: BackendExecutor, yes: bool):
    terminal.header("Destroying backend infrastructure")

    def confirm(bucket: str, table: str) -> bool:
        terminal.print("Found backend configuration:")
        terminal.print(f"  Bucket: {bucket}")
        terminal.print(f"  DynamoDB table: {table}")
        terminal.warn(
            "WARNING: This will delete all Terraform state data in the S3 bucket and DynamoDB table."
        )
        if yes:
            return True
        return terminal.confirm("Are you sure you want to destroy the backend infrastructure?")

    result = executor.destroy(confirm)
    _print_steps(result.steps)

    if not result.success:
        if any(step.outcome == Outcome.FATAL for step in result.steps):
            # Failed steps are already printed
            terminal.error("Backend teardown incomplete, backend.tf kept for a retry.")
        else:
            terminal.error(result.error)

    if result.cancelled:
        terminal.print("Destroy operation cancelled.")
        return

    terminal.success("Backend infrastructure destroyed successfully.")


def _print_steps(steps: Iterable[StepResult]) -> None:
    for step in steps:
        _print_outcome(step.outcome, step.message)


def _print_migrations(results: Iterable[MigrationResult]) -> None:
    for result in results:
        _print_outcome(result.outcome, result.message)
        if result.record is not None:
            terminal.detail(f"  Backup: {result.record.backup_path}")


def _print_outcome(outcome: Outcome, message: str) -> None:
    if outcome == Outcome.SUCCESS:
        terminal.success(message)
    elif outcome == Outcome.NOOP:
        terminal.detail(message)
    elif outcome == Outcome.SKIPPED:
        terminal.warn(message)
    else:
        terminal.error(message, exit=False)


def _show_backend_config(descriptor: BackendDescriptor) -> None:
    terminal.print("")
    terminal.success("Terraform backend infrastructure setup complete!")
    terminal.print("")
    terminal.print("Your backend.tf configuration should look like this:")
    terminal.print("----------------")
    terminal.print_hcl(render_descriptor(descriptor))
    terminal.print("----------------")
    terminal.print("")
    terminal.print("To use a specific workspace:")
    terminal.print("terraform workspace select dev|test|prod")
    terminal.print("")
    terminal.print(
        f"This will store state at: s3://{descriptor.bucket}/"
        f"{descriptor.workspace_key_prefix}/WORKSPACE_NAME/{descriptor.key}"
    )


def start():
    """Console script entrypoint."""
    cli(prog_name="remote-backend")
