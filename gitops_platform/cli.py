"""Engine driver: preview, apply or destroy the platform through the Pulumi Automation API."""
import re
from pathlib import Path

import typer
from pulumi import automation as auto
from rich.console import Console
from rich.table import Table

from gitops_platform import program
from gitops_platform.config import EnvironmentContext, resolve_context
from gitops_platform.exceptions import ProvisioningError
from gitops_platform.logging_config import get_logger, setup_logging

PROJECT_NAME = 'gitops-platform-aws'
# CommandError only keeps the rendered CommandResult, whose first line is the exit code.
EXIT_CODE_PATTERN = re.compile(r'^\s*code: (-?\d+)\s*$', re.MULTILINE)

app = typer.Typer(
    name='gitops-platform',
    help='Provision the GitOps platform (VPC, EKS, ECR, GitHub Actions OIDC role)',
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)

STACK_OPTION = typer.Option(None, '--stack', '-s', help='Stack name (defaults to ENV)')


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, '--verbose', '-v', help='Enable verbose logging'),
    log_file: str | None = typer.Option(None, '--log-file', help='Path to log file'),
):
    """Global options for all commands."""
    setup_logging(verbose=verbose, log_file=Path(log_file) if log_file else None)
    logger.debug('Logging initialized')


def _context() -> EnvironmentContext:
    try:
        return resolve_context()
    except ProvisioningError as e:
        console.print(f'[red]Configuration error:[/red] {e}')
        raise typer.Exit(code=1) from e


def select_stack(context: EnvironmentContext, stack_name: str | None = None) -> auto.Stack:
    stack_name = stack_name or context.environment
    logger.info(f'Selecting stack {stack_name} of {PROJECT_NAME}')
    stack = auto.create_or_select_stack(
        stack_name=stack_name,
        project_name=PROJECT_NAME,
        program=lambda: program.run(context=context),
    )
    stack.set_config('aws:region', auto.ConfigValue(value=context.region))
    stack.set_config('aws:allowedAccountIds', auto.ConfigValue(value=f'["{context.account_id}"]'))
    return stack


def engine_exit_code(error: auto.CommandError) -> int:
    match = EXIT_CODE_PATTERN.search(str(error))
    code = int(match.group(1)) if match else 0
    return code or 1


def _run_engine(operation, **kwargs):
    try:
        return operation(on_output=typer.echo, **kwargs)
    except auto.CommandError as e:
        code = engine_exit_code(e)
        logger.error(f'Engine failed with exit code {code}')
        raise typer.Exit(code=code) from e


def _print_outputs(outputs) -> None:
    table = Table(title='Stack outputs')
    table.add_column('Output', style='cyan')
    table.add_column('Value')
    for key in sorted(outputs):
        output = outputs[key]
        table.add_row(key, '(secret)' if output.secret else str(output.value))
    console.print(table)


@app.command()
def preview(stack: str | None = STACK_OPTION) -> None:
    """Show what an apply would change."""
    context = _context()
    _run_engine(select_stack(context, stack).preview)


@app.command()
def up(stack: str | None = STACK_OPTION) -> None:
    """Apply the resource graph."""
    context = _context()
    result = _run_engine(select_stack(context, stack).up)
    console.print(f'[green]Applied[/green] {result.summary.result}')
    _print_outputs(result.outputs)


@app.command()
def destroy(
    stack: str | None = STACK_OPTION,
    yes: bool = typer.Option(False, '--yes', '-y', help='Do not ask for confirmation'),
) -> None:
    """Tear down every resource in the stack."""
    context = _context()
    stack_name = stack or context.environment
    if not yes:
        typer.confirm(f'Destroy every resource in stack {stack_name}?', abort=True)
    _run_engine(select_stack(context, stack_name).destroy)
    console.print(f'[yellow]Destroyed[/yellow] {stack_name}')


@app.command()
def outputs(stack: str | None = STACK_OPTION) -> None:
    """Print the outputs CI tooling consumes."""
    context = _context()
    _print_outputs(select_stack(context, stack).outputs())


@app.command()
def version() -> None:
    """Show version information."""
    from gitops_platform import __version__

    typer.echo(f'gitops-platform {__version__}')
