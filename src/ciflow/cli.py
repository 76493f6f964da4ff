# cli.py
from __future__ import annotations

import sys
from pathlib import Path

import click

from ciflow.errors import MalformedDefinition
from ciflow.git_facts.git import current_branch
from ciflow.parser import dump_workflow, load_workflow
from ciflow.reporter import exit_code, summarize, write_summary
from ciflow.runner import run_workflow
from ciflow.scheduler import execution_order
from ciflow.settings import Settings
from ciflow.triggers import EVENT_ALIASES, parse_event
from ciflow.ui.console import Console, get_console, set_console


DEFAULT_WORKFLOW_FILES = ("ciflow.yml", "ciflow.yaml")
HOSTED_WORKFLOW_DIR = Path(".github") / "workflows"


def find_workflow_files(root: Path = Path(".")) -> list[Path]:
    """
    Find candidate workflow files under `root`.

    ciflow.yml / ciflow.yaml win; otherwise every *.yml / *.yaml file in
    .github/workflows is a candidate.
    """
    for name in DEFAULT_WORKFLOW_FILES:
        path = root / name
        if path.exists():
            return [path]

    hosted = root / HOSTED_WORKFLOW_DIR
    if not hosted.is_dir():
        return []
    return sorted(p for p in hosted.iterdir() if p.suffix in (".yml", ".yaml"))


def discover_workflow(workflow_arg: str | None, settings: Settings) -> Path:
    """
    Discover workflow file from argument, CIFLOW_WORKFLOW, or default.

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    explicit = workflow_arg or settings.workflow
    if explicit:
        workflow_path = Path(explicit)
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {explicit}",
                suggestion="Create a workflow file or specify a different path:\n  ciflow run --workflow ci.yml",
            )
            sys.exit(1)
        return workflow_path

    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=["Looked for:", *(f"  {n}" for n in DEFAULT_WORKFLOW_FILES), f"  {HOSTED_WORKFLOW_DIR}/*.yml"],
            suggestion="Create ciflow.yml or specify a workflow explicitly:\n  ciflow run --workflow ci.yml",
        )
        sys.exit(1)

    if len(workflow_files) > 1:
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[str(f) for f in workflow_files],
            suggestion=f"Specify a workflow explicitly:\n  ciflow run --workflow {workflow_files[0]}",
        )
        sys.exit(1)

    return workflow_files[0]


def _load(ctx: click.Context, workflow: str | None):
    console = get_console()
    workflow_path = discover_workflow(workflow, ctx.obj["settings"])
    try:
        return workflow_path, load_workflow(workflow_path)
    except MalformedDefinition as e:
        console.print_error(
            "Invalid workflow",
            f"{workflow_path}: {e}",
            details=[f"field: {e.field}"],
        )
        sys.exit(1)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and step output)",
)
@click.option("--quiet", is_flag=True, default=False, help="Only print errors")
@click.pass_context
def cli(ctx, debug, quiet):
    """ciflow: run declarative CI workflows locally."""
    console = Console(debug=debug, quiet=quiet)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    try:
        ctx.obj["settings"] = Settings.from_env()
    except ValueError as e:
        raise click.UsageError(str(e))


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (defaults to ciflow.yml or the single .github/workflows file)")
@click.option(
    "--event",
    "event_kind",
    type=click.Choice(sorted(EVENT_ALIASES)),
    default="push",
    show_default=True,
    help="Triggering event kind",
)
@click.option("--branch", default=None, help="Event branch (defaults to the current git branch, else main)")
@click.option("--workspace", default=".", show_default=True, type=click.Path(file_okay=False), help="Directory steps run in")
@click.option("--workers", default=None, type=click.IntRange(min=1), help="Number of parallel jobs")
@click.option("--log-dir", default=None, help="Write full step output to this directory")
@click.option("--summary", "summary_path", default=None, help="Write a JSON run summary to this file")
@click.pass_context
def run(ctx, workflow, event_kind, branch, workspace, workers, log_dir, summary_path):
    """Run a workflow for one event."""
    console = get_console()
    settings: Settings = ctx.obj["settings"]

    workflow_path, definition = _load(ctx, workflow)
    branch = branch or current_branch(workspace) or "main"
    event = parse_event(event_kind, branch)
    console.print_debug(f"Loaded {workflow_path} ({len(definition.jobs)} jobs), event={event}")

    try:
        run_instance = run_workflow(
            definition,
            event,
            workspace=workspace,
            max_workers=workers or settings.workers,
            log_dir=log_dir or settings.log_dir,
        )
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)

    summary = summarize(run_instance, settings.neutral_exit_code)
    console.print_results(summary)
    if summary_path:
        write_summary(run_instance, summary_path, settings.neutral_exit_code)
        console.print_info(f"Summary written to {summary_path}")

    sys.exit(exit_code(run_instance.status, settings.neutral_exit_code))


@cli.command()
@click.option("--workflow", default=None, help="Workflow file to check")
@click.pass_context
def validate(ctx, workflow):
    """Parse and validate a workflow without running it."""
    workflow_path, definition = _load(ctx, workflow)
    get_console().print_info(
        f"OK: {workflow_path} defines {definition.name!r} with {len(definition.jobs)} job(s)"
    )


@cli.command()
@click.option("--workflow", default=None, help="Workflow file to show")
@click.pass_context
def show(ctx, workflow):
    """Print the normalized workflow and its execution plan."""
    console = get_console()
    _workflow_path, definition = _load(ctx, workflow)
    click.echo(dump_workflow(definition), nl=False)
    console.print_header("Execution plan")
    console.print_plan(execution_order(definition))


if __name__ == "__main__":
    cli()
