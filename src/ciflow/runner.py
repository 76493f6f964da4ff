# runner.py
from __future__ import annotations

import threading
from pathlib import Path
from typing import Mapping, Optional

from .executor import StepExecutor
from .model import Event, RunInstance, WorkflowDefinition
from .process import ProcessRunner
from .reporter import RunReporter
from .scheduler import Scheduler, execution_order
from .triggers import matches
from .ui.console import Console, get_console


# event ---> triggers ---> scheduler ---> executor (per job) ---> reporter


def run_workflow(
    definition: WorkflowDefinition,
    event: Event,
    *,
    workspace: str | Path = ".",
    base_env: Optional[Mapping[str, str]] = None,
    max_workers: int | None = None,
    process_runner: Optional[ProcessRunner] = None,
    console: Optional[Console] = None,
    log_dir: str | Path | None = None,
    cancel_event: Optional[threading.Event] = None,
) -> RunInstance:
    """
    Run `definition` for `event` and return the finished RunInstance.

    An event that matches no trigger is not an error: the run comes back
    SKIPPED with every job SKIPPED and nothing executed. Setting
    `cancel_event` (or Ctrl-C) stops in-flight processes and yields a
    CANCELLED run.
    """
    console = console or get_console()
    run = RunInstance.start(definition, event)
    reporter = RunReporter(run)
    label = f"{event.kind.value} on {event.branch}"

    if not matches(definition.triggers, event):
        console.print_run_not_triggered(definition.name, label)
        return reporter.not_triggered()

    console.print_run_started(workflow=definition.name, event=label, job_count=len(definition.jobs))
    console.print_plan(execution_order(definition))

    cancel_event = cancel_event or threading.Event()
    executor = StepExecutor(
        definition,
        workspace=workspace,
        base_env=base_env,
        runner=process_runner,
        console=console,
        log_dir=log_dir,
        cancel_event=cancel_event,
    )
    scheduler = Scheduler(
        definition,
        executor.run_job,
        max_workers=max_workers,
        cancel_event=cancel_event,
        console=console,
    )
    try:
        scheduler.schedule(reporter)
    except KeyboardInterrupt:
        cancel_event.set()
        raise

    return reporter.finish(cancelled=cancel_event.is_set())
