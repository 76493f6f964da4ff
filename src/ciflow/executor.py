# executor.py
from __future__ import annotations

import os
import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Mapping, Optional

from .env import resolve_environment
from .errors import StepError
from .model import (
    Checkout,
    JobDefinition,
    JobResult,
    JobStatus,
    StepDefinition,
    StepResult,
    StepStatus,
    ToolchainInstall,
    WorkflowDefinition,
)
from .process import OUTPUT_TAIL, ProcessRunner, StepContext
from .step_workflows import checkout, command, toolchain
from .ui.console import Console, get_console


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _slug(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]+", "-", name).strip("-").lower() or "step"


class StepExecutor:
    """
    Runs the steps of one job in declaration order on the calling thread.

    Fail-stop: the first failing step ends the job as FAILED and the steps
    after it stay NOT_ATTEMPTED. Step errors never escape run_job().
    """

    def __init__(
        self,
        definition: WorkflowDefinition,
        *,
        workspace: str | Path = ".",
        base_env: Optional[Mapping[str, str]] = None,
        runner: Optional[ProcessRunner] = None,
        console: Optional[Console] = None,
        log_dir: str | Path | None = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.definition = definition
        self.workspace = Path(workspace).resolve()
        # snapshot so concurrent jobs never see a changing base
        self.base_env: Dict[str, str] = dict(os.environ if base_env is None else base_env)
        self.runner = runner or ProcessRunner()
        self.console = console or get_console()
        self.log_dir = Path(log_dir) if log_dir is not None else None
        self.cancel_event = cancel_event or threading.Event()

    def run_job(self, job: JobDefinition) -> JobResult:
        result = JobResult(
            name=job.name,
            status=JobStatus.RUNNING,
            steps=[StepResult(name=s.name) for s in job.steps],
            started_at=_now(),
        )
        self.console.print_job_start(job.name)

        # variables exported by earlier steps (toolchain installs) join the job scope
        exported: Dict[str, str] = {}

        for index, (step, step_result) in enumerate(zip(job.steps, result.steps), start=1):
            if self.cancel_event.is_set():
                result.status = JobStatus.FAILED
                result.reason = "cancelled"
                break

            self.console.print_step(job.name, step.name)
            env = resolve_environment(self.base_env, self.definition.env, {**job.env, **exported}, step.env)
            ctx = StepContext(
                workspace=self.workspace,
                env=env,
                runner=self.runner,
                timeout=step.timeout,
                cancel_event=self.cancel_event,
            )

            error: Optional[StepError] = None
            try:
                exported.update(self._dispatch(step, ctx))
            except StepError as e:
                error = e

            self._record(job, index, step, step_result, ctx, error)
            if error is not None:
                result.status = JobStatus.FAILED
                result.reason = "cancelled" if self.cancel_event.is_set() else f"step {step.name!r} failed"
                self.console.print_failure(
                    f"{job.name} / {step.name}",
                    error.message,
                    exit_code=error.exit_code,
                    hint=error.hint,
                    output=step_result.output,
                )
                break
        else:
            result.status = JobStatus.SUCCEEDED

        result.finished_at = _now()
        if result.status == JobStatus.SUCCEEDED:
            self.console.print_success(job.name)
        else:
            self.console.print_failure(job.name, result.reason or "failed", is_job=True)
        return result

    def _dispatch(self, step: StepDefinition, ctx: StepContext) -> Dict[str, str]:
        action = step.action
        if isinstance(action, Checkout):
            checkout.run_step(action, ctx)
            return {}
        if isinstance(action, ToolchainInstall):
            _outcome, exports = toolchain.run_step(action, ctx)
            return exports
        command.run_step(action, ctx)
        return {}

    def _record(
        self,
        job: JobDefinition,
        index: int,
        step: StepDefinition,
        step_result: StepResult,
        ctx: StepContext,
        error: Optional[StepError],
    ) -> None:
        outcome = ctx.outcome
        if outcome is not None:
            step_result.exit_code = outcome.exit_code
            step_result.output = outcome.output[-OUTPUT_TAIL:]
            self.console.print_step_output(job.name, outcome.output)
            if self.log_dir is not None:
                path = self._job_log_dir(job) / f"{index:02d}-{_slug(step.name)}.log"
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(outcome.output, encoding="utf-8")
                step_result.log_path = str(path)

        if error is None:
            step_result.status = StepStatus.SUCCEEDED
            return
        step_result.status = StepStatus.FAILED
        step_result.error = error.message
        if error.exit_code is not None:
            step_result.exit_code = error.exit_code

    def _job_log_dir(self, job: JobDefinition) -> Path:
        # declaration position keeps jobs whose names slug alike apart
        position = self.definition.job_names.index(job.name) + 1
        return self.log_dir / f"{position:02d}-{_slug(job.name)}"
