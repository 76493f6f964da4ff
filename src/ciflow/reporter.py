# reporter.py
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from .model import JobResult, JobStatus, RunInstance, RunStatus


EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130


@dataclass(frozen=True)
class JobCompleted:
    """Message a job task sends when its JobResult is final."""
    result: JobResult


def overall_status(results: Iterable[JobResult]) -> RunStatus:
    """FAILED iff any job failed; skipped jobs do not fail a run."""
    if any(r.status == JobStatus.FAILED for r in results):
        return RunStatus.FAILED
    return RunStatus.SUCCEEDED


def exit_code(status: RunStatus, neutral_exit_code: int = EXIT_SUCCESS) -> int:
    if status == RunStatus.SUCCEEDED:
        return EXIT_SUCCESS
    if status == RunStatus.FAILED:
        return EXIT_FAILURE
    if status == RunStatus.CANCELLED:
        return EXIT_CANCELLED
    return neutral_exit_code


class RunReporter:
    """
    Owns the run-level view of a RunInstance.

    Only the scheduler thread calls into it: job tasks hand over their
    results as JobCompleted messages instead of writing here.
    """

    def __init__(self, run: RunInstance):
        self.run = run

    def job_started(self, name: str) -> None:
        self.run.jobs[name].status = JobStatus.RUNNING

    def record(self, message: JobCompleted) -> None:
        self.run.jobs[message.result.name] = message.result

    def skip(self, name: str, reason: str) -> JobCompleted:
        job = self.run.jobs[name]
        message = JobCompleted(
            JobResult(name=name, status=JobStatus.SKIPPED, steps=list(job.steps), reason=reason)
        )
        self.record(message)
        return message

    def not_triggered(self) -> RunInstance:
        for name in self.run.jobs:
            self.skip(name, "event did not match any trigger")
        self.run.status = RunStatus.SKIPPED
        return self.run

    def finish(self, cancelled: bool = False) -> RunInstance:
        if cancelled:
            self.run.status = RunStatus.CANCELLED
        else:
            self.run.status = overall_status(self.run.jobs.values())
        return self.run


# ----------------------------------------------------------------------
# Structured summary
# ----------------------------------------------------------------------

def _iso(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts is not None else None


def summarize(run: RunInstance, neutral_exit_code: int = EXIT_SUCCESS) -> Dict[str, Any]:
    """JSON-ready per-job / per-step report of a finished run."""
    status = run.status or overall_status(run.jobs.values())
    jobs = []
    for job_def in run.workflow.jobs:
        result = run.jobs[job_def.name]
        jobs.append(
            {
                "name": result.name,
                "status": result.status.value,
                "reason": result.reason,
                "started_at": _iso(result.started_at),
                "finished_at": _iso(result.finished_at),
                "duration": result.duration,
                "steps": [
                    {
                        "name": s.name,
                        "status": s.status.value,
                        "exit_code": s.exit_code,
                        "log_path": s.log_path,
                        "error": s.error,
                    }
                    for s in result.steps
                ],
            }
        )
    return {
        "workflow": run.workflow.name,
        "event": {"kind": run.event.kind.value, "branch": run.event.branch},
        "status": status.value,
        "exit_code": exit_code(status, neutral_exit_code),
        "jobs": jobs,
    }


def write_summary(run: RunInstance, path: str | Path, neutral_exit_code: int = EXIT_SUCCESS) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(summarize(run, neutral_exit_code), indent=2) + "\n", encoding="utf-8")
    return out
