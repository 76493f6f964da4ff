# scheduler.py
from __future__ import annotations

import os
import queue
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Deque, List, Optional, Set, Tuple

from .dag import JobGraph, build_dag, topo_levels
from .model import JobDefinition, JobResult, JobStatus, StepResult, WorkflowDefinition
from .reporter import JobCompleted, RunReporter
from .ui.console import Console, get_console


RunJob = Callable[[JobDefinition], JobResult]


def execution_order(definition: WorkflowDefinition) -> List[List[str]]:
    """Stages of jobs; every job only depends on jobs of earlier stages."""
    return topo_levels(build_dag(definition.jobs))


def default_workers() -> int:
    c = os.cpu_count() or 2
    return max(1, c - 1)


class Scheduler:
    """
    Runs the jobs of a workflow as soon as their dependencies succeeded.

    - jobs without unmet dependencies are submitted to a thread pool at once
    - every job task posts exactly one JobCompleted on a queue; this
      thread is its only consumer and the only writer of run-level state
    - a job whose dependency FAILED (or was SKIPPED) is SKIPPED, transitively
    - when cancel_event is set, jobs not yet started are SKIPPED and running
      ones are left to stop their in-flight process
    """

    def __init__(
        self,
        definition: WorkflowDefinition,
        run_job: RunJob,
        *,
        max_workers: int | None = None,
        cancel_event: Optional[threading.Event] = None,
        console: Optional[Console] = None,
        poll_interval: float = 0.2,
    ):
        self.definition = definition
        self.run_job = run_job
        self.max_workers = max_workers or default_workers()
        self.cancel_event = cancel_event or threading.Event()
        self.console = console or get_console()
        self.poll_interval = poll_interval

    def schedule(self, reporter: RunReporter) -> None:
        graph = build_dag(self.definition.jobs)
        jobs = self.definition.jobs
        unmet: List[Set[int]] = [set(n) for n in graph.needs]
        pending: Set[int] = set(range(len(jobs)))
        messages: "queue.Queue[JobCompleted]" = queue.Queue()
        in_flight = 0

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:

            def launch(i: int) -> None:
                nonlocal in_flight
                pending.discard(i)
                reporter.job_started(jobs[i].name)
                pool.submit(self._task, jobs[i], messages)
                in_flight += 1

            for i in range(len(jobs)):
                if not unmet[i]:
                    launch(i)

            while in_flight:
                try:
                    message = messages.get(timeout=self.poll_interval)
                except queue.Empty:
                    if self.cancel_event.is_set():
                        self._cancel_pending(reporter, pending)
                    continue
                except KeyboardInterrupt:
                    self.cancel_event.set()
                    self._cancel_pending(reporter, pending)
                    continue

                in_flight -= 1
                reporter.record(message)
                for i in self._settle(graph, reporter, message.result, unmet, pending):
                    launch(i)

        # jobs held back by a cancellation
        self._cancel_pending(reporter, pending)

    def _task(self, job: JobDefinition, messages: "queue.Queue[JobCompleted]") -> None:
        if self.cancel_event.is_set():
            # queued in the pool, never started
            messages.put(
                JobCompleted(
                    JobResult(
                        name=job.name,
                        status=JobStatus.SKIPPED,
                        steps=[StepResult(name=s.name) for s in job.steps],
                        reason="run cancelled",
                    )
                )
            )
            return
        try:
            result = self.run_job(job)
        except Exception as e:
            # the run must still hear about this job
            now = datetime.now(timezone.utc)
            result = JobResult(
                name=job.name,
                status=JobStatus.FAILED,
                steps=[StepResult(name=s.name) for s in job.steps],
                started_at=now,
                finished_at=now,
                reason=f"{type(e).__name__}: {e}",
            )
            self.console.print_exception(e)
        messages.put(JobCompleted(result))

    def _settle(
        self,
        graph: JobGraph,
        reporter: RunReporter,
        finished: JobResult,
        unmet: List[Set[int]],
        pending: Set[int],
    ) -> List[int]:
        """Propagate a terminal job to its dependents; returns jobs now ready to launch."""
        ready: List[int] = []
        work: Deque[Tuple[int, JobStatus]] = deque([(graph.index(finished.name), finished.status)])
        while work:
            node, status = work.popleft()
            for dep in graph.dependents[node]:
                if dep not in pending:
                    continue
                unmet[dep].discard(node)
                name = graph.names[dep]
                if status != JobStatus.SUCCEEDED:
                    pending.discard(dep)
                    if self.cancel_event.is_set():
                        reason = "run cancelled"
                    else:
                        reason = f"dependency {status.value}: {graph.names[node]}"
                    reporter.skip(name, reason)
                    self.console.print_job_skipped(name, reason)
                    work.append((dep, JobStatus.SKIPPED))
                elif not unmet[dep]:
                    if self.cancel_event.is_set():
                        continue
                    ready.append(dep)
        return sorted(ready)

    def _cancel_pending(self, reporter: RunReporter, pending: Set[int]) -> None:
        for i in sorted(pending):
            name = self.definition.jobs[i].name
            reporter.skip(name, "run cancelled")
            self.console.print_job_skipped(name, "run cancelled")
        pending.clear()
