# src/ciflow/dsl.py
from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .dag import build_dag
from .errors import MalformedDefinition
from .model import (
    Checkout,
    Command,
    EventKind,
    JobDefinition,
    StepDefinition,
    ToolchainInstall,
    TriggerRule,
    WorkflowDefinition,
)


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(
    name: str,
    cmd: str,
    *,
    cwd: str | None = None,
    env: Optional[Dict[str, str]] = None,
    shell: str | None = None,
    timeout: float | None = None,
) -> StepDefinition:
    """Create a shell step."""
    return StepDefinition(
        name=name,
        action=Command(run=cmd, working_directory=cwd, shell=shell),
        env=env or {},
        timeout=timeout,
    )


def checkout(
    name: str = "Checkout",
    *,
    recursive: bool = False,
    repository: str | None = None,
    ref: str | None = None,
    path: str | None = None,
    env: Optional[Dict[str, str]] = None,
) -> StepDefinition:
    return StepDefinition(
        name=name,
        action=Checkout(recursive_submodules=recursive, repository=repository, ref=ref, path=path),
        env=env or {},
    )


def toolchain(
    name: str,
    toolchain: str,
    channel: str | None = None,
    *,
    components: Sequence[str] = (),
    env: Optional[Dict[str, str]] = None,
) -> StepDefinition:
    """e.g. toolchain("Install Rust", "rust", "nightly", components=["rustfmt"])"""
    return StepDefinition(
        name=name,
        action=ToolchainInstall(toolchain=toolchain, channel=channel, components=tuple(components)),
        env=env or {},
    )


def on(event: str | EventKind, *branches: str) -> TriggerRule:
    """Trigger rule helper: on("push", "main")."""
    return TriggerRule(event=EventKind(event), branches=tuple(branches))


# ---------------------------------------------------------------------
# Functional helpers
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: StepDefinition,  # allow: job("x", sh(...), sh(...))
    needs: Optional[List[str]] = None,
    env: Optional[Dict[str, str]] = None,
    runs_on: str = "local",
    display_name: str | None = None,
) -> JobDefinition:
    return (
        JobBuilder(name)
        .depends_on(*(needs or []))
        .with_env(**(env or {}))
        .runs_on(runs_on)
        .named(display_name)
        .steps(*steps)
        .build()
    )


def wf(
    name: str,
    *jobs: JobDefinition,
    triggers: Iterable[TriggerRule] = (),
    env: Optional[Mapping[str, str]] = None,
) -> WorkflowDefinition:
    """
    Workflow definition helper.

        wf(
            "CI checks",
            job("lints", checkout(recursive=True), sh("Run tests", "cargo test")),
            triggers=[on("push", "main")],
            env={"CARGO_TERM_COLOR": "always"},
        )
    """
    builder = WorkflowBuilder(name).with_env(**dict(env or {}))
    for rule in triggers:
        builder.trigger(rule.event, *rule.branches)
    for j in jobs:
        builder.add_job(j)
    return builder.build()


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class JobBuilder:
    def __init__(self, name: str):
        self.name = name
        self._needs: list[str] = []
        self._steps: list[StepDefinition] = []
        self._env: dict[str, str] = {}
        self._runs_on: str = "local"
        self._display_name: str | None = None

    def depends_on(self, *job_names: str):
        self._needs.extend(job_names)
        return self

    def steps(self, *steps: StepDefinition):
        self._steps.extend(steps)
        return self

    def with_env(self, **env):
        # force values to str for env compatibility
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def runs_on(self, target: str):
        self._runs_on = target
        return self

    def named(self, display_name: str | None):
        self._display_name = display_name
        return self

    def build(self) -> JobDefinition:
        if not self.name:
            raise MalformedDefinition("jobs", "job name must be a non-empty string")
        if not self._steps:
            raise MalformedDefinition(f"jobs.{self.name}.steps", f"job {self.name!r} has no steps")

        return JobDefinition(
            name=self.name,
            steps=tuple(self._steps),
            runs_on=self._runs_on,
            needs=tuple(self._needs),
            env=dict(self._env),
            display_name=self._display_name,
        )


class WorkflowBuilder:
    """Collects triggers and jobs; build() validates the whole graph."""

    def __init__(self, name: str):
        self.name = name
        self._triggers: list[TriggerRule] = []
        self._env: dict[str, str] = {}
        self._jobs: list[JobDefinition] = []

    def trigger(self, event: str | EventKind, *branches: str):
        self._triggers.append(TriggerRule(event=EventKind(event), branches=tuple(branches)))
        return self

    def with_env(self, **env):
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def add_job(self, job: JobDefinition):
        self._jobs.append(job)
        return self

    def build(self) -> WorkflowDefinition:
        for i, rule in enumerate(self._triggers):
            for pattern in rule.branches:
                if not isinstance(pattern, str) or not pattern:
                    raise MalformedDefinition(
                        f"on[{i}].branches", "branch filters must be non-empty strings"
                    )
        for j in self._jobs:
            if not j.steps:
                raise MalformedDefinition(f"jobs.{j.name}.steps", f"job {j.name!r} has no steps")

        # duplicate names, unknown needs, cycles
        build_dag(self._jobs)

        return WorkflowDefinition(
            name=self.name,
            triggers=tuple(self._triggers),
            jobs=tuple(self._jobs),
            env=dict(self._env),
        )
