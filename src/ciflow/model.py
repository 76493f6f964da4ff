# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple, Union


def _frozen_env(env: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    return MappingProxyType(dict(env or {}))


# ----------------------------------------------------------------------
# Enums
# ----------------------------------------------------------------------

class EventKind(str, Enum):
    PUSH = "push"
    PULL_REQUEST = "pull_request"


class StepKind(str, Enum):
    CHECKOUT = "checkout"
    TOOLCHAIN_INSTALL = "toolchain-install"
    COMMAND = "run"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.SKIPPED)


class StepStatus(str, Enum):
    NOT_ATTEMPTED = "not_attempted"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RunStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"      # trigger did not match, nothing ran
    CANCELLED = "cancelled"


# ----------------------------------------------------------------------
# Definitions (immutable once parsed)
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class TriggerRule:
    """An event kind plus branch filters. No filters means any branch."""
    event: EventKind
    branches: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Event:
    """The upstream event a run is started for."""
    kind: EventKind
    branch: str


@dataclass(frozen=True)
class Checkout:
    recursive_submodules: bool = False
    repository: str | None = None
    ref: str | None = None
    path: str | None = None


@dataclass(frozen=True)
class ToolchainInstall:
    toolchain: str
    channel: str | None = None
    components: Tuple[str, ...] = ()

    @property
    def spec(self) -> str:
        label = self.toolchain if not self.channel else f"{self.toolchain}-{self.channel}"
        if self.components:
            label += "+" + "+".join(self.components)
        return label


@dataclass(frozen=True)
class Command:
    run: str
    working_directory: str | None = None
    shell: str | None = None


StepAction = Union[Checkout, ToolchainInstall, Command]


@dataclass(frozen=True)
class StepDefinition:
    """A single action inside a CI job."""
    name: str
    action: StepAction
    env: Mapping[str, str] = field(default_factory=dict, hash=False)
    timeout: float | None = None  # seconds

    def __post_init__(self) -> None:
        object.__setattr__(self, "env", _frozen_env(self.env))

    @property
    def kind(self) -> StepKind:
        if isinstance(self.action, Checkout):
            return StepKind.CHECKOUT
        if isinstance(self.action, ToolchainInstall):
            return StepKind.TOOLCHAIN_INSTALL
        return StepKind.COMMAND


@dataclass(frozen=True)
class JobDefinition:
    """
    A CI job: ordered steps + dependencies.

    `env` is the job scope of the environment. `display_name` is the
    optional human label from the document (`name:` inside a job).
    """
    name: str
    steps: Tuple[StepDefinition, ...]
    runs_on: str = "local"
    needs: Tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict, hash=False)
    display_name: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "needs", tuple(self.needs))
        object.__setattr__(self, "env", _frozen_env(self.env))


@dataclass(frozen=True)
class WorkflowDefinition:
    name: str
    triggers: Tuple[TriggerRule, ...]
    jobs: Tuple[JobDefinition, ...]
    env: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "triggers", tuple(self.triggers))
        object.__setattr__(self, "jobs", tuple(self.jobs))
        object.__setattr__(self, "env", _frozen_env(self.env))

    def job(self, name: str) -> JobDefinition:
        for j in self.jobs:
            if j.name == name:
                return j
        raise KeyError(name)

    @property
    def job_names(self) -> List[str]:
        return [j.name for j in self.jobs]


# ----------------------------------------------------------------------
# Results (owned by a RunInstance)
# ----------------------------------------------------------------------

@dataclass
class StepResult:
    name: str
    status: StepStatus = StepStatus.NOT_ATTEMPTED
    exit_code: Optional[int] = None
    output: str = ""
    log_path: Optional[str] = None
    error: Optional[str] = None


@dataclass
class JobResult:
    name: str
    status: JobStatus = JobStatus.PENDING
    steps: List[StepResult] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    reason: Optional[str] = None

    @property
    def duration(self) -> Optional[float]:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


@dataclass
class RunInstance:
    """One execution of a workflow against one triggering event."""
    workflow: WorkflowDefinition
    event: Event
    jobs: Dict[str, JobResult] = field(default_factory=dict)
    status: Optional[RunStatus] = None

    @classmethod
    def start(cls, workflow: WorkflowDefinition, event: Event) -> RunInstance:
        run = cls(workflow=workflow, event=event)
        for j in workflow.jobs:
            run.jobs[j.name] = JobResult(
                name=j.name,
                steps=[StepResult(name=s.name) for s in j.steps],
            )
        return run
