from .dsl import job, sh, checkout, toolchain, on, wf, JobBuilder, WorkflowBuilder
from .errors import (
    CheckoutFailed,
    CommandFailed,
    CyclicDependency,
    MalformedDefinition,
    ToolchainUnavailable,
)
from .model import Event, EventKind, JobStatus, RunStatus, StepStatus, WorkflowDefinition
from .parser import dump_workflow, load_workflow, parse_workflow
from .runner import run_workflow

__all__ = [
    "job", "sh", "checkout", "toolchain", "on", "wf", "JobBuilder", "WorkflowBuilder",
    "CheckoutFailed", "CommandFailed", "CyclicDependency", "MalformedDefinition", "ToolchainUnavailable",
    "Event", "EventKind", "JobStatus", "RunStatus", "StepStatus", "WorkflowDefinition",
    "dump_workflow", "load_workflow", "parse_workflow", "run_workflow",
]
