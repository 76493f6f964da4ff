# env.py
from __future__ import annotations

import os
from typing import Dict, Mapping, Optional

from .model import JobDefinition, StepDefinition, WorkflowDefinition


def resolve_environment(
    base: Mapping[str, str],
    workflow: Mapping[str, str],
    job: Mapping[str, str],
    step: Mapping[str, str],
) -> Dict[str, str]:
    """
    Merge the environment scopes for one step.

    Precedence (later wins): base < workflow < job < step.
    Always returns a new dict; none of the inputs are touched.
    """
    env: Dict[str, str] = {}
    for layer in (base, workflow, job, step):
        env.update(layer)
    return env


def step_environment(
    definition: WorkflowDefinition,
    job: JobDefinition,
    step: StepDefinition,
    base: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Effective environment of `step`, with the process environment as base by default."""
    if base is None:
        base = os.environ
    return resolve_environment(base, definition.env, job.env, step.env)
