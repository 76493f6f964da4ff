# step_workflows/command.py
from __future__ import annotations

import shlex
from typing import List

from ..errors import TOOL_HINTS, CommandFailed
from ..model import Command
from ..process import ProcessOutcome, StepContext


SHELLS = {
    "sh": ["sh", "-e", "-c"],
    "bash": ["bash", "--noprofile", "--norc", "-e", "-o", "pipefail", "-c"],
}

# exit code reported when the step could not be started at all
NOT_STARTED = 127


def shell_command(action: Command) -> List[str]:
    shell = action.shell or "sh"
    prefix = SHELLS.get(shell, [shell, "-c"])
    return [*prefix, action.run]


def _hint_for(run: str) -> str | None:
    try:
        words = shlex.split(run)
    except ValueError:
        return None
    return TOOL_HINTS.get(words[0]) if words else None


def run_step(action: Command, ctx: StepContext) -> ProcessOutcome:
    """Run a shell step. Raises CommandFailed."""
    cwd = (ctx.workspace / (action.working_directory or ".")).resolve()
    if not cwd.is_dir():
        raise CommandFailed(
            action.run,
            NOT_STARTED,
            message=f"working directory not found: {cwd}",
        )

    cmd = shell_command(action)
    try:
        outcome = ctx.invoke(cmd, cwd=cwd)
    except FileNotFoundError:
        raise CommandFailed(
            action.run,
            NOT_STARTED,
            hint=TOOL_HINTS.get(cmd[0], f"Install {cmd[0]} or fix PATH."),
            message=f"shell {cmd[0]!r} is not available",
        ) from None

    if not outcome.ok:
        hint = _hint_for(action.run) if outcome.exit_code == NOT_STARTED else None
        raise CommandFailed(
            action.run,
            outcome.exit_code,
            hint=hint,
            message=f"command {outcome.describe(ctx.timeout)}: {action.run}",
        )
    return outcome
