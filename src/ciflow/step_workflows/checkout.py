# step_workflows/checkout.py
from __future__ import annotations

from typing import List

from ..errors import TOOL_HINTS, CheckoutFailed
from ..model import Checkout
from ..process import ProcessOutcome, StepContext


def checkout_command(action: Checkout) -> List[str]:
    """
    The one git invocation for a checkout step.

      repository given     -> git clone [--recurse-submodules] [--branch REF] REPO PATH
      ref given            -> git checkout [--recurse-submodules] REF
      recursive, no ref    -> git submodule update --init --recursive
      otherwise            -> git rev-parse --verify HEAD (workspace must be a checkout)
    """
    if action.repository:
        cmd = ["git", "clone"]
        if action.recursive_submodules:
            cmd.append("--recurse-submodules")
        if action.ref:
            cmd += ["--branch", action.ref]
        cmd += [action.repository, action.path or "."]
        return cmd

    if action.ref:
        cmd = ["git", "checkout"]
        if action.recursive_submodules:
            cmd.append("--recurse-submodules")
        cmd.append(action.ref)
        return cmd

    if action.recursive_submodules:
        return ["git", "submodule", "update", "--init", "--recursive"]

    return ["git", "rev-parse", "--verify", "HEAD"]


def run_step(action: Checkout, ctx: StepContext) -> ProcessOutcome:
    """Run a checkout step. Raises CheckoutFailed."""
    cwd = ctx.workspace
    if not action.repository and action.path:
        cwd = (ctx.workspace / action.path).resolve()
    if not cwd.is_dir():
        raise CheckoutFailed(f"checkout directory not found: {cwd}")

    cmd = checkout_command(action)
    try:
        outcome = ctx.invoke(cmd, cwd=cwd)
    except FileNotFoundError:
        raise CheckoutFailed("git is not available", hint=TOOL_HINTS["git"]) from None

    if not outcome.ok:
        raise CheckoutFailed(
            f"`{' '.join(cmd)}` {outcome.describe(ctx.timeout)}",
            exit_code=outcome.exit_code,
        )
    return outcome
