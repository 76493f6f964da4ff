# step_workflows/toolchain.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List

from ..errors import TOOL_HINTS, ToolchainUnavailable
from ..model import ToolchainInstall
from ..process import ProcessOutcome, StepContext


@dataclass
class Installation:
    """Installer command plus the variables later steps of the job should see."""
    command: List[str]
    exports: Dict[str, str] = field(default_factory=dict)


Installer = Callable[[ToolchainInstall], Installation]


def _rust(action: ToolchainInstall) -> Installation:
    channel = action.channel or "stable"
    cmd = ["rustup", "toolchain", "install", channel, "--profile", "minimal"]
    for component in action.components:
        cmd += ["--component", component]
    # rustup picks the toolchain for cargo/rustc from this variable
    return Installation(cmd, {"RUSTUP_TOOLCHAIN": channel})


def _python(action: ToolchainInstall) -> Installation:
    if action.components:
        raise ToolchainUnavailable(action.spec, "python toolchains have no components")
    cmd = ["uv", "python", "install"]
    if action.channel:
        cmd.append(action.channel)
        return Installation(cmd, {"UV_PYTHON": action.channel})
    return Installation(cmd)


def _node(action: ToolchainInstall) -> Installation:
    if action.components:
        raise ToolchainUnavailable(action.spec, "node toolchains have no components")
    return Installation(["fnm", "install", action.channel or "--lts"])


INSTALLERS: Dict[str, Installer] = {
    "rust": _rust,
    "python": _python,
    "node": _node,
}


def register_installer(toolchain: str, installer: Installer) -> None:
    INSTALLERS[toolchain] = installer


def resolve(action: ToolchainInstall) -> Installation:
    """Map a toolchain spec to its installer invocation. Raises ToolchainUnavailable."""
    installer = INSTALLERS.get(action.toolchain)
    if installer is None:
        raise ToolchainUnavailable(
            action.spec,
            f"no installer for toolchain {action.toolchain!r}. Known: {sorted(INSTALLERS)}",
        )
    return installer(action)


def run_step(action: ToolchainInstall, ctx: StepContext) -> tuple[ProcessOutcome, Dict[str, str]]:
    """Install a toolchain. Returns the outcome and the job-scope exports."""
    installation = resolve(action)
    tool = installation.command[0]
    try:
        outcome = ctx.invoke(installation.command)
    except FileNotFoundError:
        raise ToolchainUnavailable(
            action.spec,
            f"{tool} is not available",
            hint=TOOL_HINTS.get(tool, f"Install {tool} or fix PATH."),
        ) from None

    if not outcome.ok:
        raise ToolchainUnavailable(
            action.spec,
            f"installing {action.spec} {outcome.describe(ctx.timeout)}",
            exit_code=outcome.exit_code,
        )
    return outcome, installation.exports
