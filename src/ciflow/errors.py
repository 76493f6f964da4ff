# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional


TOOL_HINTS = {
    "git": "Install Git or fix PATH.",
    "rustup": "Install rustup (https://rustup.rs) or fix PATH.",
    "cargo": "Install the Rust toolchain (rustup) or fix PATH.",
    "uv": "Install uv (e.g., pip install uv).",
    "fnm": "Install fnm (Fast Node Manager) or fix PATH.",
    "npm": "Install Node.js (includes npm) or fix PATH.",
    "pytest": "Install pytest (e.g., pip install pytest).",
    "bash": "Install bash or use the default `sh` shell.",
}


@dataclass
class CIError(Exception):
    """
    Structured CI error with enough context for:
      - clean CLI output
      - the JSON run summary
      - debugging without full tracebacks
    """
    kind: str
    message: str
    details: Dict[str, object] = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


# ----------------------------------------------------------------------
# Parse-time errors (fatal, nothing runs)
# ----------------------------------------------------------------------

class MalformedDefinition(CIError):
    """The workflow document is invalid. `field` is a dotted path into it."""

    def __init__(self, field: str, message: str):
        super().__init__(kind="malformed_definition", message=message, details={"field": field})
        self.field = field

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class CyclicDependency(MalformedDefinition):
    def __init__(self, cycle: List[str]):
        super().__init__("jobs", f"cyclic job dependency: {' -> '.join(cycle)}")
        self.cycle = cycle


# ----------------------------------------------------------------------
# Step-level errors (fail-stop within the owning job)
# ----------------------------------------------------------------------

class StepError(CIError):
    def __init__(
        self,
        kind: str,
        message: str,
        exit_code: Optional[int] = None,
        hint: Optional[str] = None,
    ):
        details: Dict[str, object] = {}
        if exit_code is not None:
            details["exit_code"] = exit_code
        if hint:
            details["hint"] = hint
        super().__init__(kind=kind, message=message, details=details)
        self.exit_code = exit_code
        self.hint = hint


class CheckoutFailed(StepError):
    def __init__(self, message: str, exit_code: Optional[int] = None, hint: Optional[str] = None):
        super().__init__("checkout_failed", message, exit_code=exit_code, hint=hint)


class ToolchainUnavailable(StepError):
    def __init__(self, spec: str, message: str, exit_code: Optional[int] = None, hint: Optional[str] = None):
        super().__init__("toolchain_unavailable", message, exit_code=exit_code, hint=hint)
        self.spec = spec


class CommandFailed(StepError):
    def __init__(
        self,
        command: str,
        exit_code: int,
        hint: Optional[str] = None,
        message: Optional[str] = None,
    ):
        super().__init__(
            "command_failed",
            message or f"command exited with {exit_code}: {command}",
            exit_code=exit_code,
            hint=hint,
        )
        self.command = command
