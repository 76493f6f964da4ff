"""Shared fixtures: a scripted process runner and a silent console."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from ciflow.process import ProcessOutcome
from ciflow.ui.console import Console


@dataclass
class Call:
    args: List[str]
    cwd: Path
    env: Dict[str, str]
    timeout: Optional[float]

    @property
    def line(self) -> str:
        return " ".join(self.args)


class FakeRunner:
    """
    Stands in for ProcessRunner. Records every invocation; a command whose
    joined argv contains a key of `exit_codes` exits with that code, one
    containing a key of `missing` raises FileNotFoundError.
    """

    def __init__(
        self,
        exit_codes: Optional[Dict[str, int]] = None,
        missing: tuple[str, ...] = (),
    ):
        self.exit_codes = exit_codes or {}
        self.missing = missing
        self.calls: List[Call] = []
        self._lock = threading.Lock()

    def run(self, args, *, cwd, env, timeout=None, cancel_event=None) -> ProcessOutcome:
        call = Call(list(args), Path(cwd), dict(env), timeout)
        with self._lock:
            self.calls.append(call)
        if any(m in call.line for m in self.missing):
            raise FileNotFoundError(args[0])
        for needle, code in self.exit_codes.items():
            if needle in call.line:
                return ProcessOutcome(exit_code=code, output=f"ran {call.line}\nfailed\n")
        return ProcessOutcome(exit_code=0, output=f"ran {call.line}\n")

    @property
    def lines(self) -> List[str]:
        return [c.line for c in self.calls]


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def console() -> Console:
    return Console(quiet=True)
