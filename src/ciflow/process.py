# process.py
# Single entry point for external processes started by steps.
from __future__ import annotations

import os
import signal
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence


OUTPUT_TAIL = 4000
KILL_GRACE_SECONDS = 5.0


@dataclass
class ProcessOutcome:
    exit_code: int
    output: str = ""
    timed_out: bool = False
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not (self.timed_out or self.cancelled)

    def describe(self, timeout: Optional[float] = None) -> str:
        if self.cancelled:
            return "cancelled"
        if self.timed_out:
            return f"timed out after {timeout:g}s" if timeout else "timed out"
        return f"exited with {self.exit_code}"


class ProcessRunner:
    """
    Runs one external process to completion and captures its output
    (stdout and stderr interleaved).

    The process is polled so a set cancel event or an expired timeout
    terminates it (the whole process group on POSIX) without waiting for
    it to finish on its own.
    """

    def __init__(self, poll_interval: float = 0.1):
        self.poll_interval = poll_interval

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path,
        env: Dict[str, str],
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ProcessOutcome:
        # FileNotFoundError (missing binary) propagates to the step
        proc = subprocess.Popen(
            list(args),
            cwd=str(cwd),
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            text=True,
            errors="replace",
            start_new_session=(os.name == "posix"),
        )

        chunks: List[str] = []
        waited = 0.0
        timed_out = cancelled = False
        while True:
            try:
                out, _ = proc.communicate(timeout=self.poll_interval)
                chunks.append(out or "")
                break
            except subprocess.TimeoutExpired:
                waited += self.poll_interval
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                elif timeout is not None and waited >= timeout:
                    timed_out = True
                else:
                    continue
                chunks.append(self._stop(proc))
                break

        return ProcessOutcome(
            exit_code=proc.returncode if proc.returncode is not None else -1,
            output="".join(chunks),
            timed_out=timed_out,
            cancelled=cancelled,
        )

    def _stop(self, proc: subprocess.Popen) -> str:
        self._signal(proc, signal.SIGTERM)
        try:
            out, _ = proc.communicate(timeout=KILL_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            self._signal(proc, getattr(signal, "SIGKILL", signal.SIGTERM))
            out, _ = proc.communicate()
        return out or ""

    @staticmethod
    def _signal(proc: subprocess.Popen, sig: int) -> None:
        try:
            if os.name == "posix":
                os.killpg(proc.pid, sig)
            else:
                proc.terminate()
        except ProcessLookupError:
            pass


@dataclass
class StepContext:
    """What a step module needs to start its one external process."""
    workspace: Path
    env: Dict[str, str]
    runner: ProcessRunner
    timeout: Optional[float] = None
    cancel_event: Optional[threading.Event] = None
    outcome: Optional[ProcessOutcome] = None

    def invoke(self, args: Sequence[str], cwd: Optional[Path] = None) -> ProcessOutcome:
        self.outcome = self.runner.run(
            list(args),
            cwd=cwd or self.workspace,
            env=self.env,
            timeout=self.timeout,
            cancel_event=self.cancel_event,
        )
        return self.outcome
