from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


def _int(environ: Mapping[str, str], key: str, default: Optional[int]) -> Optional[int]:
    raw = environ.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    workflow: Optional[str] = None        # CIFLOW_WORKFLOW
    workers: Optional[int] = None         # CIFLOW_WORKERS (default: cpu_count - 1)
    log_dir: Optional[str] = None         # CIFLOW_LOG_DIR
    neutral_exit_code: int = 0            # CIFLOW_NEUTRAL_EXIT_CODE, used when no trigger matched

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Settings:
        environ = os.environ if environ is None else environ
        workers = _int(environ, "CIFLOW_WORKERS", None)
        if workers is not None and workers < 1:
            raise ValueError(f"CIFLOW_WORKERS must be >= 1, got {workers}")
        return cls(
            workflow=environ.get("CIFLOW_WORKFLOW") or None,
            workers=workers,
            log_dir=environ.get("CIFLOW_LOG_DIR") or None,
            neutral_exit_code=_int(environ, "CIFLOW_NEUTRAL_EXIT_CODE", 0),
        )
