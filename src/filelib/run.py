"""Explicit per-run state passed through the pipeline."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from filelib.config import FileLibConfig
from filelib.reporting import Report, utc_timestamp


class RunContextError(RuntimeError):
    """Raised when a single-use step runs twice on the same context."""


@dataclass(slots=True)
class RunContext:
    """Everything one File Library run needs; create a fresh context per run."""

    project_root: Path
    config: FileLibConfig
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started: str = field(default_factory=utc_timestamp)
    report: Report = field(default_factory=Report)
    profile: dict[str, object] = field(default_factory=dict)
    _claimed: set[str] = field(default_factory=set, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self) -> None:
        if not self.project_root.is_dir():
            raise ValueError(f"Project root '{self.project_root}' does not exist.")

    def claim(self, step: str) -> None:
        with self._lock:
            if step in self._claimed:
                raise RunContextError(f"Step '{step}' already ran for run {self.run_id}.")
            self._claimed.add(step)
