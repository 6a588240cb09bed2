"""Structured JSONL run log utilities."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path


@dataclass(slots=True, frozen=True)
class RunEvent:
    """One pipeline stage outcome."""

    timestamp: str
    run_id: str
    stage: str
    ok: bool
    metadata: dict[str, object]


def utc_timestamp() -> str:
    """Return an ISO-8601 UTC timestamp."""
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def sanitize_metadata(metadata: dict[str, object]) -> dict[str, object]:
    """Keep scalars, summarize containers, so log lines stay small."""
    sanitized: dict[str, object] = {}
    for key in sorted(metadata.keys()):
        value = metadata[key]
        if isinstance(value, (str, int, float, bool)) or value is None:
            sanitized[key] = value
            continue
        if isinstance(value, (list, tuple)):
            sanitized[f"{key}_count"] = len(value)
            continue
        if isinstance(value, dict):
            if all(isinstance(item, (str, int, float, bool)) for item in value.values()):
                sanitized[key] = {str(k): value[k] for k in sorted(value.keys(), key=str)}
                continue
            sanitized[f"{key}_keys"] = sorted(str(k) for k in value.keys())
            continue
        sanitized[f"{key}_type"] = type(value).__name__
    return sanitized


class JsonlRunLogger:
    """Append-only JSONL log with one line per pipeline stage."""

    def __init__(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self._path = path

    def log(self, run_id: str, stage: str, ok: bool, metadata: dict[str, object]) -> None:
        event = RunEvent(
            timestamp=utc_timestamp(),
            run_id=run_id,
            stage=stage,
            ok=ok,
            metadata=sanitize_metadata(metadata),
        )
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(asdict(event), sort_keys=True) + "\n")
