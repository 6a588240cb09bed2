"""Accumulating run report with serious, general and file-change sections."""

from __future__ import annotations

import threading
from dataclasses import dataclass

SEVERITY_ERROR = "ERROR"
SEVERITY_WARNING = "WARNING"
SEVERITY_INFO = "INFO"
SEVERITIES = (SEVERITY_ERROR, SEVERITY_WARNING, SEVERITY_INFO)

_INDENT = "    "


@dataclass(slots=True, frozen=True)
class Finding:
    """One detected anomaly."""

    severity: str
    code: str
    message: str
    path: str = ""

    def render(self) -> str:
        return f"{self.severity} [{self.code}]: {self.message}"

    def to_dict(self) -> dict[str, object]:
        return {
            "severity": self.severity,
            "code": self.code,
            "message": self.message,
            "path": self.path,
        }


class Report:
    """Thread-safe report accumulator.

    ERROR and WARNING findings land in the serious section, INFO findings in
    the general section. Only ERROR findings block a release.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.general: list[str] = []
        self.serious: list[str] = []
        self.new_files: list[str] = []
        self.deleted_files: list[str] = []
        self.findings: list[Finding] = []

    def add_line(self, line: str) -> None:
        with self._lock:
            self.general.append(line)

    def add_new_file(self, path: str) -> None:
        with self._lock:
            self.new_files.append(_INDENT + path)

    def add_deleted_file(self, path: str) -> None:
        with self._lock:
            self.deleted_files.append(_INDENT + path)

    def add_finding(self, finding: Finding) -> None:
        if finding.severity not in SEVERITIES:
            raise ValueError(f"Unknown finding severity: {finding.severity}")
        with self._lock:
            self.findings.append(finding)
            if finding.severity == SEVERITY_INFO:
                self.general.append(finding.render())
            else:
                self.serious.append(finding.render())

    def extend(self, findings: list[Finding]) -> None:
        for finding in findings:
            self.add_finding(finding)

    @property
    def has_errors(self) -> bool:
        return any(finding.severity == SEVERITY_ERROR for finding in self.findings)

    def counts(self) -> dict[str, int]:
        output = {severity: 0 for severity in SEVERITIES}
        for finding in self.findings:
            output[finding.severity] += 1
        return output

    def combine(self, preamble: str | None, include_general: bool) -> str:
        """Render the report as plain text."""
        lines: list[str] = []
        if preamble is not None:
            lines.append(preamble)
        lines.extend(_section("Added files", self.new_files, "No new files."))
        lines.extend(_section("Deleted files", self.deleted_files, "No deleted files."))
        lines.extend(_section("Serious Issues", self.serious, "No serious issues."))
        if include_general:
            lines.append("General Report")
            lines.append("=" * len("General Report"))
            lines.extend(self.general)
            lines.append("")
        return "\n".join(lines) + "\n"


def _section(title: str, entries: list[str], empty_text: str) -> list[str]:
    if not entries:
        return [empty_text, ""]
    return [title, "=" * len(title), *entries, ""]
