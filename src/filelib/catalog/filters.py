"""Omission and inclusion filters over relative source paths."""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from functools import lru_cache

from filelib.catalog.models import FileRecord
from filelib.config import HeuristicRule, OmissionsConfig

_ILLEGAL_PATTERN_CHARS = re.compile(r'[:<>|"]')
_EXTENSION_PATTERN = re.compile(r"^\s*.+\.([^.]+)\s*$")
_NON_DOT_CHARS = r"[^.]*"


def path_matches_pattern(path: str, pattern: str, case_sensitive: bool = False) -> bool:
    """Match a path against a substring or wildcard pattern.

    Patterns without '*' or '?' are plain substring tests. Wildcard patterns are
    anchored and case-insensitive unless ``case_sensitive`` is set. A
    three-character extension also accepts any trailing non-dot characters (so
    '*.htm' matches 'page.html') unless the pattern contains '?'.
    """
    if "*" not in pattern and "?" not in pattern:
        return pattern in path
    return _compile_pattern(pattern, case_sensitive).match(path) is not None


@lru_cache(maxsize=512)
def _compile_pattern(pattern: str, case_sensitive: bool = False) -> re.Pattern[str]:
    stripped = pattern.strip().replace("\\", "/")
    if not stripped:
        raise ValueError("File pattern is empty.")
    if _ILLEGAL_PATTERN_CHARS.search(stripped):
        raise ValueError("File pattern contains illegal characters.")

    extension = _EXTENSION_PATTERN.match(stripped)
    match_exact = False
    if "?" in stripped:
        match_exact = True
    elif extension is not None:
        match_exact = len(extension.group(1)) != 3

    expression = re.escape(stripped).replace(r"\*", ".*").replace(r"\?", ".")
    expression = "^" + expression
    if not match_exact and extension is not None:
        expression += _NON_DOT_CHARS
    expression += "$"
    return re.compile(expression, 0 if case_sensitive else re.IGNORECASE)


def validate_pattern(pattern: str) -> None:
    """Raise ValueError for empty or malformed wildcard patterns."""
    if not pattern.strip():
        raise ValueError("File pattern is empty.")
    if "*" in pattern or "?" in pattern:
        _compile_pattern(pattern)


@dataclass(slots=True, frozen=True)
class HeuristicSet:
    """Path-contains and path-ends rules; any single match is a match."""

    rules: tuple[HeuristicRule, ...] = ()

    @classmethod
    def of(cls, rules: tuple[HeuristicRule, ...]) -> HeuristicSet:
        return cls(
            rules=tuple(
                HeuristicRule(kind=rule.kind, pattern=rule.pattern.replace("\\", "/"))
                for rule in rules
            )
        )

    def matches(self, path: str) -> bool:
        return any(rule.matches(path) for rule in self.rules)

    def merge(self, other: HeuristicSet) -> HeuristicSet:
        return HeuristicSet(rules=self.rules + other.rules)

    def with_template(self, value: str) -> HeuristicSet:
        """Substitute '{0}' in every pattern, e.g. with a language folder code."""
        return HeuristicSet(
            rules=tuple(
                HeuristicRule(kind=rule.kind, pattern=rule.pattern.replace("{0}", value))
                for rule in self.rules
            )
        )


@dataclass(slots=True, frozen=True)
class FileHeuristics:
    """Inclusion and exclusion rule sets for one category."""

    inclusions: HeuristicSet = field(default_factory=HeuristicSet)
    exclusions: HeuristicSet = field(default_factory=HeuristicSet)

    def is_file_included(self, path: str) -> bool:
        """Exclusions veto inclusions regardless of how many inclusions match."""
        if self.exclusions.matches(path):
            return False
        return self.inclusions.matches(path)

    def merge(self, other: FileHeuristics) -> FileHeuristics:
        return FileHeuristics(
            inclusions=self.inclusions.merge(other.inclusions),
            exclusions=self.exclusions.merge(other.exclusions),
        )

    def with_template(self, value: str) -> FileHeuristics:
        return FileHeuristics(
            inclusions=self.inclusions.with_template(value),
            exclusions=self.exclusions.with_template(value),
        )


@dataclass(slots=True, frozen=True)
class FileOmission:
    """A path fragment whose files never ship, with the reason recorded on them."""

    pattern: str
    reason: str
    case_sensitive: bool = False

    def matches(self, path: str) -> bool:
        if self.case_sensitive:
            return path_matches_pattern(path, self.pattern, case_sensitive=True)
        return path_matches_pattern(path.lower(), self.pattern.lower())


class OmissionList:
    """Ordered omission entries; the first match supplies the removal reason."""

    def __init__(self, omissions: list[FileOmission] | None = None) -> None:
        self._omissions: list[FileOmission] = list(omissions or [])

    @classmethod
    def from_config(cls, config: OmissionsConfig) -> OmissionList:
        output = cls()
        for pattern in config.patterns:
            output.add_pattern(pattern, case_sensitive=False)
        for pattern in config.case_sensitive_patterns:
            output.add_pattern(pattern, case_sensitive=True)
        return output

    def __len__(self) -> int:
        return len(self._omissions)

    def __iter__(self) -> Iterator[FileOmission]:
        return iter(self._omissions)

    def add_pattern(self, pattern: str, case_sensitive: bool = False) -> None:
        normalized = pattern.replace("\\", "/")
        validate_pattern(normalized)
        self._omissions.append(
            FileOmission(
                pattern=normalized,
                reason=f'omissions pattern "{pattern}"',
                case_sensitive=case_sensitive,
            )
        )

    def add_manual(self, relative_path: str, source_file: str) -> None:
        """Omit a file that a hand-written installer source already ships."""
        self._omissions.append(
            FileOmission(
                pattern=relative_path.replace("\\", "/"),
                reason=f"already included in installer source {source_file}",
            )
        )

    def reason_for(self, path: str) -> str | None:
        for omission in self._omissions:
            if omission.matches(path):
                return omission.reason
        return None

    def filter(self, records: list[FileRecord]) -> tuple[list[FileRecord], list[FileRecord]]:
        """Split records into kept and omitted, annotating the omitted ones."""
        kept: list[FileRecord] = []
        omitted: list[FileRecord] = []
        for record in records:
            reason = self.reason_for(record.relative_source_path)
            if reason is None:
                kept.append(record)
                continue
            record.rejection_reason = f"{record.rejection_reason} {reason}".strip()
            omitted.append(record)
        return kept, omitted


def find_near_duplicates(
    kept: list[FileRecord],
    omitted: list[FileRecord],
    suppressed_pairs: tuple[tuple[str, str], ...] = (),
) -> list[str]:
    """Report shipped files that look identical or similar to an omitted file of the same name."""
    suppressed = {
        frozenset((first.replace("\\", "/").lower(), second.replace("\\", "/").lower()))
        for first, second in suppressed_pairs
    }
    omitted_by_name: dict[str, list[FileRecord]] = {}
    for record in omitted:
        omitted_by_name.setdefault(record.name.lower(), []).append(record)

    messages: list[str] = []
    for record in sorted(kept, key=lambda item: item.relative_source_path):
        for omission in omitted_by_name.get(record.name.lower(), []):
            pair = frozenset(
                (record.relative_source_path.lower(), omission.relative_source_path.lower())
            )
            if pair in suppressed:
                continue
            if record.content_hash and record.content_hash == omission.content_hash:
                messages.append(
                    f"{record.relative_source_path} is included in the installer, but is identical "
                    f"to a file that was omitted [{omission.relative_source_path}] because of "
                    f"{omission.rejection_reason}"
                )
                break
            if record.size == omission.size:
                messages.append(
                    f"{record.relative_source_path} is included in the installer, but is similar "
                    f"to a file that was omitted [{omission.relative_source_path}] because of "
                    f"{omission.rejection_reason}"
                )
                break
    return messages
