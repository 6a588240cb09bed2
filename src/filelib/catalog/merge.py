"""Cross-tree duplicate arbitration."""

from __future__ import annotations

from dataclasses import dataclass

from filelib.catalog.models import FileRecord


@dataclass(slots=True, frozen=True)
class MergeResult:
    """Merged file set, the duplicates dropped from it, and conflict warnings."""

    merged: list[FileRecord]
    rejected: list[FileRecord]
    warnings: list[str]


def merge_file_sets(preferred: list[FileRecord], other: list[FileRecord]) -> MergeResult:
    """Merge two file sets, shipping each true duplicate only once.

    For a same-named pair with equal content the occurrence with the longer
    target path wins. A pair that differs in content but shares a target path
    is reported and then arbitrated the same way. When the target paths are
    equal, or the same length, the file from ``preferred`` wins.
    """
    rejected: dict[str, FileRecord] = {}
    warnings: list[str] = []
    other_by_name: dict[str, list[FileRecord]] = {}
    for record in other:
        other_by_name.setdefault(record.name.lower(), []).append(record)

    for candidate in preferred:
        if candidate.relative_source_path in rejected:
            continue
        for record in other_by_name.get(candidate.name.lower(), []):
            if record == candidate or record.relative_source_path in rejected:
                continue
            if candidate.content_hash != record.content_hash:
                if candidate.target_path.lower() != record.target_path.lower():
                    continue
                warnings.append(
                    f"{candidate.relative_source_path} is supposed to be the same as "
                    f"{record.relative_source_path}, but they differ. "
                    "Only one will get into the installer."
                )
            if _candidate_wins(candidate, record):
                rejected[record.relative_source_path] = record
                record.rejection_reason = f"duplicate of {candidate.relative_source_path}"
                candidate.append_comment(f"(preferred over {record.relative_source_path})")
                continue
            rejected[candidate.relative_source_path] = candidate
            candidate.rejection_reason = f"duplicate of {record.relative_source_path}"
            record.append_comment(f"(preferred over {candidate.relative_source_path})")
            break

    merged: list[FileRecord] = []
    seen: set[str] = set()
    for record in [*preferred, *other]:
        path = record.relative_source_path
        if path in rejected or path in seen:
            continue
        seen.add(path)
        merged.append(record)
    return MergeResult(merged=merged, rejected=list(rejected.values()), warnings=warnings)


def _candidate_wins(candidate: FileRecord, record: FileRecord) -> bool:
    if candidate.target_path.lower() == record.target_path.lower():
        return True
    return len(candidate.target_path) >= len(record.target_path)


def merge_all(file_sets: list[list[FileRecord]]) -> MergeResult:
    """Fold file sets in preference order: earlier sets are preferred."""
    if not file_sets:
        return MergeResult(merged=[], rejected=[], warnings=[])
    merged = list(file_sets[0])
    rejected: list[FileRecord] = []
    warnings: list[str] = []
    for file_set in file_sets[1:]:
        result = merge_file_sets(merged, file_set)
        merged = result.merged
        rejected.extend(result.rejected)
        warnings.extend(result.warnings)
    return MergeResult(merged=merged, rejected=rejected, warnings=warnings)


def duplicates_report(rejected: list[FileRecord]) -> list[str]:
    """One line per rejected duplicate, sorted by path."""
    return [
        f"{record.relative_source_path}: {record.rejection_reason}"
        for record in sorted(rejected, key=lambda item: item.relative_source_path)
    ]
