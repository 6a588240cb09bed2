"""New and deleted file detection between consecutive addenda documents."""

from __future__ import annotations

from dataclasses import dataclass

from filelib.library.store import FileLibrary
from filelib.paths import library_key
from filelib.reporting import Report


@dataclass(slots=True, frozen=True)
class FileChanges:
    new: tuple[str, ...]
    deleted: tuple[str, ...]

    @property
    def empty(self) -> bool:
        return not self.new and not self.deleted


def file_changes(previous: FileLibrary | None, current: FileLibrary) -> FileChanges:
    """Compare pending paths; without a previous addenda every pending path is new."""
    current_paths = [entry.path for entry in current.entries]
    if previous is None:
        return FileChanges(new=tuple(sorted(current_paths)), deleted=())
    previous_paths = [entry.path for entry in previous.entries]
    current_keys = {library_key(path) for path in current_paths}
    previous_keys = {library_key(path) for path in previous_paths}
    new = sorted(path for path in current_paths if library_key(path) not in previous_keys)
    deleted = sorted(path for path in previous_paths if library_key(path) not in current_keys)
    return FileChanges(new=tuple(new), deleted=tuple(deleted))


def record_file_changes(changes: FileChanges, report: Report) -> None:
    for path in changes.new:
        report.add_new_file(path)
    for path in changes.deleted:
        report.add_deleted_file(path)
