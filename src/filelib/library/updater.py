"""Merging reviewed addenda into the File Library ledger."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from filelib.catalog.walker import format_timestamp, hash_and_version
from filelib.library.store import FileLibrary
from filelib.paths import expand_build_type


@dataclass(slots=True, frozen=True)
class MergeAddendaResult:
    transferred: int
    refreshed: int
    skipped: tuple[str, ...]
    messages: tuple[str, ...]


def merge_addenda(
    library_path: Path,
    addenda_path: Path,
    project_root: Path,
    build_type: str,
) -> MergeAddendaResult:
    """Move addenda entries ahead of the ledger's entries and refresh file snapshots.

    The addenda document is deleted once the ledger has been written.
    """
    if library_path.exists() and not os.access(library_path, os.W_OK):
        raise PermissionError(f"The file {library_path} is read-only.")

    library = FileLibrary.load(library_path)
    messages: list[str] = []
    skipped: list[str] = []
    transferred = 0

    if not addenda_path.exists():
        messages.append(f"{addenda_path.name} file not found: {library_path.name} not changed.")
    else:
        addenda = FileLibrary.load(addenda_path)
        for entry in reversed(addenda.entries):
            if library.lookup(entry.path) is not None:
                skipped.append(entry.path)
                continue
            library.prepend(entry)
            transferred += 1
        if len(addenda) == 0:
            messages.append(f"{addenda_path.name} contains no data!")
        else:
            messages.append(f"{addenda_path.name}: transferred {transferred} entries.")
        for path in skipped:
            messages.append(f"{path} is already in {library_path.name}; addenda entry dropped.")

    refreshed = refresh_snapshots(library, project_root, build_type)
    library.save()
    if addenda_path.exists():
        addenda_path.unlink()
    return MergeAddendaResult(
        transferred=transferred,
        refreshed=refreshed,
        skipped=tuple(skipped),
        messages=tuple(messages),
    )


def refresh_snapshots(library: FileLibrary, project_root: Path, build_type: str) -> int:
    """Update size, date, version and hash of every ledger entry whose file exists."""
    refreshed = 0
    for entry in library.entries:
        full_path = project_root / expand_build_type(entry.path, build_type)
        if not full_path.is_file():
            continue
        try:
            stat = full_path.stat()
            content_hash, version = hash_and_version(full_path)
        except OSError:
            continue
        library.replace_entry(
            entry.with_snapshot(
                size=stat.st_size,
                date=format_timestamp(stat.st_mtime),
                version=version,
                content_hash=content_hash,
            )
        )
        refreshed += 1
    return refreshed
