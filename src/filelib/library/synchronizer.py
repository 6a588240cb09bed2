"""Stable component identity assignment against the File Library ledger."""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

from filelib.catalog.models import INSTALLER_ROOT_ID, FileRecord
from filelib.library.store import FileLibrary, LibraryEntry


@dataclass(slots=True)
class SyncResult:
    """Outcome of one synchronization pass."""

    addenda: FileLibrary
    next_patch_group: int
    reused: list[str] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)
    minted: list[str] = field(default_factory=list)


def new_component_guid() -> str:
    return str(uuid.uuid4()).upper()


def synchronize(
    records: list[FileRecord],
    library: FileLibrary,
    addenda: FileLibrary,
    previous_addenda: FileLibrary | None = None,
    guid_factory: Callable[[], str] = new_component_guid,
) -> SyncResult:
    """Give every record its component GUID and patch group.

    Ledger entries are reused unchanged. A path still pending in the previous
    addenda keeps the identity minted for it then. Anything else gets a fresh
    GUID and the next patch group, and is prepended to ``addenda``.
    """
    next_patch_group = library.max_patch_group() + 1
    result = SyncResult(addenda=addenda, next_patch_group=next_patch_group)

    for record in records:
        path = record.relative_source_path
        entry = library.lookup(path)
        if entry is not None:
            record.component_guid = entry.component_guid
            record.patch_group = entry.patch_group
            result.reused.append(path)
            continue

        pending = previous_addenda.lookup(path) if previous_addenda is not None else None
        if pending is not None:
            guid = pending.component_guid
            patch_group = pending.patch_group
            result.pending.append(path)
        else:
            guid = guid_factory()
            patch_group = next_patch_group
            result.minted.append(path)
        record.component_guid = guid
        record.patch_group = patch_group
        addenda.prepend(
            LibraryEntry(
                path=path,
                component_guid=guid,
                patch_group=patch_group,
                component_id=record.id,
                name=record.name,
                directory_id=record.directory_id or INSTALLER_ROOT_ID,
                features=tuple(record.features),
                date=record.last_write_timestamp,
                version=record.file_version,
                size=record.size,
                content_hash=record.content_hash,
            )
        )
    return result
