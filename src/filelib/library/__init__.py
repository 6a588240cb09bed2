"""File Library ledger persistence and synchronization."""

from .changes import FileChanges, file_changes, record_file_changes
from .store import (
    LIBRARY_SCHEMA_VERSION,
    FileLibrary,
    LibraryEntry,
    LibrarySchemaUnsupportedError,
)
from .synchronizer import SyncResult, new_component_guid, synchronize
from .updater import MergeAddendaResult, merge_addenda, refresh_snapshots

__all__ = [
    "FileChanges",
    "FileLibrary",
    "LIBRARY_SCHEMA_VERSION",
    "LibraryEntry",
    "LibrarySchemaUnsupportedError",
    "MergeAddendaResult",
    "SyncResult",
    "file_changes",
    "merge_addenda",
    "new_component_guid",
    "record_file_changes",
    "refresh_snapshots",
    "synchronize",
]
