"""Durable File Library ledger and addenda documents."""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from pathlib import Path

from filelib.paths import library_key, normalize_separators

LIBRARY_SCHEMA_VERSION = 1


@dataclass(slots=True, frozen=True)
class LibrarySchemaUnsupportedError(Exception):
    """Raised when a stored ledger schema does not match the supported version."""

    found: int
    expected: int


@dataclass(slots=True, frozen=True)
class LibraryEntry:
    """One ledger row, keyed by normalized relative source path."""

    path: str
    component_guid: str
    patch_group: int
    component_id: str = ""
    name: str = ""
    directory_id: str = ""
    features: tuple[str, ...] = ()
    date: str = ""
    version: str = ""
    size: int = 0
    content_hash: str = ""

    def to_dict(self) -> dict[str, object]:
        return {
            "path": self.path,
            "component_guid": self.component_guid,
            "patch_group": self.patch_group,
            "component_id": self.component_id,
            "name": self.name,
            "directory_id": self.directory_id,
            "features": list(self.features),
            "date": self.date,
            "version": self.version,
            "size": self.size,
            "content_hash": self.content_hash,
        }

    @classmethod
    def from_dict(cls, obj: dict[str, object], source: str) -> LibraryEntry:
        path = obj.get("path")
        guid = obj.get("component_guid")
        patch_group = obj.get("patch_group", 0)
        if not isinstance(path, str) or not path:
            raise ValueError(f"{source}: ledger entry is missing 'path'.")
        if not isinstance(guid, str) or not guid:
            raise ValueError(f"{source}: ledger entry '{path}' is missing 'component_guid'.")
        if not isinstance(patch_group, int) or isinstance(patch_group, bool) or patch_group < 0:
            raise ValueError(f"{source}: ledger entry '{path}' has an invalid 'patch_group'.")
        features = obj.get("features", [])
        if not isinstance(features, list) or not all(isinstance(item, str) for item in features):
            raise ValueError(f"{source}: ledger entry '{path}' has an invalid 'features' list.")
        size = obj.get("size", 0)
        return cls(
            path=normalize_separators(path),
            component_guid=guid.upper(),
            patch_group=patch_group,
            component_id=_as_str(obj.get("component_id")),
            name=_as_str(obj.get("name")),
            directory_id=_as_str(obj.get("directory_id")),
            features=tuple(features),
            date=_as_str(obj.get("date")),
            version=_as_str(obj.get("version")),
            size=size if isinstance(size, int) else 0,
            content_hash=_as_str(obj.get("content_hash")),
        )

    def with_snapshot(self, size: int, date: str, version: str, content_hash: str) -> LibraryEntry:
        return replace(self, size=size, date=date, version=version, content_hash=content_hash)


class FileLibrary:
    """Ordered ledger entries with case-insensitive path lookup."""

    def __init__(self, path: Path, entries: list[LibraryEntry] | None = None) -> None:
        self._path = path
        self._entries: list[LibraryEntry] = []
        self._by_key: dict[str, LibraryEntry] = {}
        for entry in entries or []:
            self._append(entry)

    @classmethod
    def load(cls, path: Path) -> FileLibrary:
        """Load a ledger document; a missing file is an empty ledger."""
        if not path.exists():
            return cls(path)
        try:
            with path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{path.name} is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise ValueError(f"{path.name} must contain a top-level object.")
        schema = payload.get("schema_version")
        if not isinstance(schema, int):
            raise LibrarySchemaUnsupportedError(found=-1, expected=LIBRARY_SCHEMA_VERSION)
        if schema != LIBRARY_SCHEMA_VERSION:
            raise LibrarySchemaUnsupportedError(found=schema, expected=LIBRARY_SCHEMA_VERSION)
        rows = payload.get("files", [])
        if not isinstance(rows, list):
            raise ValueError(f"{path.name}: 'files' must be a list.")
        entries: list[LibraryEntry] = []
        for row in rows:
            if not isinstance(row, dict):
                raise ValueError(f"{path.name}: every entry in 'files' must be an object.")
            entries.append(LibraryEntry.from_dict(row, path.name))
        return cls(path, entries)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def entries(self) -> list[LibraryEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, path: str) -> LibraryEntry | None:
        return self._by_key.get(library_key(path))

    def max_patch_group(self) -> int:
        return max((entry.patch_group for entry in self._entries), default=0)

    def prepend(self, entry: LibraryEntry) -> None:
        """Insert ahead of existing entries so the newest are reviewed first."""
        key = library_key(entry.path)
        if key in self._by_key:
            raise ValueError(f"Ledger already contains an entry for '{entry.path}'.")
        self._entries.insert(0, entry)
        self._by_key[key] = entry

    def replace_entry(self, entry: LibraryEntry) -> None:
        key = library_key(entry.path)
        existing = self._by_key.get(key)
        if existing is None:
            raise KeyError(entry.path)
        self._entries[self._entries.index(existing)] = entry
        self._by_key[key] = entry

    def save(self) -> None:
        """Write the ledger atomically."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "schema_version": LIBRARY_SCHEMA_VERSION,
            "files": [entry.to_dict() for entry in self._entries],
        }
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
            handle.write("\n")
        tmp.replace(self._path)

    def _append(self, entry: LibraryEntry) -> None:
        key = library_key(entry.path)
        if key in self._by_key:
            raise ValueError(f"{self._path.name}: duplicate ledger entry for '{entry.path}'.")
        self._entries.append(entry)
        self._by_key[key] = entry


def _as_str(value: object) -> str:
    if isinstance(value, str):
        return value
    return ""
