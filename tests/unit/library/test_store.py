from __future__ import annotations

import json
from pathlib import Path

import pytest

from filelib.library.store import (
    LIBRARY_SCHEMA_VERSION,
    FileLibrary,
    LibraryEntry,
    LibrarySchemaUnsupportedError,
)


def _write(path: Path, payload: object) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_missing_ledger_is_empty(tmp_path: Path) -> None:
    library = FileLibrary.load(tmp_path / "FileLibrary.json")

    assert len(library) == 0
    assert library.max_patch_group() == 0
    assert library.lookup("DistFiles/foo.dll") is None


def test_entries_are_normalized_and_looked_up_case_insensitively(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "FileLibrary.json",
        {
            "schema_version": LIBRARY_SCHEMA_VERSION,
            "files": [
                {
                    "path": "DistFiles\\foo.dll",
                    "component_guid": "a1b2c3d4-0000-0000-0000-000000000001",
                    "patch_group": 3,
                    "features": ["Core"],
                }
            ],
        },
    )

    library = FileLibrary.load(path)
    entry = library.lookup("distfiles/FOO.DLL")

    assert entry is not None
    assert entry.path == "DistFiles/foo.dll"
    assert entry.component_guid == "A1B2C3D4-0000-0000-0000-000000000001"
    assert entry.features == ("Core",)
    assert library.max_patch_group() == 3


def test_schema_mismatch_raises(tmp_path: Path) -> None:
    path = _write(tmp_path / "FileLibrary.json", {"schema_version": 99, "files": []})

    with pytest.raises(LibrarySchemaUnsupportedError) as info:
        FileLibrary.load(path)

    assert info.value.found == 99
    assert info.value.expected == LIBRARY_SCHEMA_VERSION


def test_invalid_json_and_entries_raise_value_error(tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{", encoding="utf-8")
    with pytest.raises(ValueError, match="not valid JSON"):
        FileLibrary.load(broken)

    missing_guid = _write(
        tmp_path / "missing.json",
        {"schema_version": LIBRARY_SCHEMA_VERSION, "files": [{"path": "a.txt", "patch_group": 1}]},
    )
    with pytest.raises(ValueError, match="missing 'component_guid'"):
        FileLibrary.load(missing_guid)


def test_duplicate_paths_are_rejected(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "FileLibrary.json",
        {
            "schema_version": LIBRARY_SCHEMA_VERSION,
            "files": [
                {"path": "DistFiles/a.txt", "component_guid": "G1", "patch_group": 1},
                {"path": "distfiles\\A.TXT", "component_guid": "G2", "patch_group": 1},
            ],
        },
    )

    with pytest.raises(ValueError, match="duplicate ledger entry"):
        FileLibrary.load(path)


def test_prepend_and_save_keep_newest_first(tmp_path: Path) -> None:
    path = tmp_path / "ledger" / "FileLibrary.json"
    library = FileLibrary(path)
    library.prepend(LibraryEntry(path="old.txt", component_guid="G1", patch_group=1))
    library.prepend(LibraryEntry(path="new.txt", component_guid="G2", patch_group=2))
    library.save()

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["schema_version"] == LIBRARY_SCHEMA_VERSION
    assert [row["path"] for row in payload["files"]] == ["new.txt", "old.txt"]
    assert [entry.path for entry in FileLibrary.load(path).entries] == ["new.txt", "old.txt"]
    assert not path.with_suffix(".json.tmp").exists()

    with pytest.raises(ValueError, match="already contains"):
        library.prepend(LibraryEntry(path="NEW.txt", component_guid="G3", patch_group=2))


def test_replace_entry_keeps_position(tmp_path: Path) -> None:
    library = FileLibrary(
        tmp_path / "FileLibrary.json",
        [
            LibraryEntry(path="a.txt", component_guid="G1", patch_group=1),
            LibraryEntry(path="b.txt", component_guid="G2", patch_group=1),
        ],
    )
    library.replace_entry(
        library.lookup("a.txt").with_snapshot(size=5, date="d", version="", content_hash="h")
    )

    assert [entry.path for entry in library.entries] == ["a.txt", "b.txt"]
    assert library.lookup("a.txt").size == 5
    with pytest.raises(KeyError):
        library.replace_entry(LibraryEntry(path="zzz.txt", component_guid="G9", patch_group=1))
