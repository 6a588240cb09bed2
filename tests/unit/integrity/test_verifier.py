from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from unittest.mock import patch

import pytest

from filelib.catalog.filters import OmissionList
from filelib.catalog.models import FileRecord
from filelib.config import FileLibConfig, IntegrityConfig, OmissionsConfig, default_config
from filelib.integrity.definitions import InstallerDefinitions
from filelib.integrity.verifier import (
    check_entry_details,
    check_entry_present,
    check_feature_membership,
    check_unreferenced_components,
    parse_version,
    verify,
)
from filelib.library.store import FileLibrary, LibraryEntry
from filelib.paths import make_id

FOO = "DistFiles/foo.dll"


def _entry(**changes: object) -> LibraryEntry:
    entry = LibraryEntry(
        path=FOO,
        component_guid="G1",
        patch_group=3,
        component_id="foo.dll.ABC",
        name="foo.dll",
        directory_id="DistDir",
        features=("Core",),
        date="2026-03-10T00:00:00.000Z",
        version="1.0.0.0",
        size=10,
        content_hash="old",
    )
    return replace(entry, **changes)


def _record(**changes: object) -> FileRecord:
    record = FileRecord(
        name="foo.dll",
        relative_source_path=FOO,
        full_path=Path("/project") / FOO,
        last_write_timestamp="2026-03-10T00:00:00.000Z",
        file_version="1.0.0.0",
        content_hash="old",
        directory_id="DistDir",
        features=["Core"],
    )
    for key, value in changes.items():
        setattr(record, key, value)
    return record


def _definitions(*features: str) -> InstallerDefinitions:
    definitions = InstallerDefinitions()
    definitions.add_component("G1", "harvested files")
    for feature in features:
        definitions.add_feature_ref("G1", feature)
    return definitions


def _config(tmp_path: Path, check_vcs: bool = False) -> FileLibConfig:
    return replace(default_config(tmp_path), integrity=IntegrityConfig(check_vcs=check_vcs))


def _codes(findings) -> list[tuple[str, str]]:
    return [(finding.severity, finding.code) for finding in findings]


def test_parse_version_packs_sixteen_bit_segments() -> None:
    assert parse_version("") == 0
    assert parse_version("1.2.3.4") == (1 << 48) | (2 << 32) | (3 << 16) | 4
    assert parse_version("1.2") == parse_version("1.2.0.0")
    assert parse_version("2.0.0.0") > parse_version("1.65535.65535.65535")


def test_parse_version_rejects_bad_segments() -> None:
    with pytest.raises(ValueError, match="Segment index 1 of version 1.70000.0.0 is more than 65535"):
        parse_version("1.70000.0.0")
    with pytest.raises(ValueError, match="is not a number"):
        parse_version("1.x.0.0")


def test_content_change_without_version_change_is_an_error(tmp_path: Path) -> None:
    library = FileLibrary(tmp_path / "FileLibrary.json", [_entry()])

    findings = verify(
        library, [_record(content_hash="new")], _definitions("Core"), _config(tmp_path)
    )

    assert _codes(findings) == [("ERROR", "content-changed-version-same")]
    assert "foo.dll" in findings[0].message
    assert findings[0].message.endswith("remains at 1.0.0.0. Patching will fail.")


def test_unchanged_file_produces_no_findings(tmp_path: Path) -> None:
    library = FileLibrary(tmp_path / "FileLibrary.json", [_entry()])

    assert verify(library, [_record()], _definitions("Core"), _config(tmp_path)) == []


def test_fourth_segment_only_change_is_an_error() -> None:
    findings = check_entry_details(
        _entry(version="1.2.3.4"), _record(file_version="1.2.3.5", content_hash="new")
    )

    assert _codes(findings) == [("ERROR", "version-fourth-segment-only")]


def test_real_version_bump_is_accepted() -> None:
    findings = check_entry_details(
        _entry(version="1.2.3.4"), _record(file_version="1.2.4.0", content_hash="new")
    )

    assert findings == []


def test_lowered_removed_and_invalid_versions() -> None:
    lowered = check_entry_details(_entry(version="2.0.0.0"), _record(file_version="1.9.0.0"))
    removed = check_entry_details(_entry(version="1.0.0.0"), _record(file_version=""))
    invalid = check_entry_details(_entry(version="1.70000.0.0"), _record(file_version="1.0.0.0"))

    assert _codes(lowered) == [("ERROR", "version-lowered")]
    assert "lowered to 1.9.0.0" in lowered[0].message
    assert _codes(removed) == [("ERROR", "version-removed")]
    assert _codes(invalid) == [("ERROR", "invalid-version")]
    assert "more than 65535" in invalid[0].message


def test_zero_version_warns_unless_allow_listed() -> None:
    entry = _entry(version="0.0.0.0")
    record = _record(file_version="0.0.0.0")

    assert _codes(check_entry_details(entry, record)) == [("WARNING", "zero-version")]
    assert check_entry_details(entry, record, ("distfiles\\FOO",), "Release") == []


def test_date_earlier_than_ledger_by_more_than_a_day() -> None:
    much_older = check_entry_details(
        _entry(), _record(last_write_timestamp="2026-03-08T00:00:00.000Z")
    )
    slightly_older = check_entry_details(
        _entry(), _record(last_write_timestamp="2026-03-09T12:00:00.000Z")
    )

    assert _codes(much_older) == [("ERROR", "date-earlier")]
    assert slightly_older == []


def test_missing_component_suggests_removal_snippet() -> None:
    findings = check_entry_present(
        _entry(features=("Core", "Docs")), InstallerDefinitions(), [], lambda: "NEW-GUID"
    )

    assert _codes(findings) == [("ERROR", "missing-component")]
    lines = findings[0].message.splitlines()
    removal_id = make_id("Delfoo.dll", "foo.dll.ABC")
    assert lines[0] == (
        "<!-- File component G1 [DistFiles/foo.dll] is missing from installer sources -->"
    )
    assert '<DirectoryRef Id="DistDir">' in lines
    assert '\t<Component Id="foo.dll.ABC" Transitive="yes" Guid="G1">' in lines
    assert f'\t<Component Id="{removal_id}" Guid="NEW-GUID">' in lines
    assert f'\t\t<RemoveFile Id="{removal_id}" Name="foo.dll" On="install"/>' in lines
    assert lines.count('\t<ComponentRef Id="foo.dll.ABC"/>') == 2
    assert '<FeatureRef Id="Docs">' in lines


def test_missing_component_mentions_same_file_elsewhere() -> None:
    moved = _record(relative_source_path="DistFiles/New/foo.dll")

    findings = check_entry_present(_entry(), InstallerDefinitions(), [moved])

    message = findings[0].message
    assert "<!-- However, same file is now sourced from DistFiles/New/foo.dll. -->" in message
    assert "RemoveFile" not in message


def test_missing_component_without_directory_or_features() -> None:
    no_directory = check_entry_present(_entry(directory_id=""), InstallerDefinitions(), [])
    no_features = check_entry_present(_entry(features=()), InstallerDefinitions(), [])

    assert "Could not locate DirectoryId" in no_directory[0].message
    assert "No features specified" in no_features[0].message


def test_feature_membership_drift_both_directions() -> None:
    findings = check_feature_membership(_entry(features=("Core", "Docs")), _definitions("Core", "Extras"))

    assert _codes(findings) == [("ERROR", "features-added"), ("ERROR", "features-removed")]
    assert "added to the following features since the last release: Extras" in findings[0].message
    assert "removed from the following features since the last release: Docs" in findings[1].message


def test_ledger_entry_without_features_is_an_error() -> None:
    findings = check_feature_membership(_entry(features=()), _definitions("Core"))

    assert _codes(findings) == [("ERROR", "no-features")]


def test_untracked_static_files_are_filtered_and_reported(tmp_path: Path) -> None:
    (tmp_path / "DistFiles").mkdir()
    config = replace(
        _config(tmp_path, check_vcs=True),
        integrity=IntegrityConfig(non_versioned_allowed=("*.log",), check_vcs=True),
    )
    omissions = OmissionList.from_config(OmissionsConfig(patterns=("Old/",)))
    library = FileLibrary(tmp_path / "FileLibrary.json")

    with patch(
        "filelib.integrity.verifier.untracked_files",
        return_value=["new.txt", "notes.log", "Old/x.txt"],
    ) as untracked:
        findings = verify(library, [], InstallerDefinitions(), config, omissions)

    untracked.assert_called_once_with(config.project_root / "DistFiles", ("Helps", "Movies"))
    assert _codes(findings) == [("WARNING", "untracked-static-files")]
    assert findings[0].message.splitlines()[1] == "    DistFiles/new.txt"


def test_unknown_vcs_state_is_a_warning(tmp_path: Path) -> None:
    (tmp_path / "DistFiles").mkdir()
    library = FileLibrary(tmp_path / "FileLibrary.json")

    with patch(
        "filelib.integrity.verifier.untracked_files",
        side_effect=RuntimeError("not a git repository"),
    ):
        findings = verify(library, [], InstallerDefinitions(), _config(tmp_path, check_vcs=True))

    assert _codes(findings) == [("WARNING", "vcs-unknown")]
    assert "not a git repository" in findings[0].message


def test_components_without_feature_refs_are_reported() -> None:
    definitions = InstallerDefinitions()
    definitions.add_component("g-listed", "Installer/Features.wxs", "Listed")
    definitions.add_feature_ref("G-LISTED", "Core")
    definitions.add_component("g-lost", "Installer/Extras.wxs", "Lost")

    findings = check_unreferenced_components(definitions)

    assert [(finding.severity, finding.code, finding.path) for finding in findings] == [
        ("WARNING", "orphaned-component", "Installer/Extras.wxs")
    ]
    assert findings[0].message.endswith('<ComponentRef Id="Lost"/>')
