from __future__ import annotations

import hashlib
import json
import shutil
import struct
from pathlib import Path

import pytest

from filelib.config import load_effective_config
from filelib.library import LIBRARY_SCHEMA_VERSION, FileLibrary
from filelib.pipeline import MissingSourceRootError, run_pipeline
from filelib.run import RunContext, RunContextError

CONFIG = """
[features]
declared = ["Core", "Movies"]

[[categories]]
name = "movies"
feature = "Movies"
include = [{contains = "/Movies/"}]

[omissions]
patterns = ["*.pdb"]

[cabinets]
default = {index = 1}
Movies = {index = 2}

[integrity]
check_vcs = false
"""


def _pe(version: tuple[int, int, int, int], payload: bytes = b"") -> bytes:
    major, minor, build, private = version
    fixed_info = b"\xbd\x04\xef\xfe" + struct.pack(
        "<III", 0x00010000, (major << 16) | minor, (build << 16) | private
    )
    return b"MZ" + b"\x00" * 62 + fixed_info + payload


def _write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def _project(tmp_path: Path) -> Path:
    project = tmp_path / "proj"
    _write(project / "Output" / "Release" / "App.exe", _pe((1, 0, 0, 0)))
    _write(project / "Output" / "Release" / "App.pdb", b"symbols")
    _write(project / "Output" / "Release" / "bar.dll", _pe((2, 0, 0, 0)))
    foo = _pe((1, 0, 0, 0), b"foo")
    _write(project / "DistFiles" / "foo.dll", foo)
    _write(project / "DistFiles" / "Movies" / "intro.mp4", b"movie")
    (project / "filelib.toml").write_text(CONFIG, encoding="utf-8")
    ledger = {
        "schema_version": LIBRARY_SCHEMA_VERSION,
        "files": [
            {
                "path": "DistFiles\\foo.dll",
                "component_guid": "G1",
                "patch_group": 3,
                "name": "foo.dll",
                "directory_id": "INSTALLDIR",
                "features": ["Core"],
                "version": "1.0.0.0",
                "content_hash": hashlib.sha256(foo).hexdigest(),
            }
        ],
    }
    (project / "FileLibrary.json").write_text(json.dumps(ledger), encoding="utf-8")
    return project


def _run(project: Path, dry_run: bool = False):
    config = load_effective_config(project)
    context = RunContext(project_root=config.project_root, config=config)
    return context, run_pipeline(context, dry_run=dry_run)


def test_first_run_reuses_ledger_identity_and_records_new_files(tmp_path: Path) -> None:
    project = _project(tmp_path)

    context, result = _run(project)

    by_path = {record.relative_source_path: record for record in result.emitted}
    assert sorted(by_path) == [
        "DistFiles/Movies/intro.mp4",
        "DistFiles/foo.dll",
        "Output/${config}/App.exe",
        "Output/${config}/bar.dll",
    ]
    foo = by_path["DistFiles/foo.dll"]
    assert (foo.component_guid, foo.patch_group) == ("G1", 3)
    assert by_path["DistFiles/Movies/intro.mp4"].features == ["Movies"]
    assert by_path["DistFiles/Movies/intro.mp4"].disk_id == 2
    assert [record.name for record in result.omitted] == ["App.pdb"]
    assert not context.report.has_errors

    addenda = FileLibrary.load(project / "FileLibraryAddenda.json")
    assert addenda.lookup("DistFiles/foo.dll") is None
    assert {entry.patch_group for entry in addenda.entries} == {4}
    assert len(addenda) == 3

    output_dir = project / ".filelib"
    files = json.loads((output_dir / "files.json").read_text(encoding="utf-8"))
    assert len(files["files"]) == 4
    assert files["directories"][0]["directory_id"] == "INSTALLDIR"
    report = (output_dir / "report.txt").read_text(encoding="utf-8")
    assert "    Output/${config}/App.exe" in report
    assert "No deleted files." in report
    stages = [
        json.loads(line)["stage"]
        for line in (output_dir / "run.jsonl").read_text(encoding="utf-8").splitlines()
    ]
    assert stages == ["configure", "walk", "filter", "merge", "classify", "synchronize", "verify", "write"]


def test_second_run_is_idempotent(tmp_path: Path) -> None:
    project = _project(tmp_path)
    _, first = _run(project)
    first_ids = {r.relative_source_path: r.component_guid for r in first.emitted}

    _, second = _run(project)

    assert {r.relative_source_path: r.component_guid for r in second.emitted} == first_ids
    assert second.changes.empty
    changes_text = (project / ".filelib" / "file_changes.txt").read_text(encoding="utf-8")
    assert changes_text == "No new files.\n\nNo deleted files.\n"


def test_modified_file_with_same_version_is_reported(tmp_path: Path) -> None:
    project = _project(tmp_path)
    _write(project / "DistFiles" / "foo.dll", _pe((1, 0, 0, 0), b"patched"))

    context, _ = _run(project)

    assert context.report.has_errors
    report = (project / ".filelib" / "report.txt").read_text(encoding="utf-8")
    assert "ERROR [content-changed-version-same]: File DistFiles/foo.dll" in report


def test_removed_file_produces_removal_snippet(tmp_path: Path) -> None:
    project = _project(tmp_path)
    (project / "DistFiles" / "foo.dll").unlink()

    context, _ = _run(project)

    codes = [finding.code for finding in context.report.findings]
    assert "missing-component" in codes


def test_dry_run_does_not_write_addenda(tmp_path: Path) -> None:
    project = _project(tmp_path)

    _, result = _run(project, dry_run=True)

    assert not (project / "FileLibraryAddenda.json").exists()
    assert "addenda" not in result.outputs
    assert (project / ".filelib" / "report.txt").exists()


def test_missing_required_root_aborts(tmp_path: Path) -> None:
    project = _project(tmp_path)
    shutil.rmtree(project / "DistFiles")

    with pytest.raises(MissingSourceRootError) as info:
        _run(project)

    assert info.value.root == "static"


def test_context_cannot_run_twice(tmp_path: Path) -> None:
    project = _project(tmp_path)
    config = load_effective_config(project)
    context = RunContext(project_root=config.project_root, config=config)
    run_pipeline(context)

    with pytest.raises(RunContextError):
        run_pipeline(context)


MANUAL_WIX = """<?xml version="1.0" encoding="utf-8"?>
<Wix xmlns="http://schemas.microsoft.com/wix/2006/wi">
  <Fragment>
    <DirectoryRef Id="INSTALLDIR">
      <Component Id="AppExe" Guid="bbbbbbbb-0000-0000-0000-000000000001">
        <File Id="App.exe" Source="..\\Output\\Release\\App.exe"/>
      </Component>
      <Component Id="BarDll" Guid="bbbbbbbb-0000-0000-0000-000000000002">
        <File Id="bar.dll" Source="..\\Output\\$(var.Configuration)\\bar.dll"/>
      </Component>
    </DirectoryRef>
    <FeatureRef Id="Core">
      <ComponentRef Id="AppExe"/>
    </FeatureRef>
  </Fragment>
</Wix>
"""


def test_manually_defined_built_files_are_not_harvested(tmp_path: Path) -> None:
    project = _project(tmp_path)
    _write(project / "Installer" / "Files.wxs", MANUAL_WIX.encode("utf-8"))
    (project / "filelib.toml").write_text(
        CONFIG + '\n[installer]\nsources = ["Installer/Files.wxs"]\n', encoding="utf-8"
    )

    context, result = _run(project)

    emitted = sorted(record.relative_source_path for record in result.emitted)
    assert emitted == ["DistFiles/Movies/intro.mp4", "DistFiles/foo.dll"]
    reasons = {record.name: record.rejection_reason for record in result.omitted}
    assert reasons["App.exe"] == "already included in installer source Installer/Files.wxs"
    assert reasons["bar.dll"] == "already included in installer source Installer/Files.wxs"
    orphaned = [f for f in context.report.findings if f.code == "orphaned-component"]
    assert [finding.path for finding in orphaned] == ["Installer/Files.wxs"]
    assert '<ComponentRef Id="BarDll"/>' in orphaned[0].message


def test_files_document_carries_config_snapshot(tmp_path: Path) -> None:
    project = _project(tmp_path)

    _run(project)

    files = json.loads((project / ".filelib" / "files.json").read_text(encoding="utf-8"))
    assert files["config"]["build_type"] == "Release"
    assert files["config"]["features"]["declared"] == ["Core", "Movies"]
    assert files["config"]["installer_sources"] == []
