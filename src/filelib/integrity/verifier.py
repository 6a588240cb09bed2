"""Patch-safety checks of the File Library ledger against the current run."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

from filelib.catalog.filters import OmissionList, path_matches_pattern
from filelib.catalog.models import FileRecord
from filelib.catalog.walker import resolve_root_path
from filelib.config import FileLibConfig
from filelib.integrity.definitions import InstallerDefinitions
from filelib.integrity.vcs import untracked_files
from filelib.library.store import FileLibrary, LibraryEntry
from filelib.library.synchronizer import new_component_guid
from filelib.paths import expand_build_type, library_key, make_id, normalize_separators, relative_source_path
from filelib.reporting import SEVERITY_ERROR, SEVERITY_WARNING, Finding

MAX_VERSION_SEGMENT = 0xFFFF
ZERO_VERSION = "0.0.0.0"
DATE_TOLERANCE = timedelta(hours=24)


def parse_version(version: str) -> int:
    """Pack a dotted version into 64 bits, 16 bits per segment, most significant first."""
    if version == "":
        return 0
    packed = 0
    segments = version.split(".")
    for index in range(len(segments) - 1, -1, -1):
        segment = segments[index].strip()
        if not segment.isdigit():
            raise ValueError(f"Segment index {index} of version {version} is not a number.")
        value = int(segment)
        if value > MAX_VERSION_SEGMENT:
            raise ValueError(f"Segment index {index} of version {version} is more than 65535.")
        packed >>= 16
        packed |= value << 48
    return packed


def verify(
    library: FileLibrary,
    records: list[FileRecord],
    definitions: InstallerDefinitions,
    config: FileLibConfig,
    omissions: OmissionList | None = None,
    guid_factory: Callable[[], str] = new_component_guid,
) -> list[Finding]:
    """Report every patch-breaking or suspicious difference; nothing is fixed."""
    by_key = {library_key(record.relative_source_path): record for record in records}
    findings: list[Finding] = []
    for entry in library.entries:
        findings.extend(check_entry_present(entry, definitions, records, guid_factory))
        findings.extend(check_feature_membership(entry, definitions))
        record = by_key.get(library_key(entry.path))
        if record is not None:
            findings.extend(
                check_entry_details(
                    entry, record, config.integrity.version_zero_allowed, config.build_type
                )
            )
    if config.integrity.check_vcs:
        findings.extend(check_untracked_static_files(config, omissions or OmissionList()))
    return findings


def check_entry_present(
    entry: LibraryEntry,
    definitions: InstallerDefinitions,
    records: list[FileRecord],
    guid_factory: Callable[[], str] = new_component_guid,
) -> list[Finding]:
    """A released component must still be defined, or a removal snippet is suggested."""
    if definitions.has_component(entry.component_guid):
        return []
    guid = entry.component_guid
    lines = [f"<!-- File component {guid} [{entry.path}] is missing from installer sources -->"]
    replacement = _same_file_elsewhere(entry, records)
    if replacement is not None:
        lines.append(f"<!-- However, same file is now sourced from {replacement}. -->")

    if not entry.directory_id:
        lines.append("<!-- WARNING: Could not locate DirectoryId -->")
    else:
        component_id = entry.component_id or "[unknown]"
        name = entry.name or Path(entry.path).name
        removal_id = make_id(f"Del{name}", component_id)
        lines.append("<!-- Suggested patch corrections snippet: -->")
        lines.append(f'<DirectoryRef Id="{entry.directory_id}">')
        lines.append(f'\t<Component Id="{component_id}" Transitive="yes" Guid="{guid}">')
        lines.append("\t\t<Condition>FALSE</Condition>")
        lines.append("\t\t<CreateFolder/>")
        lines.append("\t</Component>")
        if replacement is None:
            lines.append(f'\t<Component Id="{removal_id}" Guid="{guid_factory()}">')
            lines.append(f'\t\t<RemoveFile Id="{removal_id}" Name="{name}" On="install"/>')
            lines.append("\t\t<CreateFolder/>")
            lines.append("\t</Component>")
        lines.append("</DirectoryRef>")
        if entry.features:
            for feature in entry.features:
                lines.append(f'<FeatureRef Id="{feature}">')
                lines.append(f'\t<ComponentRef Id="{component_id}"/>')
                if replacement is None:
                    lines.append(f'\t<ComponentRef Id="{removal_id}"/>')
                lines.append("</FeatureRef>")
        else:
            lines.append("<!-- WARNING: No features specified for above component(s) -->")

    return [
        Finding(
            severity=SEVERITY_ERROR,
            code="missing-component",
            message="\n".join(lines),
            path=entry.path,
        )
    ]


def _same_file_elsewhere(entry: LibraryEntry, records: list[FileRecord]) -> str | None:
    name = (entry.name or Path(entry.path).name).lower()
    key = library_key(entry.path)
    for record in records:
        if record.name.lower() != name or library_key(record.relative_source_path) == key:
            continue
        if not record.features or record.only_in_unused_features:
            continue
        if entry.directory_id and record.directory_id == entry.directory_id:
            return record.relative_source_path
    return None


def check_feature_membership(
    entry: LibraryEntry, definitions: InstallerDefinitions
) -> list[Finding]:
    """Feature membership of a released component must not drift."""
    if not entry.features:
        return [
            Finding(
                severity=SEVERITY_ERROR,
                code="no-features",
                message=f"Library contains file {entry.path} with no feature list.",
                path=entry.path,
            )
        ]
    if not definitions.has_component(entry.component_guid):
        return []
    released = set(entry.features)
    current = definitions.features_for(entry.component_guid)
    findings: list[Finding] = []
    added = sorted(current - released)
    if added:
        findings.append(
            Finding(
                severity=SEVERITY_ERROR,
                code="features-added",
                message=(
                    f"File {entry.path} has been added to the following features since the last "
                    f"release: {', '.join(added)}. Patching will fail."
                ),
                path=entry.path,
            )
        )
    removed = sorted(released - current)
    if removed:
        findings.append(
            Finding(
                severity=SEVERITY_ERROR,
                code="features-removed",
                message=(
                    f"File {entry.path} has been removed from the following features since the last "
                    f"release: {', '.join(removed)}. Patching will fail."
                ),
                path=entry.path,
            )
        )
    return findings


def check_entry_details(
    entry: LibraryEntry,
    record: FileRecord,
    version_zero_allowed: tuple[str, ...] = (),
    build_type: str = "",
) -> list[Finding]:
    """Compare the released snapshot of a file with what is on disk now."""
    findings: list[Finding] = []
    path = entry.path
    released_version = entry.version
    current_version = record.file_version

    content_changed = bool(entry.content_hash) and entry.content_hash != record.content_hash
    if content_changed and released_version and current_version:
        if current_version == released_version:
            findings.append(
                _error(
                    "content-changed-version-same",
                    f"File {path} has been modified since the last release, but its version "
                    f"remains at {current_version}. Patching will fail.",
                    path,
                )
            )
        elif _major_minor_build(current_version) == _major_minor_build(released_version):
            findings.append(
                _error(
                    "version-fourth-segment-only",
                    f"File {path} has a version number ({current_version}) that has only changed "
                    f"in the 4th segment since the last release ({released_version}). The 4th "
                    "version segment is ignored by the installer. Patching will fail.",
                    path,
                )
            )

    findings.extend(_check_date(entry, record))

    if current_version == ZERO_VERSION and not _allow_listed(
        record.relative_source_path, version_zero_allowed, build_type
    ):
        findings.append(
            Finding(
                severity=SEVERITY_WARNING,
                code="zero-version",
                message=f"File {path} has a version number of {ZERO_VERSION}.",
                path=path,
            )
        )

    if released_version and not current_version:
        findings.append(
            _error(
                "version-removed",
                f"File {path} had a version of {released_version} in the last release. The "
                "version information has since been removed. Patching will fail.",
                path,
            )
        )
        return findings
    try:
        lowered = parse_version(current_version) < parse_version(released_version)
    except ValueError as exc:
        findings.append(
            _error("invalid-version", f"File {path} has invalid version number: {exc}", path)
        )
        return findings
    if lowered:
        findings.append(
            _error(
                "version-lowered",
                f"File {path} had a version of {released_version} in the last release. The "
                f"version has since been lowered to {current_version}. Patching will fail.",
                path,
            )
        )
    return findings


def _check_date(entry: LibraryEntry, record: FileRecord) -> list[Finding]:
    if not entry.date or not record.last_write_timestamp:
        return []
    try:
        released = datetime.fromisoformat(entry.date)
        current = datetime.fromisoformat(record.last_write_timestamp)
    except ValueError:
        return [
            Finding(
                severity=SEVERITY_WARNING,
                code="invalid-date",
                message=f"File {entry.path} has an unreadable date in the library: {entry.date}",
                path=entry.path,
            )
        ]
    if released.tzinfo is None or current.tzinfo is None:
        released = released.replace(tzinfo=None)
        current = current.replace(tzinfo=None)
    if current - released < -DATE_TOLERANCE:
        return [
            _error(
                "date-earlier",
                f"File {entry.path} has a date/time stamp ({record.last_write_timestamp}) that is "
                f"earlier than a previously released version ({entry.date}). Patching may fail.",
                entry.path,
            )
        ]
    return []


def _major_minor_build(version: str) -> str:
    return ".".join(version.split(".")[:3])


def _allow_listed(path: str, fragments: tuple[str, ...], build_type: str) -> bool:
    expanded = expand_build_type(path, build_type).lower()
    return any(
        expand_build_type(normalize_separators(fragment), build_type).lower() in expanded
        for fragment in fragments
    )


def _error(code: str, message: str, path: str) -> Finding:
    return Finding(severity=SEVERITY_ERROR, code=code, message=message, path=path)


def check_unreferenced_components(definitions: InstallerDefinitions) -> list[Finding]:
    """Hand-written components that no feature lists never get installed."""
    findings: list[Finding] = []
    for guid in definitions.unreferenced():
        component_id = definitions.component_ids.get(guid, guid)
        source = definitions.component_sources.get(guid, "")
        findings.append(
            Finding(
                severity=SEVERITY_WARNING,
                code="orphaned-component",
                message=(
                    f"Component {component_id} in {source} is not referenced by any feature. "
                    f'Add to a feature:\n    <ComponentRef Id="{component_id}"/>'
                ),
                path=source,
            )
        )
    return findings


def check_untracked_static_files(config: FileLibConfig, omissions: OmissionList) -> list[Finding]:
    """Static trees ship straight from source control; untracked files there are suspicious."""
    findings: list[Finding] = []
    for root in config.roots:
        if root.kind != "static":
            continue
        root_path = resolve_root_path(config.project_root, root, config.build_type)
        if not root_path.is_dir():
            continue
        try:
            untracked = untracked_files(root_path, config.integrity.untracked_excludes)
        except RuntimeError as exc:
            findings.append(
                Finding(
                    severity=SEVERITY_WARNING,
                    code="vcs-unknown",
                    message=(
                        f"Could not determine if {root.name} folder is consistent with source "
                        f"control:\n{exc}"
                    ),
                )
            )
            continue
        flagged: list[str] = []
        for name in untracked:
            if any(
                path_matches_pattern(name, pattern)
                for pattern in config.integrity.non_versioned_allowed
            ):
                continue
            relative = relative_source_path(
                config.project_root, root_path / name, config.build_type
            )
            if omissions.reason_for(relative) is not None:
                continue
            flagged.append(relative)
        if flagged:
            findings.append(
                Finding(
                    severity=SEVERITY_WARNING,
                    code="untracked-static-files",
                    message=(
                        f"The following files are present in {root.name} but not checked into "
                        "source control:\n    " + "\n    ".join(flagged)
                    ),
                )
            )
    return findings
