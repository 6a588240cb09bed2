"""Current installer definitions: components and the features that reference them."""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path

from filelib.catalog.models import FileRecord
from filelib.paths import BUILD_TYPE_PLACEHOLDER, normalize_separators

_CONFIG_VARIABLE = re.compile(r"^\$\((?:var\.)?\w*config\w*\)$", re.IGNORECASE)


@dataclass(slots=True)
class InstallerDefinitions:
    """Component GUIDs known to the installer and their feature references."""

    components: dict[str, set[str]] = field(default_factory=dict)
    component_sources: dict[str, str] = field(default_factory=dict)
    component_ids: dict[str, str] = field(default_factory=dict)
    referenced_files: list[tuple[str, str]] = field(default_factory=list)

    def add_component(self, guid: str, source: str, component_id: str = "") -> None:
        key = guid.upper()
        self.components.setdefault(key, set())
        self.component_sources.setdefault(key, source)
        if component_id:
            self.component_ids.setdefault(key, component_id)

    def add_feature_ref(self, guid: str, feature: str) -> None:
        self.components.setdefault(guid.upper(), set()).add(feature)

    def has_component(self, guid: str) -> bool:
        return guid.upper() in self.components

    def features_for(self, guid: str) -> set[str]:
        return set(self.components.get(guid.upper(), set()))

    def unreferenced(self) -> list[str]:
        """GUIDs of components that no Feature or FeatureRef lists, in definition order."""
        return [guid for guid, features in self.components.items() if not features]

    def merge(self, other: InstallerDefinitions) -> InstallerDefinitions:
        merged = InstallerDefinitions(
            components={guid: set(features) for guid, features in self.components.items()},
            component_sources=dict(self.component_sources),
            component_ids=dict(self.component_ids),
            referenced_files=list(self.referenced_files),
        )
        for guid, features in other.components.items():
            merged.components.setdefault(guid, set()).update(features)
        for guid, source in other.component_sources.items():
            merged.component_sources.setdefault(guid, source)
        for guid, component_id in other.component_ids.items():
            merged.component_ids.setdefault(guid, component_id)
        merged.referenced_files.extend(other.referenced_files)
        return merged


def definitions_from_records(
    records: list[FileRecord], declared_features: tuple[str, ...]
) -> InstallerDefinitions:
    """Definitions for auto-harvested files; marks each emitted record as used."""
    declared = set(declared_features)
    definitions = InstallerDefinitions()
    for record in records:
        if not record.features or record.only_in_unused_features or not record.component_guid:
            continue
        definitions.add_component(record.component_guid, "harvested files")
        record.used_in_component = True
        for feature in record.features:
            if feature in declared:
                definitions.add_feature_ref(record.component_guid, feature)
                record.used_in_feature_ref = True
    return definitions


def load_installer_sources(project_root: Path, sources: tuple[str, ...]) -> InstallerDefinitions:
    """Parse hand-written WiX sources for components, feature refs and shipped files."""
    definitions = InstallerDefinitions()
    component_guids: dict[str, str] = {}
    feature_refs: list[tuple[str, str]] = []
    for source in sources:
        path = project_root / source
        if not path.is_file():
            raise ValueError(f"Installer source '{source}' does not exist.")
        try:
            tree = ET.parse(path)
        except ET.ParseError as exc:
            raise ValueError(f"Installer source '{source}' is not valid XML: {exc}") from exc
        _collect(tree.getroot(), source, definitions, component_guids, feature_refs)

    for component_id, feature in feature_refs:
        guid = component_guids.get(component_id)
        if guid is not None:
            definitions.add_feature_ref(guid, feature)
    return definitions


def _collect(
    root: ET.Element,
    source: str,
    definitions: InstallerDefinitions,
    component_guids: dict[str, str],
    feature_refs: list[tuple[str, str]],
) -> None:
    for element in root.iter():
        tag = _local_name(element.tag)
        if tag == "Component":
            guid = element.get("Guid", "")
            component_id = element.get("Id", "")
            if guid and guid != "*":
                definitions.add_component(guid, source, component_id)
                if component_id:
                    component_guids[component_id] = guid.upper()
            for child in element.iter():
                if _local_name(child.tag) != "File":
                    continue
                file_source = child.get("Source") or child.get("src")
                if file_source:
                    definitions.referenced_files.append((manual_source_path(file_source), source))
        elif tag in ("Feature", "FeatureRef"):
            feature = element.get("Id", "")
            for child in element:
                if _local_name(child.tag) == "ComponentRef" and child.get("Id"):
                    feature_refs.append((child.get("Id", ""), feature))


def manual_source_path(file_source: str) -> str:
    """Reduce a WiX File/@Source to a project-relative fragment.

    Leading relative and variable segments are dropped. A build configuration
    variable such as `$(var.Configuration)` becomes the `${config}` placeholder.
    """
    parts = normalize_separators(file_source).split("/")
    while parts and (
        parts[0] in ("..", ".") or ("$(" in parts[0] and not _CONFIG_VARIABLE.match(parts[0]))
    ):
        parts.pop(0)
    return "/".join(BUILD_TYPE_PLACEHOLDER if _CONFIG_VARIABLE.match(part) else part for part in parts)


def _local_name(tag: object) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]
