"""Typed models for harvested installer files and directory trees."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

INSTALLER_ROOT_ID = "INSTALLDIR"


@dataclass(slots=True, eq=False)
class FileRecord:
    """One file considered for the installer.

    Two records are the same file when their relative source paths are equal.
    The path is already build-type parameterized by the walker.
    """

    name: str
    relative_source_path: str
    full_path: Path
    target_path: str = ""
    root: str = ""
    id: str = ""
    size: int = 0
    last_write_timestamp: str = ""
    file_version: str = ""
    content_hash: str = ""
    comment: str = ""
    component_guid: str = ""
    patch_group: int = 0
    disk_id: int = 0
    directory_id: str = ""
    features: list[str] = field(default_factory=list)
    condition: str = ""
    rejection_reason: str = ""
    only_in_unused_features: bool = False
    used_in_component: bool = False
    used_in_feature_ref: bool = False

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FileRecord):
            return NotImplemented
        return self.relative_source_path == other.relative_source_path

    def __hash__(self) -> int:
        return hash(self.relative_source_path)

    def name_matches(self, other: FileRecord) -> bool:
        """Case-insensitive file name comparison used for duplicate detection."""
        return self.name.lower() == other.name.lower()

    def add_feature(self, feature: str) -> None:
        if feature not in self.features:
            self.features.append(feature)

    def append_comment(self, text: str) -> None:
        self.comment = f"{self.comment} {text}".strip()

    def to_dict(self) -> dict[str, object]:
        """Serializable view handed to the installer source emitter."""
        return {
            "id": self.id,
            "name": self.name,
            "relative_source_path": self.relative_source_path,
            "target_path": self.target_path,
            "root": self.root,
            "size": self.size,
            "last_write_timestamp": self.last_write_timestamp,
            "file_version": self.file_version,
            "content_hash": self.content_hash,
            "comment": self.comment,
            "component_guid": self.component_guid,
            "patch_group": self.patch_group,
            "disk_id": self.disk_id,
            "directory_id": self.directory_id,
            "features": list(self.features),
            "condition": self.condition,
            "only_in_unused_features": self.only_in_unused_features,
            "used_in_component": self.used_in_component,
            "used_in_feature_ref": self.used_in_feature_ref,
        }


@dataclass(slots=True)
class DirectoryNode:
    """Installer target directory, shared by every source tree mapped onto it."""

    name: str = ""
    target_path: str = ""
    directory_id: str = ""
    is_redirected: bool = False
    children: list[DirectoryNode] = field(default_factory=list)
    files: list[FileRecord] = field(default_factory=list)

    def find_child(self, target_path: str) -> DirectoryNode | None:
        """Return the child whose target path matches case-insensitively."""
        lowered = target_path.lower()
        for child in self.children:
            if child.target_path.lower() == lowered:
                return child
        return None

    def iter_nodes(self) -> Iterator[DirectoryNode]:
        """Yield this node and all descendants depth-first."""
        yield self
        for child in self.children:
            yield from child.iter_nodes()

    def contains_used_files(self) -> bool:
        """True when any file in this subtree is assigned to a live feature."""
        for node in self.iter_nodes():
            for record in node.files:
                if record.features and not record.only_in_unused_features:
                    return True
        return False
