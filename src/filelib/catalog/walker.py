"""Two-phase source tree walk: independent per-root trees, then a deterministic merge."""

from __future__ import annotations

import hashlib
import os
import struct
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from filelib.catalog.models import INSTALLER_ROOT_ID, DirectoryNode, FileRecord
from filelib.config import RedirectionConfig, RootConfig
from filelib.paths import (
    expand_build_type,
    make_id,
    normalize_separators,
    parameterize_build_type,
    relative_source_path,
)

VCS_DIR_NAMES = frozenset({".git", ".svn", ".hg"})
VERSIONED_EXTENSIONS = frozenset({".dll", ".exe", ".ocx", ".sys"})
_FIXED_FILE_INFO_SIGNATURE = b"\xbd\x04\xef\xfe"
_HASH_CHUNK_BYTES = 1024 * 128


@dataclass(slots=True, frozen=True)
class WalkProfile:
    """Deterministic diagnostics for one walk over all roots."""

    roots_walked: int
    roots_missing: int
    total_files: int
    skipped_files: int
    vcs_dirs_skipped: int
    total_seconds: float


@dataclass(slots=True)
class LocalTree:
    """Result of walking one root in isolation."""

    root: RootConfig
    exists: bool
    node: DirectoryNode
    records: list[FileRecord] = field(default_factory=list)
    skipped_files: int = 0
    vcs_dirs_skipped: int = 0


def resolve_root_path(project_root: Path, root: RootConfig, build_type: str) -> Path:
    """Absolute path of a configured root with the build type substituted."""
    expanded = Path(expand_build_type(root.path, build_type))
    if expanded.is_absolute():
        return expanded
    return project_root / expanded


def walk_roots(
    project_root: Path,
    roots: tuple[RootConfig, ...],
    build_type: str,
    redirections: tuple[RedirectionConfig, ...] = (),
    max_workers: int | None = None,
    profile: dict[str, object] | None = None,
) -> tuple[DirectoryNode, list[LocalTree]]:
    """Walk every root in parallel, then merge the local trees in root order."""
    started = time.perf_counter()
    resolved_root = project_root.resolve()
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [
            executor.submit(walk_root, resolved_root, root, build_type, redirections)
            for root in roots
        ]
        trees = [future.result() for future in futures]
    merged = merge_local_trees(trees)

    if profile is not None:
        payload = WalkProfile(
            roots_walked=sum(1 for tree in trees if tree.exists),
            roots_missing=sum(1 for tree in trees if not tree.exists),
            total_files=sum(len(tree.records) for tree in trees),
            skipped_files=sum(tree.skipped_files for tree in trees),
            vcs_dirs_skipped=sum(tree.vcs_dirs_skipped for tree in trees),
            total_seconds=time.perf_counter() - started,
        )
        profile.update(asdict(payload))
    return merged, trees


def walk_root(
    project_root: Path,
    root: RootConfig,
    build_type: str,
    redirections: tuple[RedirectionConfig, ...] = (),
) -> LocalTree:
    """Collect one root into its own directory tree; a missing root yields an empty tree."""
    installer_root = DirectoryNode(name=INSTALLER_ROOT_ID, directory_id=INSTALLER_ROOT_ID)
    tree = LocalTree(root=root, exists=False, node=installer_root)
    base_path = resolve_root_path(project_root, root, build_type)
    if not base_path.is_dir():
        return tree
    tree.exists = True

    redirect_map = {
        parameterize_build_type(item.folder, build_type).casefold(): item.installer_dir
        for item in redirections
    }
    top = _target_chain(installer_root, normalize_separators(root.target))

    stack: list[tuple[Path, DirectoryNode, bool]] = [(base_path, top, False)]
    while stack:
        folder, node, redirected = stack.pop()
        try:
            with os.scandir(folder) as entries:
                ordered_entries = sorted(entries, key=lambda item: item.name)
        except OSError:
            continue
        subfolders: list[tuple[Path, DirectoryNode, bool]] = []
        for entry in ordered_entries:
            full_path = Path(entry.path)
            if entry.is_dir(follow_symlinks=False):
                if entry.name in VCS_DIR_NAMES:
                    tree.vcs_dirs_skipped += 1
                    continue
                child_target = _join_target(node.target_path, entry.name)
                child = node.find_child(child_target)
                if child is None:
                    child = DirectoryNode(target_path=child_target)
                    node.children.append(child)
                child_redirected = _name_node(
                    child,
                    entry.name,
                    relative_source_path(project_root, full_path, build_type),
                    redirect_map,
                    redirected,
                )
                subfolders.append((full_path, child, child_redirected))
                continue
            if not entry.is_file(follow_symlinks=False):
                continue
            record = build_file_record(project_root, full_path, node, root, build_type)
            if record is None:
                tree.skipped_files += 1
                continue
            node.files.append(record)
            tree.records.append(record)
        stack.extend(reversed(subfolders))
    return tree


def merge_local_trees(trees: list[LocalTree]) -> DirectoryNode:
    """Merge per-root trees into one installer tree, keyed by case-insensitive target path."""
    merged = DirectoryNode(name=INSTALLER_ROOT_ID, directory_id=INSTALLER_ROOT_ID)
    for tree in trees:
        _merge_node(merged, tree.node)
    return merged


def _merge_node(target: DirectoryNode, source: DirectoryNode) -> None:
    for record in source.files:
        record.directory_id = target.directory_id
        target.files.append(record)
    for child in source.children:
        existing = target.find_child(child.target_path)
        if existing is None:
            target.children.append(child)
            continue
        _merge_node(existing, child)


def _target_chain(installer_root: DirectoryNode, target: str) -> DirectoryNode:
    node = installer_root
    if not target:
        return node
    for segment in target.split("/"):
        child_target = _join_target(node.target_path, segment)
        child = node.find_child(child_target)
        if child is None:
            child = DirectoryNode(
                name=segment,
                target_path=child_target,
                directory_id=make_id(segment, child_target),
            )
            node.children.append(child)
        node = child
    return node


def _name_node(
    node: DirectoryNode,
    folder_name: str,
    folder_source_path: str,
    redirect_map: dict[str, str],
    parent_redirected: bool,
) -> bool:
    """Fill in node naming; returns whether this subtree is under a redirection."""
    redirection = redirect_map.get(folder_source_path.casefold())
    if redirection is not None and not parent_redirected:
        node.name = redirection
        node.directory_id = redirection
        node.is_redirected = True
        return True
    if not node.name:
        node.name = folder_name
        node.directory_id = make_id(folder_name, node.target_path)
    return parent_redirected


def _join_target(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


def build_file_record(
    project_root: Path,
    full_path: Path,
    node: DirectoryNode,
    root: RootConfig,
    build_type: str,
) -> FileRecord | None:
    """Stat, hash and version one file; None when it vanished or cannot be read."""
    try:
        stat = full_path.stat()
        content_hash, file_version = hash_and_version(full_path)
    except OSError:
        return None
    relative = relative_source_path(project_root, full_path, build_type)
    return FileRecord(
        name=full_path.name,
        relative_source_path=relative,
        full_path=full_path,
        target_path=_join_target(node.target_path, full_path.name),
        root=root.name,
        id=make_id(full_path.name, relative),
        size=stat.st_size,
        last_write_timestamp=format_timestamp(stat.st_mtime),
        file_version=file_version,
        content_hash=content_hash,
        comment=f"[{root.name}]",
        directory_id=node.directory_id,
    )


def format_timestamp(epoch_seconds: float) -> str:
    """ISO-8601 UTC timestamp with millisecond precision."""
    return (
        datetime.fromtimestamp(epoch_seconds, tz=UTC)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def hash_and_version(path: Path) -> tuple[str, str]:
    """SHA-256 of the file plus its four-part file version, if it carries one."""
    if path.suffix.lower() not in VERSIONED_EXTENSIONS:
        return sha256_file(path), ""
    data = path.read_bytes()
    return hashlib.sha256(data).hexdigest(), read_file_version(data)


def sha256_file(path: Path) -> str:
    """Compute SHA-256 hash in deterministic chunked reads."""
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        while True:
            chunk = handle.read(_HASH_CHUNK_BYTES)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def read_file_version(data: bytes) -> str:
    """Extract 'major.minor.build.private' from a PE VS_FIXEDFILEINFO block."""
    if not data.startswith(b"MZ"):
        return ""
    offset = data.find(_FIXED_FILE_INFO_SIGNATURE)
    if offset < 0 or offset + 16 > len(data):
        return ""
    _, _, version_ms, version_ls = struct.unpack_from("<IIII", data, offset)
    return (
        f"{version_ms >> 16}.{version_ms & 0xFFFF}."
        f"{version_ls >> 16}.{version_ls & 0xFFFF}"
    )
