"""File harvesting, filtering and cross-tree merging."""

from .filters import (
    FileHeuristics,
    FileOmission,
    HeuristicSet,
    OmissionList,
    find_near_duplicates,
    path_matches_pattern,
)
from .merge import MergeResult, duplicates_report, merge_all, merge_file_sets
from .models import INSTALLER_ROOT_ID, DirectoryNode, FileRecord
from .walker import LocalTree, merge_local_trees, walk_root, walk_roots

__all__ = [
    "DirectoryNode",
    "FileHeuristics",
    "FileOmission",
    "FileRecord",
    "HeuristicSet",
    "INSTALLER_ROOT_ID",
    "LocalTree",
    "MergeResult",
    "OmissionList",
    "duplicates_report",
    "find_near_duplicates",
    "merge_all",
    "merge_file_sets",
    "merge_local_trees",
    "path_matches_pattern",
    "walk_root",
    "walk_roots",
]
