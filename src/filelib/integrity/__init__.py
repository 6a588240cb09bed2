"""Installer definitions and patch-safety verification."""

from .definitions import (
    InstallerDefinitions,
    definitions_from_records,
    load_installer_sources,
    manual_source_path,
)
from .vcs import untracked_files
from .verifier import (
    check_entry_details,
    check_entry_present,
    check_feature_membership,
    check_unreferenced_components,
    check_untracked_static_files,
    parse_version,
    verify,
)

__all__ = [
    "InstallerDefinitions",
    "check_entry_details",
    "check_entry_present",
    "check_feature_membership",
    "check_unreferenced_components",
    "check_untracked_static_files",
    "definitions_from_records",
    "load_installer_sources",
    "manual_source_path",
    "parse_version",
    "untracked_files",
    "verify",
]
