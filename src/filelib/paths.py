"""Path normalization helpers shared by the catalog and the ledger."""

from __future__ import annotations

import hashlib
import re
from pathlib import Path
from typing import Final

WINDOWS_ABSOLUTE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[a-zA-Z]:[\\/]")
BUILD_TYPE_PLACEHOLDER: Final[str] = "${config}"
ID_MAX_LENGTH: Final[int] = 56

_VALID_ID_CHARS = frozenset("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789_.")
_VALID_ID_START_CHARS = frozenset("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz_")


def normalize_separators(path: str) -> str:
    """Return a path with forward slashes and no duplicate or leading './' segments."""
    normalized = path.replace("\\", "/").strip()
    while "//" in normalized:
        normalized = normalized.replace("//", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized.rstrip("/")


def is_absolute_style(path: str) -> bool:
    """Return True for POSIX or drive-letter absolute inputs."""
    normalized = path.replace("\\", "/")
    return normalized.startswith("/") or bool(WINDOWS_ABSOLUTE_PATTERN.match(normalized))


def parameterize_build_type(path: str, build_type: str) -> str:
    """Replace a segment equal to the build type with the ${config} placeholder."""
    lowered = build_type.lower()
    parts = normalize_separators(path).split("/")
    return "/".join(BUILD_TYPE_PLACEHOLDER if part.lower() == lowered else part for part in parts)


def expand_build_type(path: str, build_type: str) -> str:
    """Substitute the ${config} placeholder with a concrete build type."""
    return path.replace(BUILD_TYPE_PLACEHOLDER, build_type)


def library_key(path: str) -> str:
    """Case-insensitive lookup key for a relative source path."""
    return normalize_separators(path).casefold()


def relative_source_path(project_root: Path, full_path: Path, build_type: str) -> str:
    """Project-relative, build-type parameterized path used as file identity."""
    if not full_path.is_relative_to(project_root):
        return parameterize_build_type(full_path.as_posix(), build_type)
    relative = full_path.relative_to(project_root).as_posix()
    return parameterize_build_type(relative, build_type)


def md5_hex(text: str) -> str:
    """Upper-case MD5 hex digest of a UTF-8 string."""
    return hashlib.md5(text.encode("utf-8"), usedforsecurity=False).hexdigest().upper()


def make_id(name: str, unique_data: str, max_len: int = ID_MAX_LENGTH) -> str:
    """Build an installer identifier that is legal and unique for the given data."""
    candidate = "".join(char if char in _VALID_ID_CHARS else "_" for char in name)
    if not candidate or candidate[0] not in _VALID_ID_START_CHARS:
        candidate = "_" + candidate
    digest = md5_hex(unique_data)
    max_main_len = max_len - len(digest) - 1
    if len(candidate) > max_main_len:
        candidate = candidate[:max_main_len]
    return f"{candidate}.{digest}"
