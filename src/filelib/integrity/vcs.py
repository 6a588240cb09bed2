"""Version-control queries against the static source tree."""

from __future__ import annotations

import subprocess
from pathlib import Path


def _git(work_dir: Path, args: list[str]) -> str:
    try:
        completed = subprocess.run(
            ["git", *args],
            cwd=work_dir,
            check=False,
            capture_output=True,
            text=True,
        )
    except OSError as exc:
        raise RuntimeError(f"git could not be started: {exc}") from exc
    if completed.returncode != 0:
        raise RuntimeError(completed.stderr.strip() or "git command failed")
    return completed.stdout


def untracked_files(static_root: Path, excludes: tuple[str, ...] = ()) -> list[str]:
    """Files under ``static_root`` that git does not track, relative to that root.

    Raises RuntimeError when git is unavailable or the folder is not in a work tree.
    """
    if not static_root.is_dir():
        raise RuntimeError(f"{static_root} is not a directory")
    args = ["ls-files", "--others"]
    for pattern in excludes:
        args.extend(["--exclude", pattern])
    output = _git(static_root, args)
    return [line.strip() for line in output.splitlines() if line.strip()]
