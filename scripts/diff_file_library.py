#!/usr/bin/env python3
"""Compare two File Library ledgers and render a deterministic markdown summary."""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path

from filelib.library import FileLibrary, LibraryEntry, LibrarySchemaUnsupportedError
from filelib.paths import library_key

COMPARED_FIELDS = ("component_guid", "patch_group", "features", "version", "directory_id")


@dataclass(frozen=True, slots=True)
class EntryChange:
    """One ledger path whose recorded identity or snapshot differs."""

    path: str
    field_name: str
    before: str
    after: str


@dataclass(frozen=True, slots=True)
class LibraryDiff:
    added: tuple[str, ...]
    removed: tuple[str, ...]
    changed: tuple[EntryChange, ...]


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("before", help="Older ledger document (e.g. from the last release).")
    parser.add_argument("after", help="Newer ledger document.")
    parser.add_argument(
        "--output",
        default=None,
        help="Optional output path for the generated markdown.",
    )
    parser.add_argument(
        "--print",
        action="store_true",
        help="Print generated markdown to stdout.",
    )
    return parser.parse_args(argv)


def _field_text(entry: LibraryEntry, field_name: str) -> str:
    value = getattr(entry, field_name)
    if isinstance(value, tuple):
        return ", ".join(value)
    return str(value)


def diff_libraries(before: FileLibrary, after: FileLibrary) -> LibraryDiff:
    """Paths added, removed, and per-field changes for paths present in both."""
    before_by_key = {library_key(entry.path): entry for entry in before.entries}
    after_by_key = {library_key(entry.path): entry for entry in after.entries}
    added = sorted(entry.path for key, entry in after_by_key.items() if key not in before_by_key)
    removed = sorted(entry.path for key, entry in before_by_key.items() if key not in after_by_key)
    changed: list[EntryChange] = []
    for key in sorted(set(before_by_key) & set(after_by_key)):
        old = before_by_key[key]
        new = after_by_key[key]
        for field_name in COMPARED_FIELDS:
            old_text = _field_text(old, field_name)
            new_text = _field_text(new, field_name)
            if old_text != new_text:
                changed.append(
                    EntryChange(path=new.path, field_name=field_name, before=old_text, after=new_text)
                )
    return LibraryDiff(added=tuple(added), removed=tuple(removed), changed=tuple(changed))


def render_markdown(diff: LibraryDiff, *, before_name: str, after_name: str) -> str:
    """Render the diff as markdown; identical ledgers produce a one-line body."""
    lines = [
        "# File Library Diff",
        "",
        f"- before: `{before_name}`",
        f"- after: `{after_name}`",
        f"- added: `{len(diff.added)}`",
        f"- removed: `{len(diff.removed)}`",
        f"- changed: `{len(diff.changed)}`",
        "",
    ]
    if not diff.added and not diff.removed and not diff.changed:
        lines.extend(["No differences.", ""])
        return "\n".join(lines).rstrip() + "\n"
    if diff.added:
        lines.extend(["## Added", ""])
        lines.extend(f"- `{path}`" for path in diff.added)
        lines.append("")
    if diff.removed:
        lines.extend(["## Removed", ""])
        lines.extend(f"- `{path}`" for path in diff.removed)
        lines.append("")
    if diff.changed:
        lines.extend(["## Changed", ""])
        for change in diff.changed:
            lines.append(
                f"- `{change.path}` {change.field_name}: `{change.before}` -> `{change.after}`"
            )
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    before_path = Path(args.before)
    after_path = Path(args.after)
    try:
        before = FileLibrary.load(before_path)
        after = FileLibrary.load(after_path)
    except LibrarySchemaUnsupportedError as error:
        print(
            f"Stored ledger schema {error.found} is unsupported; expected {error.expected}.",
            file=sys.stderr,
        )
        return 2
    except ValueError as error:
        print(str(error), file=sys.stderr)
        return 2
    markdown = render_markdown(
        diff_libraries(before, after), before_name=before_path.name, after_name=after_path.name
    )
    if args.print or not args.output:
        print(markdown, end="")
    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(markdown, encoding="utf-8")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
