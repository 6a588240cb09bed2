"""Command line entrypoint."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from filelib.config import CliOverrides, load_effective_config
from filelib.library import LibrarySchemaUnsupportedError, merge_addenda
from filelib.pipeline import MissingSourceRootError, default_run_logger, run_pipeline
from filelib.run import RunContext

EXIT_OK = 0
EXIT_SERIOUS = 1
EXIT_CONFIG_ERROR = 2


def build_arg_parser() -> argparse.ArgumentParser:
    """Build the argument parser for both subcommands."""
    parser = argparse.ArgumentParser(prog="filelib")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Harvest files and reconcile them with the ledger.")
    _add_common_arguments(run)
    run.add_argument("--output-dir", required=False, default=None)
    run.add_argument("--add-orphans", action="store_true", default=None)
    run.add_argument("--skip-vcs-check", action="store_true")
    run.add_argument("--dry-run", action="store_true", help="Do not write the addenda document.")
    run.add_argument(
        "--fail-on-serious",
        action="store_true",
        help="Exit with status 1 when the report has errors.",
    )

    merge = subparsers.add_parser(
        "merge-addenda", help="Move reviewed addenda entries into the ledger."
    )
    _add_common_arguments(merge)
    return parser


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--project-root", required=False, default=".")
    parser.add_argument("--config", required=False, default=None)
    parser.add_argument("--build-type", required=False, default=None)


def main(argv: list[str] | None = None) -> int:
    """Entrypoint for the filelib command."""
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    project_root = Path(args.project_root).resolve()
    overrides = CliOverrides(
        build_type=args.build_type,
        output_dir=(
            Path(args.output_dir).resolve()
            if getattr(args, "output_dir", None) is not None
            else None
        ),
        add_orphans=getattr(args, "add_orphans", None),
        check_vcs=False if getattr(args, "skip_vcs_check", False) else None,
    )
    try:
        config = load_effective_config(
            project_root,
            config_path=Path(args.config).resolve() if args.config is not None else None,
            overrides=overrides,
        )
        if args.command == "merge-addenda":
            return _merge_addenda(config.library_path, config.addenda_path, project_root, config.build_type)
        context = RunContext(project_root=config.project_root, config=config)
        result = run_pipeline(context, default_run_logger(context), dry_run=args.dry_run)
    except LibrarySchemaUnsupportedError as error:
        print(
            f"Stored ledger schema {error.found} is unsupported; expected {error.expected}.",
            file=sys.stderr,
        )
        return EXIT_CONFIG_ERROR
    except MissingSourceRootError as error:
        print(f"Required source root '{error.root}' not found at {error.path}.", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except (ValueError, PermissionError) as error:
        print(str(error), file=sys.stderr)
        return EXIT_CONFIG_ERROR

    counts = context.report.counts()
    print(
        f"{len(result.emitted)} files, {len(result.changes.new)} new, "
        f"{len(result.changes.deleted)} deleted; "
        f"{counts['ERROR']} errors, {counts['WARNING']} warnings. "
        f"Report: {result.outputs['report']}"
    )
    if args.fail_on_serious and context.report.has_errors:
        return EXIT_SERIOUS
    return EXIT_OK


def _merge_addenda(library_path: Path, addenda_path: Path, project_root: Path, build_type: str) -> int:
    outcome = merge_addenda(library_path, addenda_path, project_root, build_type)
    for message in outcome.messages:
        print(message)
    print(f"Refreshed {outcome.refreshed} ledger entries.")
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
