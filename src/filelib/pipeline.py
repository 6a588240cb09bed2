"""One File Library run: walk, filter, merge, classify, synchronize, verify."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from pathlib import Path

from filelib.catalog import (
    DirectoryNode,
    FileRecord,
    OmissionList,
    duplicates_report,
    find_near_duplicates,
    merge_all,
    walk_roots,
)
from filelib.catalog.walker import resolve_root_path
from filelib.classify import Classification, build_cabinet_mappings, classify, sanity_checks
from filelib.integrity import (
    check_unreferenced_components,
    definitions_from_records,
    load_installer_sources,
    verify,
)
from filelib.library import (
    FileChanges,
    FileLibrary,
    SyncResult,
    file_changes,
    record_file_changes,
    synchronize,
)
from filelib.paths import parameterize_build_type
from filelib.reporting import SEVERITY_WARNING, Finding, JsonlRunLogger
from filelib.run import RunContext

FILES_DOCUMENT = "files.json"
REPORT_FILE = "report.txt"
CHANGES_FILE = "file_changes.txt"
RUN_LOG_FILE = "run.jsonl"


@dataclass(slots=True, frozen=True)
class MissingSourceRootError(Exception):
    """Raised when a required source root is not on disk."""

    root: str
    path: str


@dataclass(slots=True)
class PipelineResult:
    """Everything a run produced, plus where it was written."""

    run_id: str
    classification: Classification
    omitted: list[FileRecord]
    rejected: list[FileRecord]
    sync: SyncResult
    changes: FileChanges
    outputs: dict[str, Path] = field(default_factory=dict)

    @property
    def emitted(self) -> list[FileRecord]:
        return self.classification.emitted()


def default_run_logger(context: RunContext) -> JsonlRunLogger:
    return JsonlRunLogger(path=context.config.output_dir / RUN_LOG_FILE)


def run_pipeline(
    context: RunContext,
    logger: JsonlRunLogger | None = None,
    dry_run: bool = False,
) -> PipelineResult:
    """Run every stage once against ``context``; the context cannot be reused."""
    context.claim("pipeline")
    run_logger = logger or default_run_logger(context)
    try:
        return _run_stages(context, run_logger, dry_run)
    except Exception as exc:
        run_logger.log(context.run_id, "pipeline", False, {"error": type(exc).__name__})
        raise


def _run_stages(context: RunContext, logger: JsonlRunLogger, dry_run: bool) -> PipelineResult:
    config = context.config
    report = context.report
    project_root = config.project_root

    started = time.perf_counter()
    cabinets = build_cabinet_mappings(config.cabinets)
    manual_definitions = load_installer_sources(project_root, config.installer_sources)
    omissions = OmissionList.from_config(config.omissions)
    for fragment, source in manual_definitions.referenced_files:
        if fragment:
            omissions.add_manual(parameterize_build_type(fragment, config.build_type), source)
    for root in config.roots:
        root_path = resolve_root_path(project_root, root, config.build_type)
        if root.required and not root_path.is_dir():
            raise MissingSourceRootError(root=root.name, path=str(root_path))
    _log_stage(
        context,
        logger,
        "configure",
        started,
        roots=len(config.roots),
        installer_sources=len(config.installer_sources),
        omissions=len(omissions),
    )

    started = time.perf_counter()
    walk_profile: dict[str, object] = {}
    tree, local_trees = walk_roots(
        project_root,
        config.roots,
        config.build_type,
        redirections=config.redirections,
        profile=walk_profile,
    )
    context.profile["walk"] = walk_profile
    _log_stage(context, logger, "walk", started, **walk_profile)

    started = time.perf_counter()
    kept_sets: list[list[FileRecord]] = []
    omitted: list[FileRecord] = []
    for local_tree in local_trees:
        kept, dropped = omissions.filter(local_tree.records)
        kept_sets.append(kept)
        omitted.extend(dropped)
    all_kept = [record for kept in kept_sets for record in kept]
    for message in find_near_duplicates(all_kept, omitted, config.omissions.suppress_similarity):
        report.add_finding(Finding(severity=SEVERITY_WARNING, code="near-duplicate", message=message))
    _log_stage(context, logger, "filter", started, kept=len(all_kept), omitted=len(omitted))

    started = time.perf_counter()
    merged = merge_all(kept_sets)
    for warning in merged.warnings:
        report.add_finding(Finding(severity=SEVERITY_WARNING, code="merge-conflict", message=warning))
    for line in duplicates_report(merged.rejected):
        report.add_line(line)
    _log_stage(
        context, logger, "merge", started, merged=len(merged.merged), rejected=len(merged.rejected)
    )

    started = time.perf_counter()
    classification = classify(merged.merged, config, cabinets)
    report.extend(classification.findings)
    _log_stage(
        context,
        logger,
        "classify",
        started,
        emitted=len(classification.emitted()),
        orphans=len(classification.orphans),
        unused=len(classification.unused),
    )

    started = time.perf_counter()
    library = FileLibrary.load(config.library_path)
    previous_addenda = (
        FileLibrary.load(config.addenda_path) if config.addenda_path.exists() else None
    )
    sync = synchronize(
        classification.emitted(),
        library,
        FileLibrary(config.addenda_path),
        previous_addenda=previous_addenda,
    )
    _log_stage(
        context,
        logger,
        "synchronize",
        started,
        reused=len(sync.reused),
        pending=len(sync.pending),
        minted=len(sync.minted),
        next_patch_group=sync.next_patch_group,
    )

    started = time.perf_counter()
    definitions = definitions_from_records(
        classification.records, config.features.declared
    ).merge(manual_definitions)
    report.extend(sanity_checks(classification.records))
    report.extend(check_unreferenced_components(manual_definitions))
    findings = verify(library, classification.records, definitions, config, omissions)
    report.extend(findings)
    _log_stage(
        context,
        logger,
        "verify",
        started,
        components=len(definitions.components),
        findings=len(findings),
    )

    changes = file_changes(previous_addenda, sync.addenda)
    record_file_changes(changes, report)

    started = time.perf_counter()
    result = PipelineResult(
        run_id=context.run_id,
        classification=classification,
        omitted=omitted,
        rejected=merged.rejected,
        sync=sync,
        changes=changes,
    )
    result.outputs = _write_outputs(context, tree, result, dry_run)
    _log_stage(
        context,
        logger,
        "write",
        started,
        dry_run=dry_run,
        new_files=len(changes.new),
        deleted_files=len(changes.deleted),
        **report.counts(),
    )
    return result


def _log_stage(
    context: RunContext,
    logger: JsonlRunLogger,
    stage: str,
    started: float,
    **metadata: object,
) -> None:
    elapsed = round(time.perf_counter() - started, 6)
    context.profile[f"{stage}_seconds"] = elapsed
    logger.log(context.run_id, stage, True, {**metadata, "seconds": elapsed})


def _write_outputs(
    context: RunContext,
    tree: DirectoryNode,
    result: PipelineResult,
    dry_run: bool,
) -> dict[str, Path]:
    config = context.config
    output_dir = config.output_dir
    output_dir.mkdir(parents=True, exist_ok=True)
    outputs: dict[str, Path] = {}

    files_path = output_dir / FILES_DOCUMENT
    _write_json(files_path, _files_document(context, tree, result))
    outputs["files"] = files_path

    if not dry_run:
        result.sync.addenda.save()
        outputs["addenda"] = result.sync.addenda.path

    report_path = output_dir / REPORT_FILE
    preamble = (
        f"File Library report for {config.project_root} ({config.build_type}), "
        f"run {context.run_id} started {context.started}\n"
    )
    report_path.write_text(context.report.combine(preamble, include_general=True), encoding="utf-8")
    outputs["report"] = report_path

    changes_path = output_dir / CHANGES_FILE
    changes_path.write_text(render_file_changes(result.changes), encoding="utf-8")
    outputs["changes"] = changes_path
    return outputs


def _files_document(
    context: RunContext, tree: DirectoryNode, result: PipelineResult
) -> dict[str, object]:
    directories = [
        {
            "name": node.name,
            "target_path": node.target_path,
            "directory_id": node.directory_id,
            "is_redirected": node.is_redirected,
        }
        for node in tree.iter_nodes()
        if node.contains_used_files()
    ]
    return {
        "run_id": context.run_id,
        "build_type": context.config.build_type,
        "config": context.config.to_public_dict(),
        "directories": directories,
        "files": [record.to_dict() for record in result.emitted],
    }


def _write_json(path: Path, payload: dict[str, object]) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, sort_keys=True)
        handle.write("\n")
    tmp.replace(path)


def render_file_changes(changes: FileChanges) -> str:
    """Plain-text new/deleted summary written next to the report."""
    lines: list[str] = []
    if changes.new:
        lines.append("Added files")
        lines.append("=" * len("Added files"))
        lines.extend(f"    {path}" for path in changes.new)
    else:
        lines.append("No new files.")
    lines.append("")
    if changes.deleted:
        lines.append("Deleted files")
        lines.append("=" * len("Deleted files"))
        lines.extend(f"    {path}" for path in changes.deleted)
    else:
        lines.append("No deleted files.")
    return "\n".join(lines) + "\n"
