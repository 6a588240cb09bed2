"""Feature classification driven by a declarative rule table."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from itertools import combinations

from filelib.catalog.filters import FileHeuristics, HeuristicSet
from filelib.catalog.models import FileRecord
from filelib.classify.cabinets import CabinetMapping, disk_id_for
from filelib.config import FileLibConfig
from filelib.reporting import SEVERITY_INFO, SEVERITY_WARNING, Finding


@dataclass(slots=True, frozen=True)
class CategoryRule:
    """One evaluated row of the rule table, with templates already expanded."""

    name: str
    feature: str
    heuristics: FileHeuristics
    exclusive: bool = True
    roots: tuple[str, ...] = ()

    def applies_to(self, record: FileRecord) -> bool:
        if self.roots and record.root not in self.roots:
            return False
        return self.heuristics.is_file_included(record.relative_source_path)


@dataclass(slots=True)
class Classification:
    """Classifier output: the classified records plus everything worth reporting."""

    records: list[FileRecord]
    orphans: list[FileRecord] = field(default_factory=list)
    unused: list[FileRecord] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)

    def emitted(self) -> list[FileRecord]:
        """Records that go on to installer-source emission."""
        return [
            record
            for record in self.records
            if record.features and not record.only_in_unused_features
        ]


def build_rule_table(config: FileLibConfig) -> list[CategoryRule]:
    """Expand configured categories into concrete rules, in evaluation order."""
    table: list[CategoryRule] = []
    for category in config.categories:
        heuristics = FileHeuristics(
            inclusions=HeuristicSet.of(category.include),
            exclusions=HeuristicSet.of(category.exclude),
        )
        if not category.localized:
            table.append(
                CategoryRule(
                    name=category.name,
                    feature=category.feature,
                    heuristics=heuristics,
                    exclusive=category.exclusive,
                    roots=category.roots,
                )
            )
            continue
        for language in config.languages:
            table.append(
                CategoryRule(
                    name=f"{category.name}:{language.folder}",
                    feature=category.feature.replace("{0}", language.name),
                    heuristics=heuristics.with_template(language.folder),
                    exclusive=category.exclusive,
                    roots=category.roots,
                )
            )
    return table


def classify(
    records: list[FileRecord],
    config: FileLibConfig,
    cabinets: dict[str, CabinetMapping],
    rule_table: list[CategoryRule] | None = None,
) -> Classification:
    """Assign features, install conditions and cabinets to every record."""
    rules = rule_table if rule_table is not None else build_rule_table(config)
    features_config = config.features
    declared = set(features_config.declared)
    allowed_overlaps = {frozenset(pair) for pair in features_config.allowed_overlaps}
    ordered = sorted(records, key=lambda item: item.relative_source_path)
    result = Classification(records=ordered)

    for record in ordered:
        path = record.relative_source_path
        forced = _forced_feature(path, features_config.force)
        if forced is not None:
            record.features = [forced]
            record.append_comment(f"(forced into {forced})")
        else:
            for rule in rules:
                if not rule.applies_to(record):
                    continue
                record.add_feature(rule.feature)
                if rule.exclusive:
                    break
            if not record.features and features_config.default:
                record.add_feature(features_config.default)
        record.condition = _condition_for(path, config.conditions)

        if not record.features:
            result.orphans.append(record)
            if features_config.add_orphans:
                record.add_feature(features_config.catch_all)
                record.append_comment("(orphan added to catch-all feature)")
                result.findings.append(
                    Finding(
                        severity=SEVERITY_INFO,
                        code="orphan-added",
                        message=f"{path} had no feature and was added to {features_config.catch_all}.",
                        path=path,
                    )
                )
            else:
                result.findings.append(
                    Finding(
                        severity=SEVERITY_WARNING,
                        code="orphan",
                        message=f"{path} matches no feature and is left out of the installer.",
                        path=path,
                    )
                )
                continue

        undeclared = [name for name in record.features if name not in declared]
        record.only_in_unused_features = bool(undeclared)
        if undeclared:
            result.unused.append(record)
            result.findings.append(
                Finding(
                    severity=SEVERITY_WARNING,
                    code="undeclared-feature",
                    message=(
                        f"{path} is assigned to undeclared feature(s) "
                        f"{', '.join(undeclared)} and is left out of the installer."
                    ),
                    path=path,
                )
            )
        record.disk_id = disk_id_for(record.name, record.features, cabinets)

        if len(record.features) > 1 and not _overlap_allowed(record.features, allowed_overlaps):
            result.findings.append(
                Finding(
                    severity=SEVERITY_WARNING,
                    code="multiple-features",
                    message=f"{path} belongs to more than one feature: {', '.join(record.features)}.",
                    path=path,
                )
            )

    result.findings.extend(misplacement_findings(ordered, config))
    return result


def _forced_feature(path: str, force: dict[str, tuple[str, ...]]) -> str | None:
    lowered = path.lower()
    for feature, fragments in force.items():
        if any(fragment.replace("\\", "/").lower() in lowered for fragment in fragments):
            return feature
    return None


def _condition_for(path: str, conditions: dict[str, str]) -> str:
    lowered = path.lower()
    for fragment, condition in conditions.items():
        if fragment.replace("\\", "/").lower() in lowered:
            return condition
    return ""


def _overlap_allowed(features: list[str], allowed: set[frozenset[str]]) -> bool:
    return all(frozenset(pair) in allowed for pair in combinations(features, 2))


def misplacement_findings(records: list[FileRecord], config: FileLibConfig) -> list[Finding]:
    """Warn about files whose names suggest a feature they were not assigned to."""
    findings: list[Finding] = []
    for check in config.misplacement_checks:
        patterns = [re.compile(expression, re.IGNORECASE) for expression in check.name_regexes]
        exceptions = [fragment.replace("\\", "/").lower() for fragment in check.except_paths]
        for record in records:
            if check.feature in record.features or not record.features:
                continue
            if not any(pattern.search(record.name) for pattern in patterns):
                continue
            lowered = record.relative_source_path.lower()
            if any(fragment in lowered for fragment in exceptions):
                continue
            findings.append(
                Finding(
                    severity=SEVERITY_WARNING,
                    code="possible-misplacement",
                    message=(
                        f"{record.relative_source_path} looks like a {check.feature} file but is in "
                        f"{', '.join(record.features)}."
                    ),
                    path=record.relative_source_path,
                )
            )
    return findings


def sanity_checks(records: list[FileRecord]) -> list[Finding]:
    """Post-emission checks that every earmarked file really made it into the installer."""
    findings: list[Finding] = []
    for record in records:
        if not record.features or record.only_in_unused_features:
            continue
        path = record.relative_source_path
        if not record.used_in_component:
            findings.append(
                Finding(
                    severity=SEVERITY_WARNING,
                    code="not-emitted",
                    message=f"{path} was earmarked for the installer but has no component.",
                    path=path,
                )
            )
            continue
        if not record.used_in_feature_ref:
            findings.append(
                Finding(
                    severity=SEVERITY_WARNING,
                    code="no-feature-ref",
                    message=f"{path} has a component that no feature references.",
                    path=path,
                )
            )
    return findings
