"""Configuration loading and deterministic merge order."""

from __future__ import annotations

import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

CONFIG_FILE_NAME = "filelib.toml"
ROOT_KINDS = ("built", "static")

DEFAULT_BUILD_TYPE = "Release"
DEFAULT_OUTPUT_DIR = ".filelib"
DEFAULT_LIBRARY_FILE = "FileLibrary.json"
DEFAULT_ADDENDA_FILE = "FileLibraryAddenda.json"
DEFAULT_UNTRACKED_EXCLUDES = ("Helps", "Movies")
DEFAULT_CABINET_KEY = "default"

RULE_CONTAINS = "contains"
RULE_ENDS = "ends"
RULE_KINDS = (RULE_CONTAINS, RULE_ENDS)


@dataclass(slots=True, frozen=True)
class HeuristicRule:
    """A single path predicate: substring containment or suffix match."""

    kind: str
    pattern: str

    def matches(self, path: str) -> bool:
        if self.kind == RULE_ENDS:
            return path.endswith(self.pattern)
        return self.pattern in path


@dataclass(slots=True, frozen=True)
class CabinetConfig:
    """Raw cabinet assignment; validated by CabinetMapping.parse."""

    index: str = ""
    indexes: str = ""
    divisions: str = ""


@dataclass(slots=True, frozen=True)
class RootConfig:
    """One source tree harvested into the installer."""

    name: str
    path: str
    target: str = ""
    kind: str = "built"
    required: bool = True


@dataclass(slots=True, frozen=True)
class LanguageConfig:
    """Localization language and the folder code its resources build into."""

    name: str
    folder: str


@dataclass(slots=True, frozen=True)
class CategoryConfig:
    """One row of the classification rule table."""

    name: str
    feature: str
    include: tuple[HeuristicRule, ...]
    exclude: tuple[HeuristicRule, ...] = ()
    localized: bool = False
    exclusive: bool = True
    roots: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class FeaturesConfig:
    """Declared features and classification fallbacks."""

    declared: tuple[str, ...]
    default: str
    catch_all: str
    add_orphans: bool = False
    allowed_overlaps: tuple[tuple[str, str], ...] = ()
    force: dict[str, tuple[str, ...]] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class OmissionsConfig:
    """Path fragments of files that never ship."""

    patterns: tuple[str, ...] = ()
    case_sensitive_patterns: tuple[str, ...] = ()
    suppress_similarity: tuple[tuple[str, str], ...] = ()


@dataclass(slots=True, frozen=True)
class RedirectionConfig:
    """Source folder installed under a different installer directory."""

    folder: str
    installer_dir: str


@dataclass(slots=True, frozen=True)
class LedgerConfig:
    library: str = DEFAULT_LIBRARY_FILE
    addenda: str = DEFAULT_ADDENDA_FILE


@dataclass(slots=True, frozen=True)
class IntegrityConfig:
    """Allow-lists and switches for the integrity verifier."""

    version_zero_allowed: tuple[str, ...] = ()
    non_versioned_allowed: tuple[str, ...] = ()
    untracked_excludes: tuple[str, ...] = DEFAULT_UNTRACKED_EXCLUDES
    check_vcs: bool = True


@dataclass(slots=True, frozen=True)
class MisplacementCheck:
    """Warn when a file name looks like it belongs to a feature it is not in."""

    feature: str
    name_regexes: tuple[str, ...]
    except_paths: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class FileLibConfig:
    """Fully merged configuration for one project tree."""

    project_root: Path
    build_type: str
    output_dir: Path
    roots: tuple[RootConfig, ...]
    languages: tuple[LanguageConfig, ...]
    features: FeaturesConfig
    categories: tuple[CategoryConfig, ...]
    omissions: OmissionsConfig
    redirections: tuple[RedirectionConfig, ...]
    conditions: dict[str, str]
    cabinets: dict[str, CabinetConfig]
    ledger: LedgerConfig
    installer_sources: tuple[str, ...]
    integrity: IntegrityConfig
    misplacement_checks: tuple[MisplacementCheck, ...] = ()

    @property
    def library_path(self) -> Path:
        return self.project_root / self.ledger.library

    @property
    def addenda_path(self) -> Path:
        return self.project_root / self.ledger.addenda

    def to_public_dict(self) -> dict[str, object]:
        """Return a serializable config snapshot for the files document."""
        return {
            "project_root": str(self.project_root),
            "build_type": self.build_type,
            "output_dir": str(self.output_dir),
            "roots": [
                {"name": root.name, "path": root.path, "target": root.target, "kind": root.kind}
                for root in self.roots
            ],
            "languages": [language.name for language in self.languages],
            "features": {
                "declared": list(self.features.declared),
                "default": self.features.default,
                "catch_all": self.features.catch_all,
                "add_orphans": self.features.add_orphans,
            },
            "categories": [category.name for category in self.categories],
            "ledger": {"library": self.ledger.library, "addenda": self.ledger.addenda},
            "installer_sources": list(self.installer_sources),
            "check_vcs": self.integrity.check_vcs,
        }


@dataclass(slots=True, frozen=True)
class CliOverrides:
    """Optional startup overrides applied at highest precedence."""

    build_type: str | None = None
    output_dir: Path | None = None
    add_orphans: bool | None = None
    check_vcs: bool | None = None


def default_config(project_root: Path) -> FileLibConfig:
    """Build default config for a given project root."""
    resolved_root = project_root.resolve()
    return FileLibConfig(
        project_root=resolved_root,
        build_type=DEFAULT_BUILD_TYPE,
        output_dir=resolved_root / DEFAULT_OUTPUT_DIR,
        roots=(
            RootConfig(name="built", path="Output/${config}", kind="built"),
            RootConfig(name="static", path="DistFiles", kind="static"),
        ),
        languages=(),
        features=FeaturesConfig(declared=("Core",), default="Core", catch_all="Core"),
        categories=(),
        omissions=OmissionsConfig(),
        redirections=(),
        conditions={},
        cabinets={DEFAULT_CABINET_KEY: CabinetConfig(index="1")},
        ledger=LedgerConfig(),
        installer_sources=(),
        integrity=IntegrityConfig(),
    )


def load_config_file(config_path: Path) -> dict[str, object]:
    """Load an optional filelib.toml document."""
    if not config_path.exists():
        return {}
    with config_path.open("rb") as handle:
        payload = tomllib.load(handle)
    if not isinstance(payload, dict):
        raise ValueError(f"{config_path.name} must contain a top-level table.")
    return payload


def _get_table(payload: dict[str, object], key: str) -> dict[str, object]:
    value = payload.get(key, {})
    if not isinstance(value, dict):
        raise ValueError(f"Config section '{key}' must be a table.")
    return value


def _get_table_array(payload: dict[str, object], key: str) -> list[dict[str, object]]:
    value = payload.get(key, [])
    if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
        raise ValueError(f"Config section '{key}' must be an array of tables.")
    return value


def _tuple_of_strings(value: object, section: str, field_name: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ValueError(f"Config field '{section}.{field_name}' must be a list of strings.")
    output: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"Config field '{section}.{field_name}' must contain only strings.")
        output.append(item)
    return tuple(output)


def _required_string(table: dict[str, object], section: str, field_name: str) -> str:
    value = table.get(field_name)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Config field '{section}.{field_name}' must be a non-empty string.")
    return value


def _optional_string(table: dict[str, object], section: str, field_name: str, default: str) -> str:
    value = table.get(field_name)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ValueError(f"Config field '{section}.{field_name}' must be a string.")
    return value


def _optional_bool(table: dict[str, object], section: str, field_name: str, default: bool) -> bool:
    value = table.get(field_name)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValueError(f"Config field '{section}.{field_name}' must be a boolean.")
    return value


def _string_pairs(value: object, section: str, field_name: str) -> tuple[tuple[str, str], ...]:
    if not isinstance(value, list):
        raise ValueError(f"Config field '{section}.{field_name}' must be a list of string pairs.")
    pairs: list[tuple[str, str]] = []
    for item in value:
        if (
            not isinstance(item, list)
            or len(item) != 2
            or not all(isinstance(part, str) for part in item)
        ):
            raise ValueError(f"Config field '{section}.{field_name}' must be a list of string pairs.")
        pairs.append((item[0], item[1]))
    return tuple(pairs)


def _parse_rules(value: object, section: str, field_name: str) -> tuple[HeuristicRule, ...]:
    if not isinstance(value, list):
        raise ValueError(f"Config field '{section}.{field_name}' must be a list of rule tables.")
    rules: list[HeuristicRule] = []
    for item in value:
        if not isinstance(item, dict) or len(item) != 1:
            raise ValueError(
                f"Config field '{section}.{field_name}' rules must have exactly one of "
                f"{', '.join(RULE_KINDS)}."
            )
        kind, pattern = next(iter(item.items()))
        if kind not in RULE_KINDS:
            raise ValueError(f"Config field '{section}.{field_name}' has unknown rule kind '{kind}'.")
        if not isinstance(pattern, str) or not pattern:
            raise ValueError(f"Config field '{section}.{field_name}' rule patterns must be non-empty strings.")
        rules.append(HeuristicRule(kind=kind, pattern=pattern))
    return tuple(rules)


def _parse_roots(payload: dict[str, object], base: FileLibConfig) -> tuple[RootConfig, ...]:
    if "roots" not in payload:
        return base.roots
    roots: list[RootConfig] = []
    seen: set[str] = set()
    for position, table in enumerate(_get_table_array(payload, "roots")):
        section = f"roots[{position}]"
        name = _required_string(table, section, "name")
        if name in seen:
            raise ValueError(f"Config field '{section}.name' duplicates root '{name}'.")
        seen.add(name)
        kind = _optional_string(table, section, "kind", "built")
        if kind not in ROOT_KINDS:
            raise ValueError(f"Config field '{section}.kind' must be one of {', '.join(ROOT_KINDS)}.")
        roots.append(
            RootConfig(
                name=name,
                path=_required_string(table, section, "path"),
                target=_optional_string(table, section, "target", ""),
                kind=kind,
                required=_optional_bool(table, section, "required", True),
            )
        )
    if not roots:
        raise ValueError("Config section 'roots' must declare at least one source root.")
    return tuple(roots)


def _parse_languages(payload: dict[str, object]) -> tuple[LanguageConfig, ...]:
    languages: list[LanguageConfig] = []
    for position, table in enumerate(_get_table_array(payload, "languages")):
        section = f"languages[{position}]"
        languages.append(
            LanguageConfig(
                name=_required_string(table, section, "name"),
                folder=_required_string(table, section, "folder"),
            )
        )
    return tuple(languages)


def _parse_features(payload: dict[str, object], base: FeaturesConfig) -> FeaturesConfig:
    table = _get_table(payload, "features")
    declared = base.declared
    if "declared" in table:
        declared = _tuple_of_strings(table["declared"], "features", "declared")
    force: dict[str, tuple[str, ...]] = dict(base.force)
    if "force" in table:
        force_table = table["force"]
        if not isinstance(force_table, dict):
            raise ValueError("Config field 'features.force' must be a table.")
        force = {
            str(feature): _tuple_of_strings(fragments, "features.force", str(feature))
            for feature, fragments in force_table.items()
        }
    allowed_overlaps = base.allowed_overlaps
    if "allowed_overlaps" in table:
        allowed_overlaps = _string_pairs(table["allowed_overlaps"], "features", "allowed_overlaps")
    return FeaturesConfig(
        declared=declared,
        default=_optional_string(table, "features", "default", base.default),
        catch_all=_optional_string(table, "features", "catch_all", base.catch_all),
        add_orphans=_optional_bool(table, "features", "add_orphans", base.add_orphans),
        allowed_overlaps=allowed_overlaps,
        force=force,
    )


def _parse_categories(payload: dict[str, object]) -> tuple[CategoryConfig, ...]:
    categories: list[CategoryConfig] = []
    for position, table in enumerate(_get_table_array(payload, "categories")):
        section = f"categories[{position}]"
        include = _parse_rules(table.get("include", []), section, "include")
        if not include:
            raise ValueError(f"Config field '{section}.include' must contain at least one rule.")
        roots: tuple[str, ...] = ()
        if "roots" in table:
            roots = _tuple_of_strings(table["roots"], section, "roots")
        categories.append(
            CategoryConfig(
                name=_required_string(table, section, "name"),
                feature=_required_string(table, section, "feature"),
                include=include,
                exclude=_parse_rules(table.get("exclude", []), section, "exclude"),
                localized=_optional_bool(table, section, "localized", False),
                exclusive=_optional_bool(table, section, "exclusive", True),
                roots=roots,
            )
        )
    return tuple(categories)


def _parse_omissions(payload: dict[str, object]) -> OmissionsConfig:
    table = _get_table(payload, "omissions")
    return OmissionsConfig(
        patterns=_tuple_of_strings(table.get("patterns", []), "omissions", "patterns"),
        case_sensitive_patterns=_tuple_of_strings(
            table.get("case_sensitive_patterns", []), "omissions", "case_sensitive_patterns"
        ),
        suppress_similarity=_string_pairs(
            table.get("suppress_similarity", []), "omissions", "suppress_similarity"
        ),
    )


def _parse_redirections(payload: dict[str, object]) -> tuple[RedirectionConfig, ...]:
    redirections: list[RedirectionConfig] = []
    for position, table in enumerate(_get_table_array(payload, "redirections")):
        section = f"redirections[{position}]"
        redirections.append(
            RedirectionConfig(
                folder=_required_string(table, section, "folder"),
                installer_dir=_required_string(table, section, "installer_dir"),
            )
        )
    return tuple(redirections)


def _parse_conditions(payload: dict[str, object]) -> dict[str, str]:
    table = _get_table(payload, "conditions")
    conditions: dict[str, str] = {}
    for fragment, condition in table.items():
        if not isinstance(condition, str):
            raise ValueError(f"Config field 'conditions.{fragment}' must be a string.")
        conditions[str(fragment)] = condition
    return conditions


def _parse_cabinets(
    payload: dict[str, object], base: dict[str, CabinetConfig]
) -> dict[str, CabinetConfig]:
    if "cabinets" not in payload:
        return dict(base)
    table = _get_table(payload, "cabinets")
    cabinets: dict[str, CabinetConfig] = {}
    for feature, entry in table.items():
        if not isinstance(entry, dict):
            raise ValueError(f"Config field 'cabinets.{feature}' must be a table.")
        cabinets[str(feature)] = CabinetConfig(
            index=_cabinet_value(entry, f"cabinets.{feature}", "index"),
            indexes=_cabinet_value(entry, f"cabinets.{feature}", "indexes"),
            divisions=_cabinet_value(entry, f"cabinets.{feature}", "divisions"),
        )
    if DEFAULT_CABINET_KEY not in cabinets:
        raise ValueError(f"Config section 'cabinets' must define a '{DEFAULT_CABINET_KEY}' entry.")
    return cabinets


def _cabinet_value(entry: dict[str, object], section: str, field_name: str) -> str:
    value = entry.get(field_name, "")
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValueError(f"Config field '{section}.{field_name}' must be a string or integer.")
    return str(value)


def _parse_integrity(payload: dict[str, object], base: IntegrityConfig) -> IntegrityConfig:
    table = _get_table(payload, "integrity")
    untracked_excludes = base.untracked_excludes
    if "untracked_excludes" in table:
        untracked_excludes = _tuple_of_strings(
            table["untracked_excludes"], "integrity", "untracked_excludes"
        )
    return IntegrityConfig(
        version_zero_allowed=_tuple_of_strings(
            table.get("version_zero_allowed", []), "integrity", "version_zero_allowed"
        ),
        non_versioned_allowed=_tuple_of_strings(
            table.get("non_versioned_allowed", []), "integrity", "non_versioned_allowed"
        ),
        untracked_excludes=untracked_excludes,
        check_vcs=_optional_bool(table, "integrity", "check_vcs", base.check_vcs),
    )


def _regex_strings(value: object, section: str, field_name: str) -> tuple[str, ...]:
    expressions = _tuple_of_strings(value, section, field_name)
    for expression in expressions:
        try:
            re.compile(expression)
        except re.error as exc:
            raise ValueError(
                f"Config field '{section}.{field_name}' has an invalid regex '{expression}': {exc}"
            ) from exc
    return expressions


def _parse_misplacement_checks(payload: dict[str, object]) -> tuple[MisplacementCheck, ...]:
    checks: list[MisplacementCheck] = []
    for position, table in enumerate(_get_table_array(payload, "misplacement_checks")):
        section = f"misplacement_checks[{position}]"
        checks.append(
            MisplacementCheck(
                feature=_required_string(table, section, "feature"),
                name_regexes=_regex_strings(table.get("name_regexes", []), section, "name_regexes"),
                except_paths=_tuple_of_strings(table.get("except_paths", []), section, "except_paths"),
            )
        )
    return tuple(checks)


def merge_config(
    base: FileLibConfig, payload: dict[str, object], overrides: CliOverrides
) -> FileLibConfig:
    """Merge defaults, the project config file, then CLI overrides."""
    project = _get_table(payload, "project")
    ledger = _get_table(payload, "ledger")
    installer = _get_table(payload, "installer")

    output_dir = base.output_dir
    if "output_dir" in project:
        output_dir = base.project_root / _required_string(project, "project", "output_dir")

    merged = FileLibConfig(
        project_root=base.project_root,
        build_type=_optional_string(project, "project", "build_type", base.build_type),
        output_dir=output_dir,
        roots=_parse_roots(payload, base),
        languages=_parse_languages(payload),
        features=_parse_features(payload, base.features),
        categories=_parse_categories(payload),
        omissions=_parse_omissions(payload),
        redirections=_parse_redirections(payload),
        conditions=_parse_conditions(payload),
        cabinets=_parse_cabinets(payload, base.cabinets),
        ledger=LedgerConfig(
            library=_optional_string(ledger, "ledger", "library", base.ledger.library),
            addenda=_optional_string(ledger, "ledger", "addenda", base.ledger.addenda),
        ),
        installer_sources=_tuple_of_strings(installer.get("sources", []), "installer", "sources"),
        integrity=_parse_integrity(payload, base.integrity),
        misplacement_checks=_parse_misplacement_checks(payload),
    )
    _validate_feature_references(merged)
    return apply_cli_overrides(merged, overrides)


def _validate_feature_references(config: FileLibConfig) -> None:
    root_names = {root.name for root in config.roots}
    for category in config.categories:
        unknown = [name for name in category.roots if name not in root_names]
        if unknown:
            raise ValueError(
                f"Config category '{category.name}' references unknown roots: {', '.join(unknown)}."
            )
        if category.localized and not config.languages:
            raise ValueError(
                f"Config category '{category.name}' is localized but no languages are declared."
            )
    if not config.build_type.strip():
        raise ValueError("Config field 'project.build_type' must be a non-empty string.")


def apply_cli_overrides(config: FileLibConfig, overrides: CliOverrides) -> FileLibConfig:
    """Apply startup overrides at highest precedence."""
    features = config.features
    if overrides.add_orphans is not None:
        features = FeaturesConfig(
            declared=features.declared,
            default=features.default,
            catch_all=features.catch_all,
            add_orphans=overrides.add_orphans,
            allowed_overlaps=features.allowed_overlaps,
            force=features.force,
        )
    integrity = config.integrity
    if overrides.check_vcs is not None:
        integrity = IntegrityConfig(
            version_zero_allowed=integrity.version_zero_allowed,
            non_versioned_allowed=integrity.non_versioned_allowed,
            untracked_excludes=integrity.untracked_excludes,
            check_vcs=overrides.check_vcs,
        )
    output_dir = overrides.output_dir or config.output_dir
    return FileLibConfig(
        project_root=config.project_root,
        build_type=overrides.build_type or config.build_type,
        output_dir=output_dir.resolve(),
        roots=config.roots,
        languages=config.languages,
        features=features,
        categories=config.categories,
        omissions=config.omissions,
        redirections=config.redirections,
        conditions=config.conditions,
        cabinets=config.cabinets,
        ledger=config.ledger,
        installer_sources=config.installer_sources,
        integrity=integrity,
        misplacement_checks=config.misplacement_checks,
    )


def load_effective_config(
    project_root: Path,
    config_path: Path | None = None,
    overrides: CliOverrides | None = None,
) -> FileLibConfig:
    """Load effective config using merge order defaults -> config file -> overrides."""
    resolved_root = project_root.resolve()
    base = default_config(resolved_root)
    payload = load_config_file(config_path or resolved_root / CONFIG_FILE_NAME)
    return merge_config(base, payload, overrides or CliOverrides())
