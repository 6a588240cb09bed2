from __future__ import annotations

from pathlib import Path

from filelib.config import (
    DEFAULT_CABINET_KEY,
    CliOverrides,
    HeuristicRule,
    default_config,
    load_effective_config,
)


def test_defaults_without_config_file(tmp_path: Path) -> None:
    config = load_effective_config(tmp_path)

    assert config.project_root == tmp_path.resolve()
    assert config.build_type == "Release"
    assert config.output_dir == tmp_path.resolve() / ".filelib"
    assert [root.name for root in config.roots] == ["built", "static"]
    assert config.features.catch_all == "Core"
    assert DEFAULT_CABINET_KEY in config.cabinets
    assert config.integrity.untracked_excludes == ("Helps", "Movies")
    assert config.library_path == tmp_path.resolve() / "FileLibrary.json"
    assert config.addenda_path == tmp_path.resolve() / "FileLibraryAddenda.json"


def test_merge_order_defaults_then_file_then_cli(tmp_path: Path) -> None:
    (tmp_path / "filelib.toml").write_text(
        "\n".join(
            [
                "[project]",
                'build_type = "Debug"',
                'output_dir = "out"',
                "",
                "[features]",
                'declared = ["Core", "Movies"]',
                "add_orphans = false",
            ]
        ),
        encoding="utf-8",
    )
    config = load_effective_config(
        tmp_path, overrides=CliOverrides(build_type="Release", add_orphans=True)
    )

    assert config.build_type == "Release"
    assert config.output_dir == (tmp_path / "out").resolve()
    assert config.features.declared == ("Core", "Movies")
    assert config.features.add_orphans is True


def test_explicit_config_path_is_used(tmp_path: Path) -> None:
    config_path = tmp_path / "custom.toml"
    config_path.write_text('[ledger]\nlibrary = "Installer/FileLibrary.json"\n', encoding="utf-8")

    config = load_effective_config(tmp_path, config_path=config_path)

    assert config.library_path == tmp_path.resolve() / "Installer" / "FileLibrary.json"


def test_full_rule_table_is_deserialised_in_order(tmp_path: Path) -> None:
    (tmp_path / "filelib.toml").write_text(
        "\n".join(
            [
                "[[roots]]",
                'name = "built"',
                'path = "Output/${config}"',
                "",
                "[[roots]]",
                'name = "static"',
                'path = "DistFiles"',
                'kind = "static"',
                "required = false",
                "",
                "[[languages]]",
                'name = "French"',
                'folder = "fr"',
                "",
                "[[categories]]",
                'name = "movies"',
                'feature = "Movies"',
                'include = [{contains = "/Movies/"}]',
                "",
                "[[categories]]",
                'name = "localization"',
                'feature = "L10N_{0}"',
                'include = [{ends = ".{0}.resources.dll"}]',
                'exclude = [{contains = "/Movies/"}]',
                "localized = true",
                'roots = ["built"]',
                "",
                "[cabinets]",
                "default = {index = 1}",
                'Movies = {indexes = "2,3", divisions = "m"}',
                "",
                "[conditions]",
                '"Legacy/" = "INSTALL_LEGACY"',
            ]
        ),
        encoding="utf-8",
    )
    config = load_effective_config(tmp_path)

    assert [category.name for category in config.categories] == ["movies", "localization"]
    localization = config.categories[1]
    assert localization.localized is True
    assert localization.roots == ("built",)
    assert localization.include == (HeuristicRule(kind="ends", pattern=".{0}.resources.dll"),)
    assert config.roots[1].required is False
    assert config.cabinets["default"].index == "1"
    assert config.cabinets["Movies"].divisions == "m"
    assert config.conditions == {"Legacy/": "INSTALL_LEGACY"}


def test_public_snapshot_is_serialisable(tmp_path: Path) -> None:
    snapshot = default_config(tmp_path).to_public_dict()

    assert snapshot["build_type"] == "Release"
    assert snapshot["roots"][0]["path"] == "Output/${config}"
    assert snapshot["check_vcs"] is True
