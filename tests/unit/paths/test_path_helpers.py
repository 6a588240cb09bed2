from __future__ import annotations

from pathlib import Path

from filelib.paths import (
    expand_build_type,
    is_absolute_style,
    library_key,
    make_id,
    md5_hex,
    normalize_separators,
    parameterize_build_type,
    relative_source_path,
)


def test_normalize_separators_handles_windows_input() -> None:
    assert normalize_separators("DistFiles\\Fonts\\\\a.ttf") == "DistFiles/Fonts/a.ttf"
    assert normalize_separators("./Output/Release/") == "Output/Release"


def test_absolute_style_detection() -> None:
    assert is_absolute_style("C:\\work\\proj")
    assert is_absolute_style("/srv/proj")
    assert not is_absolute_style("Output/Release")


def test_build_type_round_trip_is_segment_based() -> None:
    parameterized = parameterize_build_type("Output\\release\\Release Notes.txt", "Release")

    assert parameterized == "Output/${config}/Release Notes.txt"
    assert expand_build_type(parameterized, "Debug") == "Output/Debug/Release Notes.txt"


def test_library_key_ignores_case_and_separators() -> None:
    assert library_key("DistFiles\\Foo.DLL") == library_key("distfiles/foo.dll")


def test_relative_source_path_inside_and_outside_root(tmp_path: Path) -> None:
    project = tmp_path / "proj"
    inside = project / "Output" / "Release" / "app.exe"
    outside = tmp_path / "elsewhere" / "tool.exe"

    assert relative_source_path(project, inside, "Release") == "Output/${config}/app.exe"
    assert relative_source_path(project, outside, "Release") == outside.as_posix()


def test_make_id_replaces_illegal_characters_and_appends_digest() -> None:
    identifier = make_id("my file-1.dll", "DistFiles/my file-1.dll")

    assert identifier == f"my_file_1.dll.{md5_hex('DistFiles/my file-1.dll')}"


def test_make_id_prefixes_non_letter_start() -> None:
    assert make_id("7zip.exe", "x").startswith("_7zip.exe.")


def test_make_id_truncates_to_max_length() -> None:
    identifier = make_id("a" * 100, "unique")

    assert len(identifier) == 56
    assert identifier.endswith("." + md5_hex("unique"))


def test_md5_hex_is_upper_case() -> None:
    digest = md5_hex("abc")

    assert digest == digest.upper()
    assert len(digest) == 32
