"""Tests for the platformio.ini parser."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from pioassist.exceptions import (
    ConfigParseError,
    InterpolationError,
    NoOptionError,
    NoSectionError,
)
from pioassist.project import (
    Environment,
    LineKind,
    ProjectConfig,
    classify_line,
    is_pio_project,
    parse_multi_values,
    strip_comment,
)

if TYPE_CHECKING:
    from tests.conftest import ProjectFactory


def parse_text(text: str) -> ProjectConfig:
    config = ProjectConfig()
    config.read_string(text)
    return config


class TestClassifyLine:
    @pytest.mark.parametrize("line", ["; comment", "# comment", "   ; indented comment"])
    def test_comment_lines(self, line: str) -> None:
        assert classify_line(line).kind == LineKind.COMMENT

    def test_blank_line(self) -> None:
        assert classify_line("   ").kind == LineKind.BLANK

    def test_section_header(self) -> None:
        line = classify_line("[env:uno]")

        assert line.kind == LineKind.SECTION
        assert line.name == "env:uno"

    def test_option_with_equals(self) -> None:
        line = classify_line("board = uno")

        assert line.kind == LineKind.OPTION
        assert line.name == "board"
        assert line.value == "uno"

    def test_option_with_colon(self) -> None:
        line = classify_line("board: uno")

        assert line.kind == LineKind.OPTION
        assert line.value == "uno"

    def test_inline_comment_is_stripped(self) -> None:
        line = classify_line("board = uno ; the board")

        assert line.value == "uno"

    def test_commented_out_header_is_comment(self) -> None:
        assert classify_line(";[env:disabled]").kind == LineKind.COMMENT

    def test_indented_line_is_continuation(self) -> None:
        line = classify_line("    https://github.com/user/lib.git")

        assert line.kind == LineKind.CONTINUATION
        assert line.value == "https://github.com/user/lib.git"

    def test_indented_key_value_is_option(self) -> None:
        line = classify_line("  platform = atmelavr")

        assert line.kind == LineKind.OPTION
        assert line.name == "platform"
        assert line.value == "atmelavr"

    @pytest.mark.parametrize("line", ["  -D FOO=1", "  -DBAR=2", "  C:\\libs", "  name @ 1.0"])
    def test_indented_values_stay_continuations(self, line: str) -> None:
        assert classify_line(line).kind == LineKind.CONTINUATION

    def test_unrecognized_line_is_invalid(self) -> None:
        assert classify_line("not an option").kind == LineKind.INVALID


class TestHelpers:
    def test_parse_multi_values_splits_lines(self) -> None:
        assert parse_multi_values("\na\n  b  \n\nc") == ["a", "b", "c"]

    def test_parse_multi_values_splits_comma_list(self) -> None:
        assert parse_multi_values("uno, nano ,  mega") == ["uno", "nano", "mega"]

    def test_parse_multi_values_single_value(self) -> None:
        assert parse_multi_values("uno") == ["uno"]

    def test_parse_multi_values_empty(self) -> None:
        assert parse_multi_values("") == []

    def test_strip_comment(self) -> None:
        assert strip_comment("value ; note") == "value"
        assert strip_comment("# all comment") == ""
        assert strip_comment("a;b") == "a;b"

    def test_is_pio_project(self, make_project: ProjectFactory, tmp_path: Path) -> None:
        project_dir = make_project("[env:uno]\n")

        assert is_pio_project(project_dir)
        assert not is_pio_project(tmp_path)


class TestParsing:
    def test_sections_in_declaration_order(self) -> None:
        config = parse_text("[platformio]\n[env:b]\n[env:a]\n")

        assert config.sections() == ["platformio", "env:b", "env:a"]

    def test_multiline_value(self) -> None:
        config = parse_text(
            "[env:uno]\n"
            "lib_deps =\n"
            "    bblanchon/ArduinoJson @ ^6\n"
            "    ; pinned\n"
            "    https://github.com/user/lib.git\n"
        )

        assert config.get_list("env:uno", "lib_deps") == [
            "bblanchon/ArduinoJson @ ^6",
            "https://github.com/user/lib.git",
        ]

    def test_options_outside_section_are_ignored(self) -> None:
        config = parse_text("orphan = 1\n[env:uno]\nboard = uno\n")

        assert config.sections() == ["env:uno"]

    def test_repeated_section_merges(self) -> None:
        config = parse_text("[env:uno]\nboard = uno\n[env:uno]\nframework = arduino\n")

        assert config.options("env:uno") == ["board", "framework"]

    def test_later_value_overrides(self) -> None:
        config = parse_text("[env:uno]\nboard = uno\nboard = nano\n")

        assert config.get("env:uno", "board") == "nano"

    def test_indented_option_after_header(self) -> None:
        config = parse_text("[env:uno]\n  board = uno\n")

        assert config.get("env:uno", "board") == "uno"

    def test_indented_option_after_value(self) -> None:
        config = parse_text("[env:uno]\nbuild_flags = -DA\n  platform = atmelavr\n")

        assert config.get("env:uno", "build_flags") == "-DA"
        assert config.get("env:uno", "platform") == "atmelavr"

    def test_indented_build_flags_continue_value(self) -> None:
        config = parse_text("[env:uno]\nbuild_flags =\n  -D FOO=1\n  -D BAR=2\n")

        assert config.get_list("env:uno", "build_flags") == ["-D FOO=1", "-D BAR=2"]

    def test_options_of_missing_section_raises(self) -> None:
        with pytest.raises(NoSectionError):
            parse_text("").options("env:uno")


class TestLookup:
    def test_own_value(self) -> None:
        config = parse_text("[env:uno]\nboard = uno\n")

        assert config.get("env:uno", "board") == "uno"

    def test_extends_chain(self) -> None:
        config = parse_text("[a]\nx = 1\n[b]\nextends = a\n[env:b]\nextends = b\n")

        assert config.get("env:b", "x") == "1"

    def test_extends_in_declared_order(self) -> None:
        config = parse_text("[a]\nx = 1\n[b]\nx = 2\n[env:c]\nextends = b, a\n")

        assert config.get("env:c", "x") == "2"

    def test_shared_env_fallback(self) -> None:
        config = parse_text("[env]\nx = 2\n[env:foo]\n")

        assert config.get("env:foo", "x") == "2"

    def test_extends_wins_over_shared_env(self) -> None:
        config = parse_text("[env]\nx = shared\n[base]\nx = base\n[env:foo]\nextends = base\n")

        assert config.get("env:foo", "x") == "base"

    def test_shared_env_only_for_env_sections(self) -> None:
        config = parse_text("[env]\nx = 2\n[common]\n")

        with pytest.raises(NoOptionError):
            _ = config.get("common", "x")

    def test_missing_section_raises(self) -> None:
        config = parse_text("[env]\nx = 2\n")

        with pytest.raises(NoSectionError) as exc_info:
            _ = config.get("env:missing", "x")

        assert exc_info.value.section == "env:missing"

    def test_missing_option_raises(self) -> None:
        config = parse_text("[env:uno]\n")

        with pytest.raises(NoOptionError) as exc_info:
            _ = config.get("env:uno", "board")

        assert exc_info.value.option == "board"

    def test_default_is_returned_on_failure(self) -> None:
        config = parse_text("[env:uno]\n")

        assert config.get("env:uno", "board", "fallback") == "fallback"
        assert config.get("env:missing", "board", None) is None

    def test_extends_cycle_terminates(self) -> None:
        config = parse_text("[a]\nextends = b\n[b]\nextends = a\n")

        with pytest.raises(NoOptionError):
            _ = config.get("a", "x")

    def test_has_option_follows_inheritance(self) -> None:
        config = parse_text("[env]\nx = 1\n[env:foo]\n")

        assert config.has_option("env:foo", "x")
        assert not config.has_option("env:foo", "y")
        assert not config.has_option("env:bar", "x")

    def test_get_list_never_raises(self) -> None:
        config = parse_text("")

        assert config.get_list("env:uno", "lib_deps") == []
        assert config.get_list("env:uno", "lib_deps", ["a"]) == ["a"]


class TestInterpolation:
    def test_section_reference(self) -> None:
        config = parse_text("[common]\nflags = -DX\n[env:uno]\nbuild_flags = ${common.flags} -DY\n")

        assert config.get("env:uno", "build_flags") == "-DX -DY"

    def test_nested_references(self) -> None:
        config = parse_text("[a]\nv = 1\n[b]\nv = ${a.v}2\n[c]\nv = ${b.v}3\n")

        assert config.get("c", "v") == "123"

    def test_sysenv_reference(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PIO_TEST_PORT", "/dev/ttyUSB0")
        config = parse_text("[env:uno]\nupload_port = ${sysenv.PIO_TEST_PORT}\n")

        assert config.get("env:uno", "upload_port") == "/dev/ttyUSB0"

    def test_missing_sysenv_is_empty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("PIO_TEST_MISSING", raising=False)
        config = parse_text("[env:uno]\nx = a${sysenv.PIO_TEST_MISSING}b\n")

        assert config.get("env:uno", "x") == "ab"

    def test_this_reference(self) -> None:
        config = parse_text("[env:uno]\nboard = uno\nname = ${this.board}-${this.__env__}\n")

        assert config.get("env:uno", "name") == "uno-uno"

    def test_inherited_value_interpolates_in_own_section(self) -> None:
        config = parse_text("[env]\nname = fw-${this.__env__}\n[env:nano]\n")

        assert config.get("env:nano", "name") == "fw-nano"

    def test_self_reference_fails_closed(self) -> None:
        config = parse_text("[a]\nx = ${a.x}\n")

        with pytest.raises(InterpolationError):
            _ = config.get("a", "x")

    def test_mutual_reference_fails_closed(self) -> None:
        config = parse_text("[a]\nx = ${b.y}\n[b]\ny = ${a.x}\n")

        with pytest.raises(InterpolationError):
            _ = config.get("a", "x")

    def test_unresolved_reference_raises(self) -> None:
        config = parse_text("[a]\nx = ${missing.y}\n")

        with pytest.raises(InterpolationError) as exc_info:
            _ = config.get("a", "x")

        assert exc_info.value.section == "a"
        assert exc_info.value.option == "x"

    def test_unresolved_reference_uses_default(self) -> None:
        config = parse_text("[a]\nx = ${missing.y}\n")

        assert config.get("a", "x", "default") == "default"


class TestEnvironments:
    def test_envs_in_order(self) -> None:
        config = parse_text("[env]\n[env:nano]\n[common]\n[env:uno]\n")

        assert config.envs() == ["nano", "uno"]

    def test_default_env_prefers_default_envs(self) -> None:
        config = parse_text("[platformio]\ndefault_envs = uno, nano\n[env:nano]\n[env:uno]\n")

        assert config.default_envs() == ["uno", "nano"]
        assert config.get_default_env() == "uno"

    def test_default_env_falls_back_to_first(self) -> None:
        config = parse_text("[env:nano]\n[env:uno]\n")

        assert config.get_default_env() == "nano"

    def test_default_env_none_without_envs(self) -> None:
        assert parse_text("[platformio]\n").get_default_env() is None

    def test_environments_with_platforms(self) -> None:
        config = parse_text(
            "[env]\nplatform = atmelavr\n[env:uno]\n[env:esp]\nplatform = espressif32\n"
        )

        assert config.environments() == [
            Environment("uno", "atmelavr"),
            Environment("esp", "espressif32"),
        ]

    def test_environment_without_platform_is_invalid(self) -> None:
        config = parse_text("[env:bare]\n")

        env = config.environments()[0]

        assert env.platform is None
        assert not env.is_valid


class TestFiles:
    def test_parse_from_project_dir(self, make_project: ProjectFactory) -> None:
        project_dir = make_project("[env:uno]\nplatform = atmelavr\n")

        config = ProjectConfig.from_project_dir(project_dir)

        assert config.path == project_dir / "platformio.ini"
        assert config.envs() == ["uno"]

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigParseError) as exc_info:
            _ = ProjectConfig.parse(tmp_path / "platformio.ini")

        assert exc_info.value.path == tmp_path / "platformio.ini"

    def test_extra_configs_are_merged(self, make_project: ProjectFactory) -> None:
        project_dir = make_project(
            "[platformio]\nextra_configs = extra/*.ini\n[env:uno]\nboard = uno\n"
        )
        extra_dir = project_dir / "extra"
        extra_dir.mkdir()
        (extra_dir / "b.ini").write_text("[env:nano]\nboard = nano\n")
        (extra_dir / "a.ini").write_text("[env:uno]\nupload_speed = 115200\n")

        config = ProjectConfig.from_project_dir(project_dir)

        assert config.envs() == ["uno", "nano"]
        assert config.get("env:uno", "upload_speed") == "115200"
        assert [path.name for path in config.files] == ["platformio.ini", "a.ini", "b.ini"]

    def test_extra_configs_cycle_is_read_once(self, make_project: ProjectFactory) -> None:
        project_dir = make_project("[platformio]\nextra_configs = other.ini\n[env:uno]\n")
        (project_dir / "other.ini").write_text(
            "[platformio]\nextra_configs = platformio.ini\n[env:nano]\n"
        )

        config = ProjectConfig.from_project_dir(project_dir)

        assert len(config.files) == 2
        assert config.envs() == ["uno", "nano"]
