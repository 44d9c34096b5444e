"""Parser for ``platformio.ini`` project configuration files.

Lines are classified first (comment, blank, section header, option,
continuation) and then fed to a small state machine that tracks the open
section and the option that continuation lines extend. Option lookup
resolves through the section itself, then the sections it ``extends``
(in order, recursively), then the shared ``[env]`` section for ``env:*``
sections. Values may reference other options as ``${section.option}``;
``${sysenv.NAME}`` reads an environment variable.
"""

from __future__ import annotations

import glob
import os
import re
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Final, overload

from pioassist.exceptions import (
    ConfigParseError,
    InterpolationError,
    NoOptionError,
    NoSectionError,
    ProjectConfigError,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

PROJECT_CONFIG_NAME: Final = "platformio.ini"
ENV_PREFIX: Final = "env:"
SHARED_ENV_SECTION: Final = "env"
MAX_INTERPOLATION_DEPTH: Final = 10

_COMMENT_RE = re.compile(r"^\s*[;#]")
_INLINE_COMMENT_RE = re.compile(r"\s+;.*$")
_SECTION_RE = re.compile(r"^\[([^\[\]]+)\]$")
_OPTION_RE = re.compile(r"^\s*([A-Za-z_][\w.\-]*)\s*[=:]\s*(.*)$")
_INDENTED_OPTION_RE = re.compile(r"^\s+([A-Za-z_][\w.\-]*)\s*=\s*(.*)$")
_INTERPOLATION_RE = re.compile(r"\$\{([^.}\s]+)\.([^}\s]+)\}")


class _Missing:
    pass


_MISSING: Final = _Missing()


class LineKind(StrEnum):
    """Classification of a single configuration line."""

    BLANK = "blank"
    COMMENT = "comment"
    SECTION = "section"
    OPTION = "option"
    CONTINUATION = "continuation"
    INVALID = "invalid"


class ParserState(StrEnum):
    """States of the line-by-line parser."""

    NO_SECTION = "no_section"
    IN_SECTION = "in_section"
    AFTER_OPTION = "after_option"


@dataclass(frozen=True, slots=True)
class ClassifiedLine:
    """A configuration line after comment stripping and classification.

    Attributes:
        kind: Line classification.
        name: Section name or option key, when applicable.
        value: Option value or continuation text, when applicable.
    """

    kind: LineKind
    name: str = ""
    value: str = ""


@dataclass(frozen=True, slots=True)
class Environment:
    """A build environment declared as an ``[env:<name>]`` section.

    Attributes:
        name: Environment name without the ``env:`` prefix.
        platform: Development platform, or None when not configured.
    """

    name: str
    platform: str | None = None

    @property
    def is_valid(self) -> bool:
        """Return True if the environment declares a platform."""
        return bool(self.platform)


def is_pio_project(project_dir: Path) -> bool:
    """Return True if the directory contains a ``platformio.ini``."""
    return (project_dir / PROJECT_CONFIG_NAME).is_file()


def parse_multi_values(value: str) -> list[str]:
    """Split a raw option value into items.

    Values containing newlines are split per line, otherwise on ``", "``.
    Items are trimmed and empty items dropped.
    """
    separator = "\n" if "\n" in value else ", "
    return [item.strip() for item in value.split(separator) if item.strip()]


def strip_comment(line: str) -> str:
    """Remove full-line comments and ``;`` inline comments from a line."""
    if _COMMENT_RE.match(line):
        return ""
    return _INLINE_COMMENT_RE.sub("", line).rstrip()


def classify_line(raw_line: str) -> ClassifiedLine:
    """Classify one line of configuration text.

    Comments are stripped before anything else, so a commented-out header
    or option is never mistaken for a real one. Indented lines are
    continuations unless they have the ``key = value`` form.
    """
    if _COMMENT_RE.match(raw_line):
        return ClassifiedLine(LineKind.COMMENT)

    line = strip_comment(raw_line)
    if not line.strip():
        return ClassifiedLine(LineKind.BLANK)

    if line[0].isspace():
        indented_match = _INDENTED_OPTION_RE.match(line)
        if indented_match:
            return ClassifiedLine(
                LineKind.OPTION,
                name=indented_match.group(1),
                value=indented_match.group(2).strip(),
            )
        return ClassifiedLine(LineKind.CONTINUATION, value=line.strip())

    section_match = _SECTION_RE.match(line)
    if section_match:
        return ClassifiedLine(LineKind.SECTION, name=section_match.group(1).strip())

    option_match = _OPTION_RE.match(line)
    if option_match:
        return ClassifiedLine(
            LineKind.OPTION,
            name=option_match.group(1),
            value=option_match.group(2).strip(),
        )

    return ClassifiedLine(LineKind.INVALID, value=line)


class ProjectConfig:
    """Parsed representation of a project's ``platformio.ini``.

    Attributes:
        path: Root configuration file, if the config was read from disk.
    """

    __slots__ = ("_files", "_sections", "path")

    def __init__(self, path: Path | None = None) -> None:
        self.path = path
        self._sections: dict[str, dict[str, str]] = {}
        self._files: list[Path] = []

    @classmethod
    def parse(cls, path: Path) -> ProjectConfig:
        """Parse a configuration file and every file it includes.

        Raises:
            ConfigParseError: If the root file cannot be read.
        """
        config = cls(path)
        config.read(path)
        return config

    @classmethod
    def from_project_dir(cls, project_dir: Path) -> ProjectConfig:
        """Parse the ``platformio.ini`` of a project directory."""
        return cls.parse(project_dir / PROJECT_CONFIG_NAME)

    @property
    def files(self) -> list[Path]:
        """Return the files that were read, in order."""
        return list(self._files)

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    def read(self, path: Path) -> None:
        """Read a file into this config, then any ``extra_configs`` it adds.

        A file that was already read is skipped, which guards against
        include cycles.

        Raises:
            ConfigParseError: If the file cannot be read.
        """
        resolved = path.resolve()
        if resolved in self._files:
            return
        try:
            text = resolved.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            msg = f"Could not read project configuration '{path}': {e}"
            raise ConfigParseError(msg, path=path) from e

        self._files.append(resolved)
        self.read_string(text)

        for extra_path in self._resolve_extra_configs(resolved.parent):
            self.read(extra_path)

    def read_string(self, text: str) -> None:
        """Parse configuration text and merge it into this config."""
        self._consume(classify_line(line) for line in text.splitlines())

    def _consume(self, lines: Iterable[ClassifiedLine]) -> None:
        state = ParserState.NO_SECTION
        section: dict[str, str] | None = None
        option = ""

        for line in lines:
            match line.kind:
                case LineKind.SECTION:
                    section = self._sections.setdefault(line.name, {})
                    option = ""
                    state = ParserState.IN_SECTION
                case LineKind.OPTION if section is not None:
                    section[line.name] = line.value
                    option = line.name
                    state = ParserState.AFTER_OPTION
                case LineKind.CONTINUATION if (
                    state == ParserState.AFTER_OPTION and section is not None
                ):
                    section[option] = f"{section[option]}\n{line.value}"
                case LineKind.CONTINUATION if section is not None:
                    # Indented option with no value to extend
                    nested = classify_line(line.value)
                    if nested.kind == LineKind.OPTION:
                        section[nested.name] = nested.value
                        option = nested.name
                        state = ParserState.AFTER_OPTION
                case _:
                    # Blank lines, comments and lines outside any section
                    pass

    def _resolve_extra_configs(self, base_dir: Path) -> list[Path]:
        paths: list[Path] = []
        for pattern in self.get_list("platformio", "extra_configs"):
            expanded = os.path.join(base_dir, os.path.expanduser(pattern))  # noqa: PTH111, PTH118
            paths.extend(Path(match) for match in sorted(glob.glob(expanded)))  # noqa: PTH207
        return paths

    # -------------------------------------------------------------------------
    # Structure
    # -------------------------------------------------------------------------

    def sections(self) -> list[str]:
        """Return section names in declaration order."""
        return list(self._sections)

    def has_section(self, section: str) -> bool:
        return section in self._sections

    def options(self, section: str) -> list[str]:
        """Return the options declared directly in a section.

        Raises:
            NoSectionError: If the section does not exist.
        """
        return list(self._section(section))

    def has_option(self, section: str, option: str) -> bool:
        """Return True if the option resolves in the section."""
        try:
            _ = self._lookup(section, option, ())
        except ProjectConfigError:
            return False
        return True

    def _section(self, section: str) -> dict[str, str]:
        values = self._sections.get(section)
        if values is None:
            msg = f"No section: '{section}'"
            raise NoSectionError(msg, section=section)
        return values

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def _lookup(self, section: str, option: str, chain: tuple[str, ...]) -> str:
        values = self._section(section)
        if option in values:
            return values[option]

        if section not in chain:
            chain = (*chain, section)
            if option != "extends" and "extends" in values:
                for parent in parse_multi_values(values["extends"]):
                    try:
                        return self._lookup(parent, option, chain)
                    except NoOptionError:
                        continue

            if (
                section.startswith(ENV_PREFIX)
                and SHARED_ENV_SECTION in self._sections
                and SHARED_ENV_SECTION not in chain
            ):
                try:
                    return self._lookup(SHARED_ENV_SECTION, option, chain)
                except NoOptionError:
                    pass

        msg = f"No option '{option}' in section: '{section}'"
        raise NoOptionError(msg, section=section, option=option)

    def _interpolate(self, section: str, option: str, value: str, depth: int) -> str:
        if "${" not in value:
            return value
        if depth >= MAX_INTERPOLATION_DEPTH:
            msg = (
                f"Interpolation depth exceeded for option '{option}' "
                f"in section '{section}'"
            )
            raise InterpolationError(msg, section=section, option=option)

        def replace(match: re.Match[str]) -> str:
            ref_section, ref_option = match.group(1), match.group(2)
            if ref_section == "sysenv":
                return os.environ.get(ref_option, "")
            if ref_section == "this":
                if ref_option == "__env__":
                    return section.removeprefix(ENV_PREFIX)
                ref_section = section
            try:
                raw = self._lookup(ref_section, ref_option, ())
            except (NoSectionError, NoOptionError) as e:
                msg = f"Bad reference '{match.group(0)}' in '{section}.{option}': {e}"
                raise InterpolationError(msg, section=section, option=option) from e
            return self._interpolate(ref_section, ref_option, raw, depth + 1)

        return _INTERPOLATION_RE.sub(replace, value)

    @overload
    def get(self, section: str, option: str) -> str: ...

    @overload
    def get[T](self, section: str, option: str, default: T) -> str | T: ...

    def get(self, section: str, option: str, default: object = _MISSING) -> object:
        """Return the interpolated value of an option.

        Args:
            section: Section name, e.g. ``env:uno``.
            option: Option name.
            default: Returned on any lookup or interpolation failure.

        Raises:
            NoSectionError: If the section does not exist and no default is given.
            NoOptionError: If the option does not resolve and no default is given.
            InterpolationError: If a reference cannot be expanded and no
                default is given.
        """
        try:
            raw = self._lookup(section, option, ())
            return self._interpolate(section, option, raw, 0)
        except ProjectConfigError:
            if isinstance(default, _Missing):
                raise
            return default

    def get_list(
        self,
        section: str,
        option: str,
        default: list[str] | None = None,
    ) -> list[str]:
        """Return an option as a list of items; never raises."""
        try:
            value = self.get(section, option)
        except ProjectConfigError:
            return list(default) if default is not None else []
        return parse_multi_values(value)

    # -------------------------------------------------------------------------
    # Environments
    # -------------------------------------------------------------------------

    def envs(self) -> list[str]:
        """Return environment names in declaration order."""
        return [
            name.removeprefix(ENV_PREFIX)
            for name in self._sections
            if name.startswith(ENV_PREFIX)
        ]

    def default_envs(self) -> list[str]:
        """Return the ``[platformio] default_envs`` list."""
        return self.get_list("platformio", "default_envs")

    def get_default_env(self) -> str | None:
        """Return the first default env, else the first declared env."""
        default_envs = self.default_envs()
        if default_envs:
            return default_envs[0]
        envs = self.envs()
        return envs[0] if envs else None

    def env_platform(self, name: str) -> str | None:
        """Return the platform of an environment, or None if unset."""
        return self.get(f"{ENV_PREFIX}{name}", "platform", None)

    def environments(self) -> list[Environment]:
        """Return every declared environment with its platform."""
        return [Environment(name, self.env_platform(name)) for name in self.envs()]
