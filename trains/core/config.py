"""Typed release configuration loaded from ``release.toml``.

Example::

    [release]
    npm_packages = ["@scope/core", "@scope/forms"]
    publish_registry = "https://npm.internal.example.com"
    next_branch = "main"
    # Regex template; ``{version}`` is replaced by the escaped version.
    extract_release_notes_pattern = '(# v{version} \\("[^"]+"\\).*?)(?:# v|\\Z)'

    [release.github]
    owner = "scope"
    name = "framework"
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from .result import Err, Ok, Result
from .structured import StrDict, as_str_dict, get_str, get_str_list, get_table

if TYPE_CHECKING:
    from trains.services.release.semver import SemVer

__all__ = [
    "CONFIG_FILE_NAME",
    "ConfigError",
    "GithubConfig",
    "ReleaseConfig",
    "ReleaseNotesPattern",
    "default_release_notes_pattern",
    "load_config",
    "release_notes_pattern_from_template",
]

CONFIG_FILE_NAME = "release.toml"

DEFAULT_NEXT_BRANCH = "main"
DEFAULT_VERSION_FILE = "package.json"
DEFAULT_CHANGELOG_PATH = "CHANGELOG.md"

ReleaseNotesPattern = Callable[["SemVer"], re.Pattern[str]]


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None


def default_release_notes_pattern(version: SemVer) -> re.Pattern[str]:
    """Match the changelog section that starts at the version's anchor.

    The section runs up to the next version anchor or the end of the content.
    """
    escaped = re.escape(str(version))
    return re.compile(rf'(<a name="{escaped}"></a>.*?)(?:<a name="|\Z)', re.DOTALL)


def release_notes_pattern_from_template(template: str) -> ReleaseNotesPattern:
    def pattern(version: SemVer) -> re.Pattern[str]:
        return re.compile(template.replace("{version}", re.escape(str(version))), re.DOTALL)

    return pattern


@dataclass(frozen=True, slots=True)
class GithubConfig:
    """Upstream repository on the version-control host."""

    owner: str
    name: str

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True, slots=True)
class ReleaseConfig:
    """Release configuration shared by every action of a run.

    Attributes:
        npm_packages: Packages expected under ``dist/<package>`` after a build.
        github: Upstream repository releases are staged against.
        publish_registry: Registry URL override (None means the public registry).
        extract_release_notes_pattern: Version -> pattern locating the notes section.
        next_branch: Ongoing development branch.
        version_file: JSON file whose ``version`` field is bumped when staging.
        changelog_path: Changelog file, relative to the project root.
        build_command: Command producing ``dist/`` (empty means already built).
    """

    npm_packages: tuple[str, ...]
    github: GithubConfig
    publish_registry: str | None = None
    extract_release_notes_pattern: ReleaseNotesPattern = default_release_notes_pattern
    next_branch: str = DEFAULT_NEXT_BRANCH
    version_file: str = DEFAULT_VERSION_FILE
    changelog_path: str = DEFAULT_CHANGELOG_PATH
    build_command: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Result[ReleaseConfig, str]:
        """Create a ReleaseConfig from the ``[release]`` table."""
        packages = get_str_list(data, "npm_packages")
        if not packages:
            return Err("release.npm_packages must be a non-empty list of package names")

        github: StrDict = get_table(data, "github") or {}
        owner = get_str(github, "owner")
        name = get_str(github, "name")
        if owner is None or name is None:
            return Err("release.github.owner and release.github.name are required")

        template = get_str(data, "extract_release_notes_pattern")
        pattern: ReleaseNotesPattern = default_release_notes_pattern
        if template is not None:
            if "{version}" not in template:
                return Err("release.extract_release_notes_pattern must contain {version}")
            try:
                re.compile(template.replace("{version}", "0"), re.DOTALL)
            except re.error as e:
                return Err(f"invalid release.extract_release_notes_pattern: {e}")
            pattern = release_notes_pattern_from_template(template)

        build_command: list[str] = []
        if "build_command" in data:
            parsed = get_str_list(data, "build_command")
            if parsed is None:
                return Err("release.build_command must be a list of strings")
            build_command = parsed

        return Ok(
            cls(
                npm_packages=tuple(packages),
                github=GithubConfig(owner=owner, name=name),
                publish_registry=get_str(data, "publish_registry"),
                extract_release_notes_pattern=pattern,
                next_branch=get_str(data, "next_branch") or DEFAULT_NEXT_BRANCH,
                version_file=get_str(data, "version_file") or DEFAULT_VERSION_FILE,
                changelog_path=get_str(data, "changelog_path") or DEFAULT_CHANGELOG_PATH,
                build_command=tuple(build_command),
            )
        )


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    """Parse a TOML file, handling read and parse errors."""
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
        data = as_str_dict(data_obj)
        if data is None:
            return Err(ConfigError("Config root must be a TOML table", path=path))
        return Ok(data)
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))


def load_config(path: Path) -> Result[ReleaseConfig, ConfigError]:
    """Load and validate the release configuration.

    Args:
        path: Path to release.toml

    Returns:
        Ok(ReleaseConfig) on success, Err(ConfigError) on failure
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    table = get_table(result.value, "release")
    if table is None:
        return Err(ConfigError("Missing [release] table", path=path))

    config = ReleaseConfig.from_dict(table)
    if isinstance(config, Err):
        return Err(ConfigError(config.error, path=path))
    return Ok(config.value)
