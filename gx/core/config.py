"""Typed configuration loading and access.

This module provides dataclasses for the config.toml structure with
full type safety and validation.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .result import Err, Ok, Result
from .structured import (
    StrDict,
    as_str_dict,
    get_int,
    get_raw_str,
    get_str,
    get_str_list,
    get_table,
)

__all__ = [
    "Config",
    "ConfigError",
    "GitHubConfig",
    "LoggingConfig",
    "PathsConfig",
    "RepoDiscoveryConfig",
    "load_config",
    "load_config_or_default",
    "parse_jobs",
    "DEFAULT_BASE_BRANCH",
    "DEFAULT_IGNORE_PATTERNS",
    "DEFAULT_LOG_LEVEL",
    "DEFAULT_MAX_DEPTH",
]

# -----------------------------------------------------------------------------
# Defaults
# -----------------------------------------------------------------------------

DEFAULT_MAX_DEPTH = 3
DEFAULT_IGNORE_PATTERNS: tuple[str, ...] = (
    "node_modules",
    "target",
    "vendor",
    ".venv",
    "__pycache__",
)
DEFAULT_LOG_LEVEL = "warning"
DEFAULT_BASE_BRANCH = "main"

# `jobs = "nproc"` means "one worker per CPU"
_NPROC = "nproc"


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None
    hint: str | None = None


@dataclass(frozen=True, slots=True)
class RepoDiscoveryConfig:
    """How repositories are discovered below the working directory."""

    max_depth: int = DEFAULT_MAX_DEPTH
    ignore_patterns: tuple[str, ...] = DEFAULT_IGNORE_PATTERNS


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    level: str = DEFAULT_LOG_LEVEL
    file: str | None = None


@dataclass(frozen=True, slots=True)
class GitHubConfig:
    """Pull request defaults."""

    base_branch: str = DEFAULT_BASE_BRANCH
    pr_body_footer: str = ""


@dataclass(frozen=True, slots=True)
class PathsConfig:
    """Per-user state locations.

    Values may contain ~ and environment variables.
    """

    state_dir: str | None = None

    def state_dir_path(self) -> Path | None:
        if not self.state_dir:
            return None
        return Path(os.path.expandvars(self.state_dir)).expanduser()


@dataclass(frozen=True, slots=True)
class Config:
    """Main configuration container.

    Attributes:
        jobs: Worker pool size, None for one worker per CPU
        default_user_org: Organization used by review commands without --org
    """

    jobs: int | None = None
    default_user_org: str | None = None
    repo_discovery: RepoDiscoveryConfig = field(default_factory=RepoDiscoveryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Config:
        """Create Config from a mapping (parsed TOML).

        Raises:
            ValueError: If a value has the right key but an unusable shape.
        """
        discovery: StrDict = get_table(data, "repo_discovery") or {}
        logging_tbl: StrDict = get_table(data, "logging") or {}
        github: StrDict = get_table(data, "github") or {}
        paths: StrDict = get_table(data, "paths") or {}

        max_depth = get_int(discovery, "max_depth")
        if max_depth is not None and max_depth < 0:
            raise ValueError(f"repo_discovery.max_depth must be >= 0, got {max_depth}")

        ignore = get_str_list(discovery, "ignore_patterns")
        if "ignore_patterns" in discovery and ignore is None:
            raise ValueError("repo_discovery.ignore_patterns must be a list of strings")

        return cls(
            jobs=parse_jobs(data.get("jobs")),
            default_user_org=get_str(data, "default_user_org"),
            repo_discovery=RepoDiscoveryConfig(
                max_depth=DEFAULT_MAX_DEPTH if max_depth is None else max_depth,
                ignore_patterns=(
                    DEFAULT_IGNORE_PATTERNS if ignore is None else tuple(ignore)
                ),
            ),
            logging=LoggingConfig(
                level=(get_str(logging_tbl, "level") or DEFAULT_LOG_LEVEL).lower(),
                file=get_str(logging_tbl, "file"),
            ),
            github=GitHubConfig(
                base_branch=get_str(github, "base_branch") or DEFAULT_BASE_BRANCH,
                pr_body_footer=get_raw_str(github, "pr_body_footer") or "",
            ),
            paths=PathsConfig(state_dir=get_str(paths, "state_dir")),
        )


def parse_jobs(value: object) -> int | None:
    """Parse the `jobs` setting.

    Accepts a positive integer, a numeric string, or "nproc". Missing or
    "nproc" yields None (resolved to the CPU count later).

    Raises:
        ValueError: If the value is anything else.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"jobs must be a positive integer or 'nproc', got {value!r}")
    if isinstance(value, int):
        if value < 1:
            raise ValueError(f"jobs must be >= 1, got {value}")
        return value
    if isinstance(value, str):
        s = value.strip().lower()
        if s == _NPROC:
            return None
        if s.isdigit() and int(s) >= 1:
            return int(s)
    raise ValueError(f"jobs must be a positive integer or 'nproc', got {value!r}")


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


def load_config(path: Path) -> Result[Config, ConfigError]:
    """Load and parse configuration from a TOML file.

    Args:
        path: Path to config.toml file

    Returns:
        Ok(Config) on success, Err(ConfigError) on failure
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        return Ok(Config.from_dict(result.value))
    except (KeyError, TypeError, ValueError) as e:
        return Err(
            ConfigError(
                f"Invalid config structure: {e}",
                path=path,
                hint=f"Fix or remove {path}",
            )
        )


def load_config_or_default(path: Path) -> Result[Config, ConfigError]:
    """Load config from file, or the defaults if the file doesn't exist.

    A file that exists but cannot be parsed is still an error.
    """
    if not path.exists():
        return Ok(Config())
    return load_config(path)
