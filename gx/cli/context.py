from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import typer

from gx.core.config import Config, load_config_or_default
from gx.core.errors import ErrorCode
from gx.core.result import Err
from gx.git.discovery import RepoRef, discover_repos, filter_repos
from gx.output.console import ConsoleProtocol, RichConsole
from gx.output.logging import parse_level, setup_logging
from gx.platform.paths import changes_dir, config_path, recovery_dir, state_dir
from gx.services.changes import ChangeStore
from gx.services.fanout import resolve_jobs
from gx.txn.store import RecoveryStore

# Set by the root callback from global options
CONFIG_ENV = "GX_CONFIG"
CWD_ENV = "GX_CWD"
MAX_DEPTH_ENV = "GX_MAX_DEPTH"
LOG_LEVEL_ENV = "GX_LOG_LEVEL"


@dataclass(frozen=True, slots=True)
class CLIContext:
    config: Config
    console: ConsoleProtocol
    cwd: Path
    state_dir: Path
    max_depth: int

    @property
    def recovery_store(self) -> RecoveryStore:
        return RecoveryStore(recovery_dir(self.state_dir))

    @property
    def change_store(self) -> ChangeStore:
        return ChangeStore(changes_dir(self.state_dir))

    def jobs(self, cli_jobs: int | None = None) -> int:
        return resolve_jobs(cli_jobs, self.config.jobs)

    def repos(self, patterns: list[str] | None = None) -> list[RepoRef]:
        """Repositories under cwd, narrowed by `patterns`."""
        found = discover_repos(
            self.cwd,
            max_depth=self.max_depth,
            ignore=self.config.repo_discovery.ignore_patterns,
        )
        return filter_repos(found, patterns or [])


def build_context() -> CLIContext:
    path = Path(os.environ[CONFIG_ENV]) if os.environ.get(CONFIG_ENV) else config_path()
    config_result = load_config_or_default(path)
    if isinstance(config_result, Err):
        error = config_result.error
        typer.echo(f"error: {error.message}", err=True)
        if error.hint:
            typer.echo(f"hint: {error.hint}", err=True)
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))
    config = config_result.value

    log_file = Path(config.logging.file).expanduser() if config.logging.file else None
    setup_logging(parse_level(os.environ.get(LOG_LEVEL_ENV) or config.logging.level), log_file)

    cwd = Path(os.environ[CWD_ENV]) if os.environ.get(CWD_ENV) else Path.cwd()
    depth_env = os.environ.get(MAX_DEPTH_ENV)
    max_depth = int(depth_env) if depth_env else config.repo_discovery.max_depth

    return CLIContext(
        config=config,
        console=RichConsole(),
        cwd=cwd,
        state_dir=config.paths.state_dir_path() or state_dir(),
        max_depth=max_depth,
    )
