from __future__ import annotations

import os
from pathlib import Path

import typer

from gx import __version__
from gx.cli.commands.cleanup import cleanup
from gx.cli.commands.create import create_app
from gx.cli.commands.review import review_app
from gx.cli.commands.rollback import rollback_app
from gx.cli.commands.status import status
from gx.cli.context import CONFIG_ENV, CWD_ENV, LOG_LEVEL_ENV, MAX_DEPTH_ENV
from gx.core.errors import ErrorCode


app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# Commands
app.command()(status)
app.command()(cleanup)

# Sub-apps
app.add_typer(create_app, name="create")
app.add_typer(review_app, name="review")
app.add_typer(rollback_app, name="rollback")


def _show_version(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit(code=0)


@app.callback()
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(
        False, "--version", callback=_show_version, is_eager=True, help="Show version and exit."
    ),
    config: Path | None = typer.Option(None, "--config", help="Config file (TOML)"),
    cwd: Path | None = typer.Option(
        None, "--cwd", help="Directory to search for repositories (default: current)"
    ),
    depth: int | None = typer.Option(
        None, "--depth", min=0, help="Maximum discovery depth (default: from config)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log errors"),
) -> None:
    if config is not None:
        os.environ[CONFIG_ENV] = str(config.expanduser())

    if cwd is not None:
        root = cwd.expanduser().resolve()
        if not root.is_dir():
            typer.echo(f"error: --cwd '{root}' is not a directory", err=True)
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))
        os.environ[CWD_ENV] = str(root)

    if depth is not None:
        os.environ[MAX_DEPTH_ENV] = str(depth)

    if verbose:
        os.environ[LOG_LEVEL_ENV] = "debug"
    elif quiet:
        os.environ[LOG_LEVEL_ENV] = "error"


def main() -> None:
    app()
