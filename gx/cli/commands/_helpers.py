"""Shared helpers for CLI commands."""

from __future__ import annotations

from typing import TYPE_CHECKING, NoReturn

import typer

from gx.core.errors import ErrorCode
from gx.core.result import Err, Result
from gx.output.console import Style

if TYPE_CHECKING:
    from gx.cli.context import CLIContext
    from gx.git.discovery import RepoRef


def exit_on_error[T, E](
    result: Result[T, E],
    ctx: CLIContext,
    error_code: ErrorCode = ErrorCode.USER_ERROR,
) -> None:
    """Exit with error if result is Err, otherwise return.

    Expects error objects to have 'message' and optional 'hint' attributes;
    plain strings are printed as-is.
    """
    if isinstance(result, Err):
        exit_with_error(result.error, ctx, error_code)


def exit_with_error(
    error: object,
    ctx: CLIContext,
    error_code: ErrorCode = ErrorCode.USER_ERROR,
) -> NoReturn:
    """Print `error` (its message and hint, if any) and exit."""
    message: str = getattr(error, "message", str(error))
    hint: str | None = getattr(error, "hint", None)
    ctx.console.error(message)
    if hint:
        ctx.console.print(f"hint: {hint}", Style.DIM)
    raise typer.Exit(code=int(error_code))


def exit_with_code(code: int) -> NoReturn:
    """Exit with given code. Explicit helper for clarity."""
    raise typer.Exit(code=code)


def select_repos(ctx: CLIContext, patterns: list[str] | None) -> list[RepoRef]:
    """Discovered repositories matching `patterns`; exits when none match."""
    repos = ctx.repos(patterns)
    if not repos:
        where = f" matching {', '.join(patterns)}" if patterns else ""
        ctx.console.error(f"no repositories found{where} under {ctx.cwd}")
        ctx.console.print("hint: use --cwd or raise --depth", Style.DIM)
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))
    return repos
