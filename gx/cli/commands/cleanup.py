"""Cleanup command - delete branches of merged changes."""

from __future__ import annotations

import typer

from gx.cli.commands._helpers import exit_with_code, exit_with_error
from gx.cli.context import build_context
from gx.core.errors import ErrorCode, error_exit_code
from gx.core.result import Err, Ok
from gx.output.console import Style
from gx.output.report import print_cleanable_change, print_cleanup_result
from gx.services.cleanup import cleanable_changes, cleanup_all, cleanup_one


def cleanup(
    change_id: str | None = typer.Argument(None, help="Change to clean up"),
    all_changes: bool = typer.Option(False, "--all", "-a", help="Clean up every finished change"),
    list_only: bool = typer.Option(False, "--list", "-l", help="List cleanable changes"),
    include_remote: bool = typer.Option(
        False, "--include-remote", help="Also delete the remote branches"
    ),
    force: bool = typer.Option(
        False, "--force", help="Include closed and partially merged changes"
    ),
) -> None:
    """Delete local branches of changes whose PRs are merged."""
    c = build_context()
    store = c.change_store

    if list_only:
        changes = cleanable_changes(store, force=force)
        if not changes:
            c.console.print("no changes to clean up", Style.DIM)
            return
        for state in changes:
            print_cleanable_change(c.console, state)
        return

    if change_id is not None:
        match cleanup_one(store, change_id, include_remote=include_remote, force=force):
            case Err(error):
                exit_with_error(error, c)
            case Ok(outcome):
                print_cleanup_result(c.console, outcome)
                exit_with_code(error_exit_code(outcome.failed))

    if not all_changes:
        c.console.error("pass a change id, --all or --list")
        exit_with_code(int(ErrorCode.USER_ERROR))

    results = cleanup_all(store, include_remote=include_remote, force=force)
    if not results:
        c.console.print("no changes to clean up", Style.DIM)
        return
    for item in results:
        print_cleanup_result(c.console, item)
    exit_with_code(error_exit_code(sum(r.failed for r in results)))
