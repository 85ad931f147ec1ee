"""Rollback commands - inspect and replay transactions left behind by a crash."""

from __future__ import annotations

from datetime import timedelta

import typer

from gx.cli.commands._helpers import exit_on_error, exit_with_code, exit_with_error
from gx.cli.context import CLIContext, build_context
from gx.core.duration import parse_duration
from gx.core.errors import ErrorCode
from gx.core.result import Err, Ok
from gx.output.console import Style
from gx.output.report import print_rollback_report, print_transaction_state, print_validation
from gx.txn import TransactionState, execute_recovery, validate_rollback_operations

rollback_app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _load_state(c: CLIContext, transaction_id: str) -> TransactionState:
    match c.recovery_store.load(transaction_id):
        case Ok(state):
            return state
        case Err(e):
            c.console.error(e.message)
            if e.hint:
                c.console.print(f"hint: {e.hint}", Style.DIM)
            exit_with_code(int(ErrorCode.USER_ERROR))


@rollback_app.command("list")
def list_transactions() -> None:
    """List pending transactions, newest first."""
    c = build_context()
    states = c.recovery_store.list_states()
    if not states:
        c.console.print("no pending transactions", Style.DIM)
        return

    c.console.header(f"{len(states)} pending transaction(s)")
    for state in states:
        print_transaction_state(c.console, state)


@rollback_app.command("validate")
def validate(transaction_id: str = typer.Argument(..., help="Transaction id")) -> None:
    """Check that a transaction's rollback actions can still run."""
    c = build_context()
    state = _load_state(c, transaction_id)

    result = validate_rollback_operations(state.rollback_actions)
    print_validation(c.console, result)
    if not result.is_valid:
        exit_with_code(int(ErrorCode.REPO_ERROR))


@rollback_app.command("execute")
def execute(
    transaction_id: str = typer.Argument(..., help="Transaction id"),
    force: bool = typer.Option(False, "--force", help="Run even if validation finds errors"),
) -> None:
    """Replay a transaction's rollback actions, newest first."""
    c = build_context()
    state = _load_state(c, transaction_id)

    validation = validate_rollback_operations(state.rollback_actions)
    print_validation(c.console, validation)
    if not validation.is_valid:
        if not force:
            c.console.print("hint: fix the errors above or rerun with --force", Style.DIM)
            exit_with_code(int(ErrorCode.REPO_ERROR))
        c.console.warning("validation failed; continuing because of --force")

    match execute_recovery(c.recovery_store, transaction_id):
        case Err(error):
            exit_with_error(error, c, ErrorCode.IO_ERROR)
        case Ok(report):
            pass

    print_rollback_report(c.console, report, label=transaction_id)
    if report.complete:
        c.console.success(f"transaction {transaction_id} rolled back")
        return
    exit_with_code(int(ErrorCode.REPO_ERROR))


@rollback_app.command("cleanup")
def cleanup(
    transaction_id: str | None = typer.Argument(None, help="Transaction id (default: all)"),
    older_than: str | None = typer.Option(
        None, "--older-than", help="Only states older than this (e.g. 30m, 7d)"
    ),
) -> None:
    """Delete recovery states without running them."""
    c = build_context()
    store = c.recovery_store

    if transaction_id is not None:
        exit_on_error(store.delete(transaction_id), c)
        c.console.success(f"deleted {transaction_id}")
        return

    age: timedelta | None = None
    if older_than is not None:
        match parse_duration(older_than):
            case Ok(value):
                age = value
            case Err(message):
                c.console.error(message)
                exit_with_code(int(ErrorCode.USER_ERROR))

    summary = store.cleanup(older_than=age)
    c.console.success(f"deleted {summary.removed} recovery state(s)")

    if age is not None and age.days >= 1:
        removed = c.change_store.cleanup_old(age.days)
        if removed:
            c.console.print(f"deleted {removed} finished change state(s)", Style.DIM)

    if summary.failed:
        c.console.error(f"{summary.failed} state(s) could not be deleted")
        exit_with_code(int(ErrorCode.IO_ERROR))
