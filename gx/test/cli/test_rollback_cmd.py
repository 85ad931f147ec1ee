from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest
import typer

import gx.cli.commands.rollback as rollback_cmd
from gx.cli.context import CLIContext
from gx.core.errors import ErrorCode
from gx.core.result import Err, Result
from gx.test._git import MakeRepo
from gx.test.cli._ctx import console_of, use_context
from gx.txn.actions import RemoveFile, RestoreFile, to_record
from gx.txn.store import RecoveryError, RecoveryStore, TransactionState


def _pending(ctx: CLIContext, repo: Path, *, broken: bool = False) -> Path:
    created = repo / "created.txt"
    created.write_text("x\n", encoding="utf-8")
    actions = [to_record(RemoveFile(repo_path=str(repo), target=str(created)))]
    if broken:
        restore = RestoreFile(
            repo_path=str(repo), target=str(repo / "README.md"), backup=str(repo / "gone.backup")
        )
        actions.append(to_record(restore))
    ctx.recovery_store.save(
        TransactionState(
            transaction_id="tx-1",
            rollback_actions=tuple(actions),
            rollback_points=("files modified",),
            operation_count=len(actions),
            created_at=datetime(2026, 1, 1, tzinfo=UTC).isoformat(),
        )
    )
    return created


@pytest.fixture
def ctx(cli_context: CLIContext, monkeypatch: pytest.MonkeyPatch) -> CLIContext:
    use_context(monkeypatch, rollback_cmd, cli_context)
    return cli_context


def test_list_empty(ctx: CLIContext) -> None:
    rollback_cmd.list_transactions()
    assert console_of(ctx).messages == ["no pending transactions"]


def test_list_pending(ctx: CLIContext, make_repo: MakeRepo) -> None:
    _pending(ctx, make_repo("alpha"))

    rollback_cmd.list_transactions()

    console = console_of(ctx)
    assert console.messages[0] == "1 pending transaction(s)"
    assert console.find("tx-1")


def test_execute_replays_and_deletes_state(ctx: CLIContext, make_repo: MakeRepo) -> None:
    created = _pending(ctx, make_repo("alpha"))

    rollback_cmd.execute("tx-1", force=False)

    assert not created.exists()
    assert ctx.recovery_store.list_states() == []
    assert console_of(ctx).find("transaction tx-1 rolled back")


def test_execute_store_failure_is_io_error(
    ctx: CLIContext, make_repo: MakeRepo, monkeypatch: pytest.MonkeyPatch
) -> None:
    _pending(ctx, make_repo("alpha"))

    def unreadable(store: RecoveryStore, transaction_id: str) -> Result[None, RecoveryError]:
        return Err(RecoveryError(kind="io_error", message="disk gone", hint="check ~/.gx"))

    monkeypatch.setattr(rollback_cmd, "execute_recovery", unreadable)

    with pytest.raises(typer.Exit) as exc:
        rollback_cmd.execute("tx-1", force=False)

    assert exc.value.exit_code == ErrorCode.IO_ERROR
    console = console_of(ctx)
    assert console.find("disk gone")
    assert console.find("hint: check ~/.gx")


def test_execute_refuses_invalid_plan(ctx: CLIContext, make_repo: MakeRepo) -> None:
    created = _pending(ctx, make_repo("alpha"), broken=True)

    with pytest.raises(typer.Exit) as exc:
        rollback_cmd.execute("tx-1", force=False)

    assert exc.value.exit_code == ErrorCode.REPO_ERROR
    assert created.exists()
    assert console_of(ctx).find("rerun with --force")


def test_execute_forced_reports_incomplete(ctx: CLIContext, make_repo: MakeRepo) -> None:
    created = _pending(ctx, make_repo("alpha"), broken=True)

    with pytest.raises(typer.Exit) as exc:
        rollback_cmd.execute("tx-1", force=True)

    assert exc.value.exit_code == ErrorCode.REPO_ERROR
    assert not created.exists()
    assert console_of(ctx).has_warning()


def test_validate_unknown_transaction(ctx: CLIContext) -> None:
    with pytest.raises(typer.Exit) as exc:
        rollback_cmd.validate("tx-404")
    assert exc.value.exit_code == ErrorCode.USER_ERROR


def test_cleanup_one_and_bad_duration(ctx: CLIContext, make_repo: MakeRepo) -> None:
    _pending(ctx, make_repo("alpha"))

    rollback_cmd.cleanup("tx-1", older_than=None)
    assert ctx.recovery_store.list_states() == []

    with pytest.raises(typer.Exit) as exc:
        rollback_cmd.cleanup(None, older_than="soon")
    assert exc.value.exit_code == ErrorCode.USER_ERROR


def test_cleanup_all(ctx: CLIContext, make_repo: MakeRepo) -> None:
    _pending(ctx, make_repo("alpha"))

    rollback_cmd.cleanup(None, older_than="1d")

    assert ctx.recovery_store.list_states() == []
    assert console_of(ctx).find("deleted 1 recovery state(s)")
