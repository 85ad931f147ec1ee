"""Tests for gx.txn.actions."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from gx.core.result import Err, Ok
from gx.git.repository import GitError
from gx.txn.actions import (
    CLEANUP_TAG,
    ActionRecord,
    Callback,
    Compensation,
    DeleteBackup,
    DeleteRemoteBranch,
    OperationType,
    PopStash,
    RemoveFile,
    RepoFactory,
    ResetCommit,
    ResetHard,
    RestoreBranch,
    RestoreFile,
    compensation_from_record,
    is_cleanup,
    to_record,
)


def _factory(repo: MagicMock) -> RepoFactory:
    return lambda _path: repo


# =============================================================================
# Records
# =============================================================================


class TestRecords:
    """Every persistable kind survives to_record -> compensation_from_record."""

    @pytest.mark.parametrize(
        "action",
        [
            RestoreFile(repo_path="/r", target="/r/a.txt", backup="/r/.git/b/a.txt.backup"),
            RemoveFile(repo_path="/r", target="/r/new.txt"),
            DeleteBackup(repo_path="/r", backup="/r/.git/b/a.txt.backup"),
            ResetHard(repo_path="/r"),
            ResetCommit(repo_path="/r"),
            RestoreBranch(repo_path="/r", original="main", created="GX-1"),
            PopStash(repo_path="/r", stash_ref="stash@{0}"),
            DeleteRemoteBranch(repo_path="/r", branch="GX-1"),
        ],
    )
    def test_rebuild(self, action: Compensation) -> None:
        record = to_record(action)
        assert record.parameters[0] == action.TAG
        assert compensation_from_record(record) == Ok(action)

    def test_operation_types(self) -> None:
        assert to_record(ResetHard(repo_path="/r")).operation_type == "FileOperation"
        assert to_record(ResetCommit(repo_path="/r")).operation_type == "GitOperation"
        assert to_record(RestoreBranch("/r", "main", "x")).operation_type == "BranchOperation"
        assert to_record(PopStash("/r", "s")).operation_type == "StashOperation"
        assert to_record(DeleteRemoteBranch("/r", "x")).operation_type == "RemoteOperation"

    def test_unknown_tag(self) -> None:
        record = ActionRecord("x", "FileOperation", "/r", ("shred_disk",))
        result = compensation_from_record(record)
        assert isinstance(result, Err)
        assert "cannot reconstruct" in result.error

    def test_wrong_arity(self) -> None:
        record = ActionRecord("x", "FileOperation", "/r", ("restore_file", "/only-target"))
        assert isinstance(compensation_from_record(record), Err)

    def test_unknown_operation_type(self) -> None:
        record = ActionRecord("x", "TimeTravel", "/r", ("reset_hard",))
        result = compensation_from_record(record)
        assert isinstance(result, Err)
        assert "unknown operation type" in result.error

    def test_operation_type_mismatch(self) -> None:
        record = ActionRecord("x", "RemoteOperation", "/r", ("reset_hard",))
        assert isinstance(compensation_from_record(record), Err)

    def test_from_dict_rejects_non_string_parameters(self) -> None:
        data: dict[str, object] = {
            "description": "d",
            "operation_type": "FileOperation",
            "repo_path": "/r",
            "parameters": ["reset_hard", 3],
        }
        assert ActionRecord.from_dict(data) is None

    def test_cleanup_detection(self) -> None:
        backup = DeleteBackup(repo_path="/r", backup="/b")
        assert backup.description.startswith(CLEANUP_TAG)
        assert is_cleanup(backup)
        assert to_record(backup).is_cleanup
        assert not is_cleanup(ResetHard(repo_path="/r"))


# =============================================================================
# File actions
# =============================================================================


class TestFileActions:
    def test_restore_file(self, tmp_path: Path) -> None:
        target = tmp_path / "a.txt"
        target.write_text("edited", encoding="utf-8")
        backup_dir = tmp_path / ".git" / "gx-backups" / "tx-1"
        backup_dir.mkdir(parents=True)
        backup = backup_dir / "a.txt.backup"
        backup.write_text("original", encoding="utf-8")

        action = RestoreFile(repo_path=str(tmp_path), target=str(target), backup=str(backup))

        assert action.run(_factory(MagicMock())) == Ok(None)
        assert target.read_text(encoding="utf-8") == "original"
        assert not backup.exists()
        assert not (tmp_path / ".git" / "gx-backups").exists()
        assert (tmp_path / ".git").is_dir()

    def test_restore_recreates_deleted_file(self, tmp_path: Path) -> None:
        backup = tmp_path / ".git" / "gx-backups" / "tx" / "sub" / "gone.txt.backup"
        backup.parent.mkdir(parents=True)
        backup.write_text("content", encoding="utf-8")
        target = tmp_path / "sub" / "gone.txt"

        action = RestoreFile(repo_path=str(tmp_path), target=str(target), backup=str(backup))

        assert action.run(_factory(MagicMock())) == Ok(None)
        assert target.read_text(encoding="utf-8") == "content"

    def test_restore_without_backup_fails(self, tmp_path: Path) -> None:
        action = RestoreFile(
            repo_path=str(tmp_path), target=str(tmp_path / "a"), backup=str(tmp_path / "missing")
        )
        result = action.run(_factory(MagicMock()))
        assert isinstance(result, Err)
        assert "backup not found" in result.error

    def test_remove_file_is_idempotent(self, tmp_path: Path) -> None:
        target = tmp_path / "new.txt"
        target.write_text("x", encoding="utf-8")
        action = RemoveFile(repo_path=str(tmp_path), target=str(target))

        assert action.run(_factory(MagicMock())) == Ok(None)
        assert not target.exists()
        assert action.run(_factory(MagicMock())) == Ok(None)

    def test_remove_file_prunes_created_parents(self, tmp_path: Path) -> None:
        (tmp_path / "keep").mkdir()
        (tmp_path / "keep" / "other.txt").write_text("y", encoding="utf-8")
        target = tmp_path / "keep" / "a" / "b" / "notes.txt"
        target.parent.mkdir(parents=True)
        target.write_text("x", encoding="utf-8")
        action = RemoveFile(repo_path=str(tmp_path), target=str(target))

        assert action.run(_factory(MagicMock())) == Ok(None)
        assert not (tmp_path / "keep" / "a").exists()
        assert (tmp_path / "keep" / "other.txt").exists()
        assert tmp_path.exists()

    def test_delete_backup(self, tmp_path: Path) -> None:
        backup = tmp_path / ".git" / "gx-backups" / "tx" / "a.backup"
        backup.parent.mkdir(parents=True)
        backup.write_text("x", encoding="utf-8")

        action = DeleteBackup(repo_path=str(tmp_path), backup=str(backup))

        assert action.run(_factory(MagicMock())) == Ok(None)
        assert not (tmp_path / ".git" / "gx-backups").exists()


# =============================================================================
# Git actions
# =============================================================================


class TestGitActions:
    def test_reset_hard_maps_error(self) -> None:
        repo = MagicMock()
        repo.reset_hard.return_value = Err(GitError("reset", "locked"))

        result = ResetHard(repo_path="/r").run(_factory(repo))

        assert result == Err("git reset: locked")

    def test_restore_branch(self) -> None:
        repo = MagicMock()
        repo.switch_branch.return_value = Ok(None)
        repo.delete_local_branch.return_value = Ok(None)

        result = RestoreBranch("/r", original="main", created="GX-1").run(_factory(repo))

        assert result == Ok(None)
        repo.switch_branch.assert_called_once_with("main")
        repo.delete_local_branch.assert_called_once_with("GX-1")

    def test_restore_branch_tolerates_missing_branch(self) -> None:
        repo = MagicMock()
        repo.switch_branch.return_value = Ok(None)
        repo.delete_local_branch.return_value = Err(GitError("branch", "branch 'GX-1' not found."))

        assert RestoreBranch("/r", "main", "GX-1").run(_factory(repo)) == Ok(None)

    def test_restore_branch_switch_failure(self) -> None:
        repo = MagicMock()
        repo.switch_branch.return_value = Err(GitError("checkout", "conflict"))

        result = RestoreBranch("/r", "main", "GX-1").run(_factory(repo))

        assert isinstance(result, Err)
        repo.delete_local_branch.assert_not_called()

    def test_delete_remote_branch_tolerates_absent(self) -> None:
        repo = MagicMock()
        repo.delete_remote_branch.return_value = Err(
            GitError("push", "error: unable to delete 'GX-1': remote ref does not exist")
        )

        assert DeleteRemoteBranch("/r", "GX-1").run(_factory(repo)) == Ok(None)

    def test_pop_stash(self) -> None:
        repo = MagicMock()
        repo.stash_pop.return_value = Ok(None)

        assert PopStash("/r", "stash@{1}").run(_factory(repo)) == Ok(None)
        repo.stash_pop.assert_called_once_with("stash@{1}")


class TestCallback:
    def test_runs_function(self) -> None:
        calls: list[str] = []

        def undo() -> Ok[None]:
            calls.append("undo")
            return Ok(None)

        action = Callback(fn=undo, label="undo thing", operation_type=OperationType.STASH)

        assert action.run(_factory(MagicMock())) == Ok(None)
        assert calls == ["undo"]
        assert action.OPERATION is OperationType.STASH
        assert action.description == "undo thing"
