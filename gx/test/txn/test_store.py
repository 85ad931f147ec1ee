"""Tests for gx.txn.store."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

from gx.core.result import Err, Ok
from gx.txn.actions import ActionRecord
from gx.txn.store import RecoveryStore, TransactionState

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


def _state(tx_id: str, created: datetime = NOW) -> TransactionState:
    return TransactionState(
        transaction_id=tx_id,
        rollback_actions=(
            ActionRecord(
                description="Remove created file /r/a",
                operation_type="FileOperation",
                repo_path="/r",
                parameters=("remove_file", "/r/a"),
            ),
            ActionRecord(
                description="Switch back to main and delete branch GX-1",
                operation_type="BranchOperation",
                repo_path="/r",
                parameters=("restore_branch", "main", "GX-1"),
            ),
        ),
        rollback_points=("Point 1: branch created (after 1 operations)",),
        operation_count=2,
        created_at=created.isoformat(),
    )


class TestSaveLoad:
    def test_roundtrip(self, tmp_path: Path) -> None:
        store = RecoveryStore(tmp_path)
        state = _state("tx-1")

        assert store.save(state) == Ok(None)

        assert store.load("tx-1") == Ok(state)
        assert store.path_for("tx-1") == tmp_path / "tx-1.json"

    def test_file_layout(self, tmp_path: Path) -> None:
        store = RecoveryStore(tmp_path)
        store.save(_state("tx-1"))

        data = json.loads((tmp_path / "tx-1.json").read_text(encoding="utf-8"))

        assert set(data) == {
            "transaction_id",
            "rollback_actions",
            "rollback_points",
            "operation_count",
            "created_at",
        }
        assert data["rollback_actions"][1]["parameters"] == ["restore_branch", "main", "GX-1"]

    def test_missing(self, tmp_path: Path) -> None:
        result = RecoveryStore(tmp_path).load("nope")
        assert isinstance(result, Err)
        assert result.error.kind == "not_found"
        assert result.error.hint is not None

    def test_invalid_json(self, tmp_path: Path) -> None:
        (tmp_path / "bad.json").write_text("{not json", encoding="utf-8")
        result = RecoveryStore(tmp_path).load("bad")
        assert isinstance(result, Err)
        assert result.error.kind == "parse_error"

    def test_unknown_operation_type(self, tmp_path: Path) -> None:
        data = _state("tx-1").to_dict()
        data["rollback_actions"] = [
            {"description": "d", "operation_type": "Magic", "repo_path": "/r", "parameters": []}
        ]
        (tmp_path / "tx-1.json").write_text(json.dumps(data), encoding="utf-8")

        result = RecoveryStore(tmp_path).load("tx-1")

        assert isinstance(result, Err)
        assert "unknown operation_type" in result.error.message


class TestListing:
    def test_newest_first_and_skips_corrupt(self, tmp_path: Path) -> None:
        store = RecoveryStore(tmp_path)
        store.save(_state("tx-old", NOW - timedelta(hours=2)))
        store.save(_state("tx-new", NOW))
        (tmp_path / "junk.json").write_text("[]", encoding="utf-8")

        assert [s.transaction_id for s in store.list_states()] == ["tx-new", "tx-old"]

    def test_missing_directory(self, tmp_path: Path) -> None:
        assert RecoveryStore(tmp_path / "absent").list_states() == []

    def test_counts_by_type(self) -> None:
        assert _state("tx").counts_by_type() == {"FileOperation": 1, "BranchOperation": 1}


class TestDeleteAndCleanup:
    def test_delete(self, tmp_path: Path) -> None:
        store = RecoveryStore(tmp_path)
        store.save(_state("tx-1"))

        assert store.delete("tx-1") == Ok(None)
        assert not store.exists("tx-1")

        missing = store.delete("tx-1")
        assert isinstance(missing, Err)
        assert missing.error.kind == "not_found"
        assert store.delete("tx-1", missing_ok=True) == Ok(None)

    def test_cleanup_all(self, tmp_path: Path) -> None:
        store = RecoveryStore(tmp_path)
        store.save(_state("a"))
        store.save(_state("b"))

        summary = store.cleanup()

        assert summary.removed == 2
        assert store.list_states() == []

    def test_cleanup_older_than(self, tmp_path: Path) -> None:
        store = RecoveryStore(tmp_path)
        store.save(_state("old", NOW - timedelta(days=10)))
        store.save(_state("recent", NOW - timedelta(hours=1)))

        summary = store.cleanup(older_than=timedelta(days=7), now=NOW)

        assert summary.removed == 1
        assert [s.transaction_id for s in store.list_states()] == ["recent"]
