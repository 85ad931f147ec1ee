"""End-to-end tests for the create pipeline against real git repositories."""

from __future__ import annotations

from pathlib import Path

import pytest

from gx.core.ids import TransactionIdGenerator
from gx.core.result import Err, Ok, Result
from gx.git.discovery import RepoRef
from gx.git.repository import GitError, Repository
from gx.services.changes import ChangeStore, RepoChangeStatus
from gx.services.create import (
    ChangeOutcome,
    ChangePipeline,
    ChangeRequest,
    CreateAction,
    PrMode,
    create_changes,
    record_change_state,
)
from gx.services.files import AddFile, DeleteFiles, RegexSubstitute, Substitute
from gx.services.github import GitHubClient, GitHubError, PrInfo
from gx.test._git import (
    MakeRepo,
    commit_count,
    current_branch,
    git,
    is_clean,
    local_branches,
    remote_branches,
)
from gx.txn import RecoveryStore

CHANGE_ID = "GX-2026-01-02T03-04-05"


def _ref(path: Path) -> RepoRef:
    # local bare origins have no GitHub slug
    return RepoRef(path=path, name=path.name, slug=f"org/{path.name}")


def _pipeline(request: ChangeRequest, tmp_path: Path, **kwargs: object) -> ChangePipeline:
    return ChangePipeline(
        request,
        ids=TransactionIdGenerator(),
        store=RecoveryStore(tmp_path / "recovery"),
        **kwargs,  # type: ignore[arg-type]
    )


class FailingPush(Repository):
    """Repository whose push is rejected."""

    def push_branch(self, branch: str) -> Result[None, GitError]:
        return Err(GitError(command="push", message="rejected by remote"))


class FailingCommit(Repository):
    """Repository whose commit is refused after staging."""

    def commit(self, message: str) -> Result[None, GitError]:
        return Err(GitError(command="commit", message="pre-commit hook failed"))


class FakeGitHub(GitHubClient):
    def __init__(self, *, fail: bool = False) -> None:
        super().__init__()
        self.fail = fail
        self.created: list[tuple[str, str, bool]] = []

    def create_pr(
        self, slug: str, branch: str, *, title: str, body: str, base: str, draft: bool = False
    ) -> Result[PrInfo, GitHubError]:
        if self.fail:
            return Err(GitHubError(kind="command_failed", message="gh exploded"))
        self.created.append((slug, body, draft))
        url = f"https://github.com/{slug}/pull/12"
        return Ok(PrInfo(slug, 12, url, branch, title, draft=draft))


# =============================================================================
# Single repository
# =============================================================================


class TestCommit:
    def test_add_file_commits_and_pushes(self, make_repo: MakeRepo, tmp_path: Path) -> None:
        repo = make_repo("alpha")
        request = ChangeRequest(
            change=AddFile(path="notes.txt", content="hello"),
            change_id=CHANGE_ID,
            commit_message="add notes",
        )

        outcome = _pipeline(request, tmp_path).run(_ref(repo))

        assert outcome.ok, outcome.error
        assert outcome.action is CreateAction.COMMITTED
        assert outcome.files_affected == ("notes.txt",)
        assert outcome.original_branch == "main"
        assert (repo / "notes.txt").read_text(encoding="utf-8") == "hello\n"
        assert is_clean(repo)
        assert current_branch(repo) == CHANGE_ID
        assert CHANGE_ID in remote_branches(repo)
        assert commit_count(repo) == 2

    def test_success_leaves_no_recovery_state(self, make_repo: MakeRepo, tmp_path: Path) -> None:
        repo = make_repo("alpha")
        request = ChangeRequest(AddFile("notes.txt", "x"), CHANGE_ID, commit_message="m")

        _pipeline(request, tmp_path).run(_ref(repo))

        assert RecoveryStore(tmp_path / "recovery").list_states() == []

    def test_dirty_tree_refused(self, make_repo: MakeRepo, tmp_path: Path) -> None:
        repo = make_repo("alpha")
        (repo / "README.md").write_text("local edit\n", encoding="utf-8")
        request = ChangeRequest(AddFile("notes.txt", "x"), CHANGE_ID, commit_message="m")

        outcome = _pipeline(request, tmp_path).run(_ref(repo))

        assert "uncommitted changes" in (outcome.error or "")
        assert CHANGE_ID not in local_branches(repo)
        assert not (repo / "notes.txt").exists()

    def test_existing_branch_refused(self, make_repo: MakeRepo, tmp_path: Path) -> None:
        repo = make_repo("alpha")
        git(repo, "branch", CHANGE_ID)
        request = ChangeRequest(AddFile("notes.txt", "x"), CHANGE_ID, commit_message="m")

        outcome = _pipeline(request, tmp_path).run(_ref(repo))

        assert outcome.error == f"Branch {CHANGE_ID} already exists"
        assert current_branch(repo) == "main"

    def test_failed_push_rolls_back(self, make_repo: MakeRepo, tmp_path: Path) -> None:
        repo = make_repo("alpha", {"version.txt": "v1.0.0\n"})
        request = ChangeRequest(
            RegexSubstitute(("*.txt",), r"v\d+", "v9"), CHANGE_ID, commit_message="bump"
        )

        outcome = _pipeline(request, tmp_path, repos=FailingPush).run(_ref(repo))

        assert outcome.error is not None
        assert "rejected by remote" in outcome.error
        assert outcome.rollback is not None and outcome.rollback.complete
        assert current_branch(repo) == "main"
        assert CHANGE_ID not in local_branches(repo)
        assert commit_count(repo) == 1
        assert (repo / "version.txt").read_text(encoding="utf-8") == "v1.0.0\n"
        assert is_clean(repo)

    def test_failed_push_restores_deleted_files(
        self, make_repo: MakeRepo, tmp_path: Path
    ) -> None:
        files = {"old/a.cfg": "key = 1\r\n", "old/nested/b.cfg": "x\ty \n", "keep.md": "# keep\n"}
        repo = make_repo("alpha", files)
        before = {rel: (repo / rel).read_bytes() for rel in files}
        request = ChangeRequest(DeleteFiles(("old/**/*.cfg",)), CHANGE_ID, commit_message="drop")

        outcome = _pipeline(request, tmp_path, repos=FailingPush).run(_ref(repo))

        assert outcome.error is not None
        assert outcome.rollback is not None and outcome.rollback.complete
        assert {rel: (repo / rel).read_bytes() for rel in files} == before
        assert not (repo / ".git" / "gx-backups").exists()
        assert current_branch(repo) == "main"
        assert CHANGE_ID not in local_branches(repo)
        assert is_clean(repo)

    def test_failed_commit_resets_staged_changes(
        self, make_repo: MakeRepo, tmp_path: Path
    ) -> None:
        repo = make_repo("alpha", {"version.txt": "v1.0.0\n"})
        request = ChangeRequest(
            Substitute(("*.txt",), "v1.0.0", "v2.0.0"), CHANGE_ID, commit_message="bump"
        )

        outcome = _pipeline(request, tmp_path, repos=FailingCommit).run(_ref(repo))

        assert "pre-commit hook failed" in (outcome.error or "")
        assert outcome.rollback is not None and outcome.rollback.complete
        assert (repo / "version.txt").read_text(encoding="utf-8") == "v1.0.0\n"
        assert is_clean(repo)
        assert current_branch(repo) == "main"
        assert CHANGE_ID not in local_branches(repo)
        assert commit_count(repo) == 1
        assert CHANGE_ID not in remote_branches(repo)


class TestDryRun:
    def test_regex_dry_run_reverts_everything(self, make_repo: MakeRepo, tmp_path: Path) -> None:
        files = {"a.md": "use v1.2.3\n", "b.md": "v0.1.0 and v2.0.0\n", "c.txt": "v1.2.3\n"}
        repo = make_repo("alpha", files)
        request = ChangeRequest(
            RegexSubstitute(("*.md",), r"v\d+\.\d+\.\d+", "vX.X.X"), CHANGE_ID
        )

        outcome = _pipeline(request, tmp_path).run(_ref(repo))

        assert outcome.ok, outcome.error
        assert outcome.action is CreateAction.DRY_RUN
        assert outcome.files_affected == ("a.md", "b.md")
        assert any("+use vX.X.X" in diff for _, diff in outcome.diffs)
        assert outcome.stats is not None and outcome.stats.total_matches == 3
        assert current_branch(repo) == "main"
        assert CHANGE_ID not in local_branches(repo)
        for rel, content in files.items():
            assert (repo / rel).read_text(encoding="utf-8") == content
        assert is_clean(repo)

    def test_substitute_dry_run_keeps_crlf_bytes(
        self, make_repo: MakeRepo, tmp_path: Path
    ) -> None:
        repo = make_repo("alpha", {"app.ini": "[app]\r\nname = old\r\nmode = old\r\n"})
        before = (repo / "app.ini").read_bytes()
        request = ChangeRequest(Substitute(("*.ini",), "old", "new"), CHANGE_ID)

        outcome = _pipeline(request, tmp_path).run(_ref(repo))

        assert outcome.action is CreateAction.DRY_RUN
        assert outcome.stats is not None and outcome.stats.total_matches == 2
        assert (repo / "app.ini").read_bytes() == before
        assert current_branch(repo) == "main"
        assert is_clean(repo)

    def test_add_file_dry_run_removes_created_directories(
        self, make_repo: MakeRepo, tmp_path: Path
    ) -> None:
        repo = make_repo("alpha")
        request = ChangeRequest(AddFile("a/b/notes.txt", "x"), CHANGE_ID)

        outcome = _pipeline(request, tmp_path).run(_ref(repo))

        assert outcome.action is CreateAction.DRY_RUN
        assert not (repo / "a").exists()

    def test_no_matching_files_is_noop(self, make_repo: MakeRepo, tmp_path: Path) -> None:
        repo = make_repo("alpha")
        request = ChangeRequest(RegexSubstitute(("*.rs",), "x", "y"), CHANGE_ID)

        outcome = _pipeline(request, tmp_path).run(_ref(repo))

        assert outcome.is_noop
        assert local_branches(repo) == ["main"]


class TestPullRequests:
    def test_pr_created(self, make_repo: MakeRepo, tmp_path: Path) -> None:
        repo = make_repo("alpha")
        github = FakeGitHub()
        request = ChangeRequest(
            AddFile("notes.txt", "x"),
            CHANGE_ID,
            commit_message="add notes",
            pr=PrMode.DRAFT,
            pr_body_footer="made by gx",
        )

        outcome = _pipeline(request, tmp_path, github=github).run(_ref(repo))

        assert outcome.action is CreateAction.PR_CREATED
        assert outcome.pr is not None and outcome.pr.draft
        assert github.created == [("org/alpha", "add notes\n\nmade by gx", True)]

    def test_failed_pr_keeps_commit(self, make_repo: MakeRepo, tmp_path: Path) -> None:
        repo = make_repo("alpha")
        request = ChangeRequest(
            AddFile("notes.txt", "x"), CHANGE_ID, commit_message="m", pr=PrMode.READY
        )

        outcome = _pipeline(request, tmp_path, github=FakeGitHub(fail=True)).run(_ref(repo))

        assert outcome.ok
        assert outcome.action is CreateAction.COMMITTED
        assert outcome.warning is not None and "gh exploded" in outcome.warning
        assert CHANGE_ID in remote_branches(repo)


# =============================================================================
# Fan-out
# =============================================================================


def test_one_failure_does_not_stop_the_others(make_repo: MakeRepo, tmp_path: Path) -> None:
    paths = [make_repo(name) for name in ("r1", "r2", "r3")]
    failing = paths[1]

    def factory(path: Path) -> Repository:
        return FailingPush(path) if path == failing else Repository(path)

    request = ChangeRequest(AddFile("notes.txt", "x"), CHANGE_ID, commit_message="m")
    seen: list[ChangeOutcome] = []

    summary = create_changes(
        [_ref(p) for p in paths],
        _pipeline(request, tmp_path, repos=factory),
        jobs=3,
        on_outcome=seen.append,
    )

    assert [o.repo.path for o in summary.outcomes] == paths
    assert [o.ok for o in summary.outcomes] == [True, False, True]
    assert summary.errors == 1
    assert summary.exit_code == 1
    assert summary.count(CreateAction.COMMITTED) == 2
    assert len(seen) == 3
    assert CHANGE_ID not in local_branches(failing)


def test_crash_becomes_error_outcome(tmp_path: Path) -> None:
    def factory(path: Path) -> Repository:
        raise RuntimeError("boom")

    request = ChangeRequest(AddFile("notes.txt", "x"), CHANGE_ID)
    ref = RepoRef(path=tmp_path, name="x")

    summary = create_changes([ref], _pipeline(request, tmp_path, repos=factory), jobs=1)

    assert summary.outcomes[0].error == "Unexpected error: boom"
    assert summary.exit_code == 1


# =============================================================================
# Change state
# =============================================================================


class TestRecordChangeState:
    def test_records_committed_repos(self, make_repo: MakeRepo, tmp_path: Path) -> None:
        repo = make_repo("alpha")
        request = ChangeRequest(
            AddFile("notes.txt", "x"), CHANGE_ID, commit_message="m", pr=PrMode.READY
        )
        pipeline = _pipeline(request, tmp_path, github=FakeGitHub())
        summary = create_changes([_ref(repo)], pipeline, jobs=1)
        store = ChangeStore(tmp_path / "changes")

        state = record_change_state(store, request, summary)

        assert state is not None
        entry = state.repositories["org/alpha"]
        assert entry.status is RepoChangeStatus.PR_OPEN
        assert entry.pr_number == 12
        assert entry.local_path == str(repo)
        assert entry.original_branch == "main"
        assert store.load(CHANGE_ID) == Ok(state)

    def test_dry_run_records_nothing(self, make_repo: MakeRepo, tmp_path: Path) -> None:
        repo = make_repo("alpha")
        request = ChangeRequest(AddFile("notes.txt", "x"), CHANGE_ID)
        summary = create_changes([_ref(repo)], _pipeline(request, tmp_path), jobs=1)
        store = ChangeStore(tmp_path / "changes")

        assert record_change_state(store, request, summary) is None
        assert store.list_states() == []


@pytest.mark.parametrize(
    ("footer", "message", "expected"),
    [
        ("", "msg", "msg"),
        ("footer", "msg", "msg\n\nfooter"),
        ("footer", None, "footer"),
    ],
)
def test_pr_body(footer: str, message: str | None, expected: str) -> None:
    request = ChangeRequest(
        AddFile("a", "b"), CHANGE_ID, commit_message=message, pr_body_footer=footer
    )
    assert request.pr_body == expected
