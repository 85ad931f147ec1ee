"""Tests for gx.services.github (the `gh` process is faked)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from gx.core.result import Err, Ok, Result
from gx.platform.process import ProcessError
from gx.services import github
from gx.services.github import GitHubClient, PrState, parse_pr_number


class FakeGh:
    """Replays canned results and records every command."""

    def __init__(self, *results: Result[str, ProcessError]) -> None:
        self.results = list(results)
        self.calls: list[list[str]] = []

    def __call__(
        self, cmd: list[str], cwd: Path, env: object = None, *, timeout: float | None = None
    ) -> Result[str, ProcessError]:
        self.calls.append(cmd)
        return self.results.pop(0)


def _fail(stderr: str) -> Result[str, ProcessError]:
    return Err(ProcessError(command=("gh",), returncode=1, stdout="", stderr=stderr))


@pytest.fixture
def client(tmp_path: Path) -> GitHubClient:
    return GitHubClient(cwd=tmp_path, sleep=lambda _: None)


def _install(monkeypatch: pytest.MonkeyPatch, fake: FakeGh) -> FakeGh:
    monkeypatch.setattr(github, "run_process", fake)
    return fake


def test_parse_pr_number() -> None:
    assert parse_pr_number("https://github.com/org/a/pull/42") == 42
    assert parse_pr_number("no url here") is None


class TestCreatePr:
    def test_parses_url_from_last_line(
        self, client: GitHubClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        output = "Creating pull request\nhttps://github.com/org/a/pull/9\n"
        fake = _install(monkeypatch, FakeGh(Ok(output)))

        result = client.create_pr("org/a", "GX-1", title="t", body="b", base="main", draft=True)

        assert isinstance(result, Ok)
        assert result.value.number == 9
        assert result.value.draft
        assert "--draft" in fake.calls[0]
        assert fake.calls[0][fake.calls[0].index("--head") + 1] == "GX-1"

    def test_missing_url_is_invalid_output(
        self, client: GitHubClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _install(monkeypatch, FakeGh(Ok("something odd\n")))

        result = client.create_pr("org/a", "GX-1", title="t", body="b", base="main")

        assert isinstance(result, Err)
        assert result.error.kind == "invalid_output"

    def test_writes_are_not_retried(
        self, client: GitHubClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        fake = _install(monkeypatch, FakeGh(_fail("HTTP 503 service unavailable")))

        result = client.create_pr("org/a", "GX-1", title="t", body="b", base="main")

        assert isinstance(result, Err)
        assert len(fake.calls) == 1


class TestListPrs:
    def test_parses_search_output(
        self, client: GitHubClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        payload = [
            {
                "number": 3,
                "title": "bump",
                "state": "OPEN",
                "url": "https://github.com/org/a/pull/3",
                "repository": {"nameWithOwner": "org/a"},
                "author": {"login": "dev"},
                "isDraft": True,
            },
            {"number": 4, "state": "MERGED", "repository": {"nameWithOwner": "org/b"}},
            {"title": "no number"},
        ]
        _install(monkeypatch, FakeGh(Ok(json.dumps(payload))))

        result = client.list_prs_by_change_id("org", "GX-1")

        assert isinstance(result, Ok)
        first, second = result.value
        assert (first.repo_slug, first.number, first.author) == ("org/a", 3, "dev")
        assert first.draft
        assert first.branch == "GX-1"
        assert second.state is PrState.MERGED
        assert not second.is_open

    def test_retries_transient_failures(
        self, client: GitHubClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        fake = _install(monkeypatch, FakeGh(_fail("connection reset by peer"), Ok("[]")))

        assert client.list_prs_by_change_id("org", "GX-1") == Ok([])
        assert len(fake.calls) == 2

    def test_permanent_failure_not_retried(
        self, client: GitHubClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        fake = _install(monkeypatch, FakeGh(_fail("authentication required")))

        result = client.list_prs_by_change_id("org", "GX-1")

        assert isinstance(result, Err)
        assert result.error.hint == "authentication required"
        assert len(fake.calls) == 1

    def test_invalid_json(self, client: GitHubClient, monkeypatch: pytest.MonkeyPatch) -> None:
        _install(monkeypatch, FakeGh(Ok("{")))
        result = client.list_prs_by_change_id("org", "GX-1")
        assert isinstance(result, Err)
        assert result.error.kind == "invalid_output"


class TestBranches:
    def test_missing_branch_counts_as_deleted(
        self, client: GitHubClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _install(monkeypatch, FakeGh(_fail("gh: Reference does not exist (HTTP 422)")))
        assert client.delete_remote_branch("org/a", "GX-1") == Ok(None)

    def test_other_delete_failure(
        self, client: GitHubClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _install(monkeypatch, FakeGh(_fail("permission denied")))
        assert isinstance(client.delete_remote_branch("org/a", "GX-1"), Err)

    def test_list_with_prefix(self, client: GitHubClient, monkeypatch: pytest.MonkeyPatch) -> None:
        _install(monkeypatch, FakeGh(Ok("main\nGX-1\nfeature\nGX-2\n")))
        assert client.list_branches_with_prefix("org/a", "GX-") == Ok(["GX-1", "GX-2"])


class TestApproveAndMerge:
    def test_refused_approval_still_merges(
        self, client: GitHubClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        fake = _install(monkeypatch, FakeGh(_fail("cannot approve your own PR"), Ok("")))

        assert client.approve_and_merge_pr("org/a", 5, admin=True) == Ok(None)
        assert fake.calls[1][:3] == ["gh", "pr", "merge"]
        assert "--admin" in fake.calls[1]


def test_ensure_gh_available(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(github.shutil, "which", lambda _: None)
    result = github.ensure_gh_available()
    assert isinstance(result, Err)
    assert result.error.kind == "gh_missing"
