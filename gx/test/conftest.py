"""Shared fixtures: throwaway git repositories with a bare origin."""

from __future__ import annotations

from pathlib import Path

import pytest

from gx.test._git import MakeRepo, git


@pytest.fixture
def git_identity(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Commit identity from the environment; ignore the user's git config."""
    monkeypatch.setenv("GIT_AUTHOR_NAME", "gx tests")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "gx@example.invalid")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "gx tests")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "gx@example.invalid")
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    empty = tmp_path / "gitconfig"
    empty.write_text("", encoding="utf-8")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(empty))


@pytest.fixture
def make_repo(tmp_path: Path, git_identity: None) -> MakeRepo:
    """Factory: a committed repository on `main`, pushed to a bare origin."""

    def make(name: str, files: dict[str, str] | None = None, *, origin: bool = True) -> Path:
        work = tmp_path / "work" / name
        work.mkdir(parents=True)
        git(work, "init", "-q", "-b", "main")

        for rel, content in (files or {"README.md": f"# {name}\n"}).items():
            target = work / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8", newline="")
        git(work, "add", "--all")
        git(work, "commit", "-q", "-m", "initial")

        if origin:
            bare = tmp_path / "remotes" / f"{name}.git"
            bare.parent.mkdir(parents=True, exist_ok=True)
            git(tmp_path, "init", "-q", "--bare", str(bare))
            git(work, "remote", "add", "origin", str(bare))
            git(work, "push", "-q", "-u", "origin", "main")
        return work

    return make

