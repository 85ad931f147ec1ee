"""GitHub access through the `gh` CLI.

Read commands retry transient network failures; mutating commands run
once. Removal of something already gone (a deleted branch, a 404/422
from the API) is reported as success so cleanup paths stay idempotent.
"""

from __future__ import annotations

import json
import logging
import re
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Literal

from gx.core.result import Err, Ok, Result
from gx.core.structured import as_obj_list, as_str_dict, get_int, get_str, get_table
from gx.platform.process import ProcessError
from gx.platform.process import run as run_process

__all__ = [
    "GH_READ_RETRY_ATTEMPTS",
    "GH_TIMEOUT_SECONDS",
    "GitHubClient",
    "GitHubError",
    "PrInfo",
    "PrState",
    "ensure_gh_available",
    "parse_pr_number",
]

logger = logging.getLogger(__name__)

GH_TIMEOUT_SECONDS = 60.0
GH_READ_RETRY_ATTEMPTS = 3
GH_READ_RETRY_DELAY_SECONDS = 1.0
PR_LIST_LIMIT = 100

_PR_NUMBER_RE = re.compile(r"/pull/(\d+)")
_MISSING_MARKERS = ("not found", "does not exist", "http 404")

GitHubErrorKind = Literal[
    "gh_missing",
    "command_failed",
    "invalid_output",
]


@dataclass(frozen=True, slots=True)
class GitHubError:
    kind: GitHubErrorKind
    message: str
    hint: str | None = None

    @property
    def is_missing_target(self) -> bool:
        text = f"{self.message}\n{self.hint or ''}".lower()
        return any(marker in text for marker in _MISSING_MARKERS)

    def __str__(self) -> str:
        return f"{self.message}: {self.hint}" if self.hint else self.message


class PrState(Enum):
    OPEN = "open"
    CLOSED = "closed"
    MERGED = "merged"

    @classmethod
    def parse(cls, value: str | None) -> PrState:
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.CLOSED


@dataclass(frozen=True, slots=True)
class PrInfo:
    """A pull request as reported by GitHub."""

    repo_slug: str
    number: int
    url: str
    branch: str
    title: str = ""
    author: str = ""
    state: PrState = PrState.OPEN
    draft: bool = False

    @property
    def is_open(self) -> bool:
        return self.state is PrState.OPEN


def _is_transient_gh_error(error: ProcessError) -> bool:
    if error.timed_out:
        return True
    text = f"{error.stderr}\n{error.stdout}".lower()
    markers = (
        "timed out",
        "timeout",
        "connection reset",
        "connection refused",
        "temporarily unavailable",
        "service unavailable",
        "bad gateway",
        "gateway timeout",
        "network is unreachable",
        "http 429",
        "http 502",
        "http 503",
        "http 504",
    )
    return any(marker in text for marker in markers)


def ensure_gh_available() -> Result[None, GitHubError]:
    if shutil.which("gh") is None:
        return Err(
            GitHubError(
                kind="gh_missing",
                message="gh: missing",
                hint="Install GitHub CLI: https://cli.github.com/",
            )
        )
    return Ok(None)


def parse_pr_number(url: str) -> int | None:
    m = _PR_NUMBER_RE.search(url)
    return int(m.group(1)) if m else None


class GitHubClient:
    """Thin, injectable wrapper over `gh` commands."""

    def __init__(
        self,
        *,
        cwd: Path | None = None,
        retry_attempts: int = GH_READ_RETRY_ATTEMPTS,
        retry_delay: float = GH_READ_RETRY_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._cwd = cwd
        self._retry_attempts = max(1, retry_attempts)
        self._retry_delay = retry_delay
        self._sleep = sleep

    # -------------------------------------------------------------------------
    # Pull requests
    # -------------------------------------------------------------------------

    def create_pr(
        self,
        slug: str,
        branch: str,
        *,
        title: str,
        body: str,
        base: str,
        draft: bool = False,
    ) -> Result[PrInfo, GitHubError]:
        """Open a PR for an already-pushed branch."""
        cmd = [
            "gh", "pr", "create",
            "--repo", slug,
            "--head", branch,
            "--base", base,
            "--title", title,
            "--body", body,
        ]  # fmt: skip
        if draft:
            cmd.append("--draft")

        result = self._write(cmd, f"failed to create PR for {slug}")
        if isinstance(result, Err):
            return result

        lines = [ln.strip() for ln in result.value.splitlines() if ln.strip()]
        url = lines[-1] if lines else ""
        number = parse_pr_number(url)
        if number is None:
            return Err(
                GitHubError(
                    kind="invalid_output",
                    message=f"gh pr create returned no PR URL for {slug}",
                    hint=result.value.strip() or None,
                )
            )
        logger.info("created PR #%d in %s: %s", number, slug, url)
        return Ok(
            PrInfo(
                repo_slug=slug,
                number=number,
                url=url,
                branch=branch,
                title=title,
                draft=draft,
            )
        )

    def list_prs_by_change_id(self, org: str, change_id: str) -> Result[list[PrInfo], GitHubError]:
        """All PRs in `org` whose head branch is the change id."""
        result = self._read(
            [
                "gh", "search", "prs",
                "--owner", org,
                "--head", change_id,
                "--json", "number,title,state,url,repository,author,isDraft",
                "--limit", str(PR_LIST_LIMIT),
            ],
            f"failed to list PRs for {change_id} in {org}",
        )  # fmt: skip
        if isinstance(result, Err):
            return result
        return _parse_pr_list(result.value, branch=change_id)

    def approve_and_merge_pr(
        self, slug: str, number: int, *, admin: bool = False
    ) -> Result[None, GitHubError]:
        """Approve, then squash-merge and delete the head branch.

        A refused approval (e.g. on your own PR) is logged and the merge is
        still attempted; branch protection decides.
        """
        approve = self._write(
            ["gh", "pr", "review", str(number), "--repo", slug, "--approve"],
            f"failed to approve PR #{number} in {slug}",
        )
        if isinstance(approve, Err):
            logger.warning("%s", approve.error)

        cmd = ["gh", "pr", "merge", str(number), "--repo", slug, "--squash", "--delete-branch"]
        if admin:
            cmd.append("--admin")
        return self._write(cmd, f"failed to merge PR #{number} in {slug}").map(_discard)

    def close_pr(self, slug: str, number: int) -> Result[None, GitHubError]:
        return self._write(
            ["gh", "pr", "close", str(number), "--repo", slug],
            f"failed to close PR #{number} in {slug}",
        ).map(_discard)

    # -------------------------------------------------------------------------
    # Branches
    # -------------------------------------------------------------------------

    def delete_remote_branch(self, slug: str, branch: str) -> Result[None, GitHubError]:
        """Delete a branch ref; an already-missing branch counts as deleted."""
        result = self._write(
            ["gh", "api", "-X", "DELETE", f"repos/{slug}/git/refs/heads/{branch}"],
            f"failed to delete branch {branch} in {slug}",
        )
        if isinstance(result, Err):
            if result.error.is_missing_target:
                logger.debug("branch %s already gone in %s", branch, slug)
                return Ok(None)
            return result
        return Ok(None)

    def list_branches_with_prefix(self, slug: str, prefix: str) -> Result[list[str], GitHubError]:
        result = self._read(
            ["gh", "api", "--paginate", f"repos/{slug}/branches", "--jq", ".[].name"],
            f"failed to list branches in {slug}",
        )
        if isinstance(result, Err):
            return result
        names = [ln.strip() for ln in result.value.splitlines()]
        return Ok([n for n in names if n and n.startswith(prefix)])

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _read(self, cmd: list[str], message: str) -> Result[str, GitHubError]:
        cwd = self._cwd or Path.cwd()
        for attempt in range(self._retry_attempts):
            result = run_process(cmd, cwd=cwd, timeout=GH_TIMEOUT_SECONDS)
            if isinstance(result, Ok):
                return result

            error = result.error
            if attempt < self._retry_attempts - 1 and _is_transient_gh_error(error):
                logger.debug("transient gh failure, retrying: %s", error.output)
                self._sleep(self._retry_delay * (attempt + 1))
                continue
            return Err(_command_failed(message, error))

        return Err(GitHubError(kind="command_failed", message=message))

    def _write(self, cmd: list[str], message: str) -> Result[str, GitHubError]:
        result = run_process(cmd, cwd=self._cwd or Path.cwd(), timeout=GH_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return Err(_command_failed(message, result.error))
        return result


def _command_failed(message: str, error: ProcessError) -> GitHubError:
    return GitHubError(kind="command_failed", message=message, hint=error.output or None)


def _parse_pr_list(output: str, *, branch: str) -> Result[list[PrInfo], GitHubError]:
    text = output.strip()
    if not text:
        return Ok([])

    try:
        obj: object = json.loads(text)
    except json.JSONDecodeError as e:
        return Err(GitHubError(kind="invalid_output", message=f"invalid JSON from gh: {e}"))

    items = as_obj_list(obj)
    if items is None:
        return Err(GitHubError(kind="invalid_output", message="expected a JSON list of PRs"))

    prs: list[PrInfo] = []
    for item in items:
        d = as_str_dict(item)
        if d is None:
            continue
        number = get_int(d, "number")
        repository = get_table(d, "repository") or {}
        slug = get_str(repository, "nameWithOwner")
        if number is None or slug is None:
            logger.debug("skipping malformed PR entry: %r", item)
            continue
        author = get_table(d, "author") or {}
        prs.append(
            PrInfo(
                repo_slug=slug,
                number=number,
                url=get_str(d, "url") or "",
                branch=get_str(d, "headRefName") or branch,
                title=get_str(d, "title") or "",
                author=get_str(author, "login") or "",
                state=PrState.parse(get_str(d, "state")),
                draft=d.get("isDraft") is True,
            )
        )
    return Ok(prs)


def _discard(_: str) -> None:
    return None
