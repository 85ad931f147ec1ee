"""Review commands - act on the pull requests of a change."""

from __future__ import annotations

import typer

from gx.cli.commands._helpers import (
    exit_on_error,
    exit_with_code,
    exit_with_error,
    select_repos,
)
from gx.cli.context import CLIContext, build_context
from gx.core.errors import ErrorCode
from gx.core.result import Err, Ok
from gx.output.console import Style
from gx.output.report import print_pr, print_review_result, print_review_summary
from gx.services.github import GitHubClient, PrInfo, ensure_gh_available
from gx.services.review import (
    approve_prs,
    delete_prs,
    list_change_prs,
    purge_branches,
    record_review,
    resolve_orgs,
)

review_app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

_ORG_OPTION = typer.Option(None, "--org", "-o", help="GitHub organization (default: from config)")
_JOBS_OPTION = typer.Option(None, "--jobs", "-j", min=1, help="Worker pool size")


def _github(c: CLIContext) -> GitHubClient:
    exit_on_error(ensure_gh_available(), c, ErrorCode.ENV_ERROR)
    return GitHubClient()


def _find_prs(c: CLIContext, github: GitHubClient, change_id: str, org: str | None) -> list[PrInfo]:
    repos = [] if org or c.config.default_user_org else c.repos()
    orgs = resolve_orgs(org, c.config.default_user_org, repos)
    if not orgs:
        c.console.error("no organization to search")
        c.console.print("hint: pass --org or set default_user_org in config", Style.DIM)
        exit_with_code(int(ErrorCode.USER_ERROR))

    match list_change_prs(github, orgs, change_id):
        case Err(error):
            exit_with_error(error, c, ErrorCode.NETWORK_ERROR)
        case Ok(prs):
            return prs


@review_app.command("ls")
def ls(
    change_id: str = typer.Argument(..., help="Change id (head branch)"),
    org: str | None = _ORG_OPTION,
) -> None:
    """List the pull requests of a change."""
    c = build_context()
    prs = _find_prs(c, _github(c), change_id, org)
    if not prs:
        c.console.print(f"no PRs found for {change_id}", Style.DIM)
        return

    for pr in prs:
        print_pr(c.console, pr)
        c.console.newline()
    open_count = sum(1 for pr in prs if pr.is_open)
    c.console.print(f"{len(prs)} PR(s), {open_count} open")


@review_app.command("approve")
def approve(
    change_id: str = typer.Argument(..., help="Change id (head branch)"),
    org: str | None = _ORG_OPTION,
    admin: bool = typer.Option(False, "--admin", help="Merge with admin privileges"),
    jobs: int | None = _JOBS_OPTION,
) -> None:
    """Approve and squash-merge the open pull requests of a change."""
    c = build_context()
    github = _github(c)
    prs = _find_prs(c, github, change_id, org)

    summary = approve_prs(
        github,
        prs,
        change_id,
        admin=admin,
        jobs=c.jobs(jobs),
        on_result=lambda r: print_review_result(c.console, r),
    )
    print_review_summary(c.console, summary)
    record_review(c.change_store, change_id, summary)
    exit_with_code(summary.exit_code)


@review_app.command("delete")
def delete(
    change_id: str = typer.Argument(..., help="Change id (head branch)"),
    org: str | None = _ORG_OPTION,
    jobs: int | None = _JOBS_OPTION,
) -> None:
    """Close the open pull requests of a change and delete their branches."""
    c = build_context()
    github = _github(c)
    prs = _find_prs(c, github, change_id, org)

    summary = delete_prs(
        github,
        prs,
        change_id,
        jobs=c.jobs(jobs),
        on_result=lambda r: print_review_result(c.console, r),
    )
    print_review_summary(c.console, summary)
    record_review(c.change_store, change_id, summary)
    exit_with_code(summary.exit_code)


@review_app.command("purge")
def purge(
    patterns: list[str] | None = typer.Argument(None, help="Repository name/slug patterns"),
    jobs: int | None = _JOBS_OPTION,
) -> None:
    """Delete every GX- branch on the remotes of the selected repositories."""
    c = build_context()
    github = _github(c)
    repos = select_repos(c, patterns)

    summary = purge_branches(
        github,
        repos,
        jobs=c.jobs(jobs),
        on_result=lambda r: print_review_result(c.console, r),
    )
    print_review_summary(c.console, summary)
    exit_with_code(summary.exit_code)
