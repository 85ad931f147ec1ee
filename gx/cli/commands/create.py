"""Create commands - apply one change to many repositories."""

from __future__ import annotations

from dataclasses import dataclass

import typer

from gx.cli.commands._helpers import exit_with_code, select_repos
from gx.cli.context import build_context
from gx.core.errors import ErrorCode
from gx.core.ids import TransactionIdGenerator, default_change_id
from gx.output.console import Style
from gx.output.report import print_change_outcome, print_create_summary
from gx.services.create import (
    ChangePipeline,
    ChangeRequest,
    PrMode,
    create_changes,
    record_change_state,
)
from gx.services.files import AddFile, Change, DeleteFiles, RegexSubstitute, Substitute

create_app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@dataclass(frozen=True, slots=True)
class CreateOptions:
    """Options shared by every create subcommand."""

    repos: list[str]
    files: list[str]
    change_id: str | None
    commit: str | None
    pr: PrMode
    jobs: int | None
    show_diff: bool


@create_app.callback()
def create(
    ctx: typer.Context,
    repos: list[str] = typer.Option(
        [], "--repo", "-r", help="Repository name/slug patterns (default: all)"
    ),
    files: list[str] = typer.Option(
        [], "--files", "-f", help="Glob patterns, relative to each repository root"
    ),
    change_id: str | None = typer.Option(
        None, "--change-id", help="Branch name (default: GX-<timestamp>)"
    ),
    commit: str | None = typer.Option(
        None, "--commit", "-c", help="Commit message; without it the run is a dry run"
    ),
    pr: bool = typer.Option(False, "--pr", help="Open a pull request after pushing"),
    draft: bool = typer.Option(False, "--draft", help="Open a draft pull request"),
    jobs: int | None = typer.Option(None, "--jobs", "-j", min=1, help="Worker pool size"),
    show_diff: bool = typer.Option(False, "--show-diff", help="Print a diff per file"),
) -> None:
    """Branch, edit, commit, push and open PRs across repositories."""
    mode = PrMode.NONE
    if draft:
        mode = PrMode.DRAFT
    elif pr:
        mode = PrMode.READY

    ctx.obj = CreateOptions(
        repos=repos,
        files=files,
        change_id=change_id,
        commit=commit,
        pr=mode,
        jobs=jobs,
        show_diff=show_diff,
    )


def _run(options: CreateOptions, change: Change) -> None:
    c = build_context()
    if not isinstance(change, AddFile) and not options.files:
        c.console.error("--files is required for this change")
        c.console.print("hint: pass a glob such as --files '**/*.md'", Style.DIM)
        exit_with_code(int(ErrorCode.USER_ERROR))
    targets = select_repos(c, options.repos)

    if options.pr is not PrMode.NONE and options.commit is None:
        c.console.warning("--pr/--draft ignored without --commit")

    request = ChangeRequest(
        change=change,
        change_id=options.change_id or default_change_id(),
        commit_message=options.commit,
        pr=options.pr,
        base_branch=c.config.github.base_branch,
        pr_body_footer=c.config.github.pr_body_footer,
    )
    pipeline = ChangePipeline(
        request,
        ids=TransactionIdGenerator(),
        store=c.recovery_store,
    )

    c.console.header(f"{request.change_id}: {len(targets)} repositories")
    summary = create_changes(
        targets,
        pipeline,
        jobs=c.jobs(options.jobs),
        on_outcome=lambda o: print_change_outcome(c.console, o, show_diff=options.show_diff),
    )
    print_create_summary(c.console, summary)

    state = record_change_state(c.change_store, request, summary)
    if state is not None:
        c.console.print(f"change tracked as {state.change_id}")

    exit_with_code(summary.exit_code)


@create_app.command("add")
def add(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="File to create, relative to the repository root"),
    content: str = typer.Argument(..., help="File content"),
) -> None:
    """Create a new file in every repository."""
    _run(ctx.obj, AddFile(path=path, content=content))


@create_app.command("delete")
def delete(ctx: typer.Context) -> None:
    """Delete the files matching --files."""
    options: CreateOptions = ctx.obj
    _run(options, DeleteFiles(patterns=tuple(options.files)))


@create_app.command("sub")
def sub(
    ctx: typer.Context,
    old: str = typer.Argument(..., help="Text to replace"),
    new: str = typer.Argument(..., help="Replacement text"),
) -> None:
    """Replace literal text in the files matching --files."""
    options: CreateOptions = ctx.obj
    _run(options, Substitute(patterns=tuple(options.files), old=old, new=new))


@create_app.command("regex")
def regex(
    ctx: typer.Context,
    pattern: str = typer.Argument(..., help="Regular expression"),
    replacement: str = typer.Argument(..., help="Replacement (\\1 or \\g<name> for groups)"),
) -> None:
    """Replace regex matches in the files matching --files."""
    options: CreateOptions = ctx.obj
    _run(
        options,
        RegexSubstitute(
            patterns=tuple(options.files), pattern=pattern, replacement=replacement
        ),
    )
