"""Human-readable reports for fan-out commands.

Every repository gets exactly one line, printed as its result arrives,
followed by a summary once all results are in.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from gx.core.duration import format_duration
from gx.output.console import Style

if TYPE_CHECKING:
    from gx.git.repository import GitStatus
    from gx.output.console import ConsoleProtocol
    from gx.services.changes import ChangeState
    from gx.services.cleanup import CleanupResult
    from gx.services.create import ChangeOutcome, CreateSummary
    from gx.services.files import SubstitutionStats
    from gx.services.github import PrInfo
    from gx.services.review import ReviewResult, ReviewSummary
    from gx.services.status import RepoStatus
    from gx.txn.recovery import ValidationResult
    from gx.txn.store import TransactionState
    from gx.txn.transaction import RollbackReport

__all__ = [
    "print_change_outcome",
    "print_cleanup_result",
    "print_cleanable_change",
    "print_create_summary",
    "print_pr",
    "print_review_result",
    "print_review_summary",
    "print_rollback_report",
    "print_status",
    "print_status_summary",
    "print_transaction_state",
    "print_validation",
]


def _files(n: int) -> str:
    return f"{n} file" if n == 1 else f"{n} files"


# -----------------------------------------------------------------------------
# create
# -----------------------------------------------------------------------------


def print_change_outcome(
    console: ConsoleProtocol, outcome: ChangeOutcome, *, show_diff: bool = False
) -> None:
    label = outcome.repo.label

    if outcome.error is not None:
        console.error(f"{label}: {outcome.error}")
    elif outcome.is_noop:
        console.print(f"-- {label}: no matching files", Style.DIM)
    else:
        line = f"{label}: {outcome.action.value} ({_files(len(outcome.files_affected))})"
        if outcome.pr is not None:
            line += f" {outcome.pr.url}"
        console.success(line)

    if outcome.warning is not None:
        console.warning(f"{label}: {outcome.warning}")
    if outcome.rollback_incomplete and outcome.rollback is not None:
        print_rollback_report(console, outcome.rollback, label=label)

    if show_diff and outcome.error is None:
        for header, diff in outcome.diffs:
            console.print(f"  {header}", Style.BOLD)
            if diff:
                console.print(diff, Style.DIFF)


def _print_stats(console: ConsoleProtocol, stats: SubstitutionStats) -> None:
    console.print(
        f"  scanned {stats.files_scanned}, changed {stats.files_changed}, "
        f"no matches {stats.files_no_matches}, unchanged {stats.files_no_change}, "
        f"{stats.total_matches} match(es)",
        Style.DIM,
    )


def print_create_summary(console: ConsoleProtocol, summary: CreateSummary) -> None:
    from gx.services.create import CreateAction

    console.header("Summary")
    parts = [
        f"{summary.count(CreateAction.DRY_RUN)} dry run",
        f"{summary.count(CreateAction.COMMITTED)} committed",
        f"{summary.count(CreateAction.PR_CREATED)} PRs created",
        f"{summary.noops} unchanged",
        f"{summary.errors} errors",
    ]
    style = Style.ERROR if summary.errors else Style.DEFAULT
    console.print(", ".join(parts), style)
    if summary.stats is not None:
        _print_stats(console, summary.stats)


def print_rollback_report(
    console: ConsoleProtocol, report: RollbackReport, *, label: str | None = None
) -> None:
    prefix = f"{label}: " if label else ""
    line = (
        f"{prefix}rollback: {report.succeeded} succeeded, {report.failed} failed"
        + (f", {report.not_run} not run" if report.not_run else "")
        + (f", {report.skipped_cleanup} cleanup skipped" if report.skipped_cleanup else "")
    )
    if report.complete:
        console.print(line, Style.DIM)
        return
    console.warning(line)
    for failure in report.failures:
        console.print(
            f"  [{failure.operation_type}] {failure.description}: {failure.message}", Style.DIM
        )
    if report.halted:
        console.print("  repository is partially reverted; inspect it before retrying", Style.DIM)


# -----------------------------------------------------------------------------
# rollback
# -----------------------------------------------------------------------------


def print_transaction_state(
    console: ConsoleProtocol, state: TransactionState, *, now: datetime | None = None
) -> None:
    age = format_duration((now or datetime.now(UTC)) - state.created)
    console.print(f"{state.transaction_id}  ({age} ago)", Style.BOLD)
    console.print(
        f"  {state.operation_count} operations, {len(state.rollback_actions)} rollback actions, "
        f"{len(state.rollback_points)} rollback points",
        Style.DIM,
    )
    counts = state.counts_by_type()
    if counts:
        by_type = ", ".join(f"{op}: {n}" for op, n in sorted(counts.items()))
        console.print(f"  {by_type}", Style.DIM)


def print_validation(console: ConsoleProtocol, result: ValidationResult) -> None:
    for error in result.errors:
        console.error(error)
    for warning in result.warnings:
        console.warning(warning)
    if result.is_valid and not result.warnings:
        console.success("rollback operations look safe")


# -----------------------------------------------------------------------------
# review / cleanup
# -----------------------------------------------------------------------------


def print_pr(console: ConsoleProtocol, pr: PrInfo) -> None:
    state = "draft" if pr.draft and pr.is_open else pr.state.value
    console.print(f"PR #{pr.number}: {pr.title} ({state})", Style.BOLD)
    console.print(f"  Repository: {pr.repo_slug}")
    console.print(f"  Branch: {pr.branch}")
    if pr.author:
        console.print(f"  Author: {pr.author}")
    console.print(f"  URL: {pr.url}", Style.DIM)


def print_review_result(console: ConsoleProtocol, result: ReviewResult) -> None:
    ref = f"{result.repo_slug}#{result.pr_number}" if result.pr_number else result.repo_slug
    if result.error is not None:
        console.error(f"{ref}: {result.action.value}: {result.error}")
        return
    detail = f" ({result.detail})" if result.detail else ""
    console.success(f"{ref}: {result.action.value}{detail}")


def print_review_summary(console: ConsoleProtocol, summary: ReviewSummary) -> None:
    console.header("Summary")
    style = Style.ERROR if summary.errors else Style.DEFAULT
    console.print(f"{summary.succeeded} succeeded, {summary.errors} errors", style)


def print_cleanable_change(console: ConsoleProtocol, state: ChangeState) -> None:
    from gx.services.changes import RepoChangeStatus

    merged = sum(1 for r in state.repositories.values() if r.status is RepoChangeStatus.PR_MERGED)
    console.print(
        f"{state.change_id} ({len(state.repositories)} repos, {merged} merged, "
        f"{len(state.open_prs())} open, {len(state.repos_needing_cleanup())} need cleanup)",
        Style.BOLD,
    )
    if state.description:
        console.print(f"  {state.description}", Style.DIM)


def print_cleanup_result(console: ConsoleProtocol, result: CleanupResult) -> None:
    console.header(f"Cleanup for {result.change_id}")
    console.print(f"  {result.cleaned} branches cleaned, {result.skipped} skipped")
    if result.failed:
        console.print(f"  {result.failed} failed", Style.ERROR)
        for error in result.errors:
            console.print(f"    - {error}", Style.DIM)
    if result.state_removed:
        console.success("change state removed")


# -----------------------------------------------------------------------------
# status
# -----------------------------------------------------------------------------


def _change_counts(status: GitStatus) -> str:
    """Compact counts, e.g. "2M 1A 3?"."""
    entries = status.entries
    parts = [
        (sum(1 for e in entries if "M" in e.xy), "M"),
        (sum(1 for e in entries if e.xy[0] == "A"), "A"),
        (sum(1 for e in entries if "D" in e.xy), "D"),
        (status.untracked_count, "?"),
    ]
    return " ".join(f"{n}{marker}" for n, marker in parts if n)


def _divergence(status: GitStatus) -> str:
    parts: list[str] = []
    if status.ahead:
        parts.append(f"{status.ahead}^")
    if status.behind:
        parts.append(f"{status.behind}v")
    return " ".join(parts)


def _entry_marker(xy: str) -> str:
    if xy == "??":
        return "?"
    return xy[0] if xy[0] != " " else xy[1]


def print_status(console: ConsoleProtocol, status: RepoStatus, *, detailed: bool = False) -> None:
    label = status.repo.label
    if status.error is not None or status.status is None:
        console.error(f"{label}: {status.error}")
        return

    s = status.status
    if s.is_clean and not s.has_divergence:
        console.print(f"  {label}", Style.SUCCESS)
        return

    line = "  ".join(part for part in (s.branch or "?", _change_counts(s), _divergence(s)) if part)
    console.print(f"{label}", Style.BOLD)
    console.print(f"  {line}", Style.WARNING)
    if detailed:
        for entry in s.entries:
            console.print(f"    {_entry_marker(entry.xy)} {entry.path}", Style.DIM)


def print_status_summary(console: ConsoleProtocol, summary: dict[str, int]) -> None:
    console.header("Summary")
    console.print(
        f"{summary['total']} repos: {summary['clean']} clean, {summary['dirty']} dirty, "
        f"{summary['diverged']} diverged, {summary['errors']} errors",
        Style.ERROR if summary["errors"] else Style.DEFAULT,
    )
