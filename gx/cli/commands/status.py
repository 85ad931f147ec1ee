"""Status command - pending changes across repositories."""

from __future__ import annotations

import typer

from gx.cli.commands._helpers import exit_with_code, select_repos
from gx.cli.context import build_context
from gx.core.errors import error_exit_code
from gx.output.console import Style
from gx.output.report import print_status, print_status_summary
from gx.services.status import get_summary, status_all


def status(
    patterns: list[str] | None = typer.Argument(None, help="Repository name/slug patterns"),
    detailed: bool = typer.Option(False, "--detailed", "-d", help="Show modified files"),
    fetch: bool = typer.Option(False, "--fetch", "-f", help="Fetch remotes first"),
    jobs: int | None = typer.Option(None, "--jobs", "-j", min=1, help="Worker pool size"),
) -> None:
    """Check pending changes in every repository."""
    c = build_context()
    repos = select_repos(c, patterns)

    if fetch:
        c.console.print("Fetching remotes...", Style.DIM)
    statuses = status_all(repos, jobs=c.jobs(jobs), fetch=fetch)

    # Buckets: errors, then pending, then clean
    errors = [s for s in statuses if not s.ok]
    pending = [s for s in statuses if s.is_dirty or s.has_divergence]
    clean = [s for s in statuses if s.is_clean and not s.has_divergence]

    if pending:
        c.console.header("PENDING")
        for s in pending:
            print_status(c.console, s, detailed=detailed)
    if clean:
        c.console.header(f"OK ({len(clean)})")
        for s in clean:
            print_status(c.console, s)
    if errors:
        c.console.header("ERRORS")
        for s in errors:
            print_status(c.console, s)

    summary = get_summary(statuses)
    print_status_summary(c.console, summary)
    exit_with_code(error_exit_code(summary["errors"]))
