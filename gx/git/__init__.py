"""Git operations module.

This module provides abstractions for git operations:
- Repository: Single repository operations
- Discovery and pattern selection of repositories below a directory

Usage:
    from gx.git import Repository, discover_repos, filter_repos

    repos = filter_repos(discover_repos(Path.cwd()), ["api"])
    for ref in repos:
        status = Repository(ref.path).status()
        if status.is_ok():
            print(f"{ref.label}: {status.unwrap().branch}")
"""

from gx.git.discovery import (
    RepoRef,
    discover_repos,
    filter_repos,
    parse_slug,
    read_origin_url,
)
from gx.git.repository import (
    GitError,
    GitStatus,
    Repository,
    StatusEntry,
)

__all__ = [
    # Discovery
    "RepoRef",
    "discover_repos",
    "filter_repos",
    "parse_slug",
    "read_origin_url",
    # Single repo
    "GitError",
    "GitStatus",
    "Repository",
    "StatusEntry",
]
