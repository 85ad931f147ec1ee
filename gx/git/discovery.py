"""Repository discovery and selection.

Finds git repositories below a directory, derives their `org/name` slug
from the origin remote, and narrows the set with user patterns.

Usage:
    repos = discover_repos(Path.cwd(), max_depth=3)
    selected = filter_repos(repos, ["frontend", "acme/api"])
"""

from __future__ import annotations

import fnmatch
import logging
import os
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from gx.core.config import DEFAULT_IGNORE_PATTERNS, DEFAULT_MAX_DEPTH

__all__ = [
    "RepoRef",
    "discover_repos",
    "filter_repos",
    "parse_slug",
    "read_origin_url",
]

logger = logging.getLogger(__name__)

_SECTION_RE = re.compile(r'^\s*\[\s*([^\]\s"]+)(?:\s+"([^"]*)")?\s*\]\s*$')
_URL_RE = re.compile(r"^\s*url\s*=\s*(.+?)\s*$")
# git@github.com:org/name.git
_SCP_RE = re.compile(r"^(?:[^@/]+@)?[^:/]+:(?P<path>[^/].*)$")


@dataclass(frozen=True, slots=True)
class RepoRef:
    """One repository on disk.

    Attributes:
        path: Repository root (the directory containing .git)
        name: Directory name
        slug: "org/name" from the origin URL, None when there is no usable remote
    """

    path: Path
    name: str
    slug: str | None = None

    @classmethod
    def from_path(cls, path: Path) -> RepoRef:
        url = read_origin_url(path)
        return cls(path=path, name=path.name, slug=parse_slug(url) if url else None)

    @property
    def label(self) -> str:
        """Display name: the slug when known, else the directory name."""
        return self.slug or self.name


def read_origin_url(repo_path: Path) -> str | None:
    """Read `remote.origin.url` straight from .git/config."""
    config = repo_path / ".git" / "config"
    try:
        text = config.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None

    in_origin = False
    for line in text.splitlines():
        section = _SECTION_RE.match(line)
        if section:
            in_origin = section.group(1).lower() == "remote" and section.group(2) == "origin"
            continue
        if in_origin:
            m = _URL_RE.match(line)
            if m:
                return m.group(1).strip('"')
    return None


def parse_slug(url: str) -> str | None:
    """Extract "org/name" from a git remote URL.

    Handles scp-like (git@host:org/name.git), https:// and ssh:// forms.
    """
    url = url.strip()
    if not url:
        return None

    if "://" in url:
        path = urlparse(url).path
    else:
        m = _SCP_RE.match(url)
        if not m:
            return None
        path = m.group("path")

    parts = [p for p in path.strip("/").split("/") if p]
    if len(parts) < 2:
        return None

    org, name = parts[-2], parts[-1].removesuffix(".git")
    if not org or not name:
        return None
    return f"{org}/{name}"


def _is_ignored(name: str, ignore: Sequence[str]) -> bool:
    if name.startswith("."):
        return True
    return any(fnmatch.fnmatch(name, pattern) for pattern in ignore)


def discover_repos(
    root: Path,
    max_depth: int = DEFAULT_MAX_DEPTH,
    ignore: Sequence[str] = DEFAULT_IGNORE_PATTERNS,
) -> list[RepoRef]:
    """Find git repositories below `root`.

    `root` itself counts when it is a repository. Below it, the walk stops
    at the first repository on each path (nested checkouts are not
    reported) and never goes deeper than `max_depth` levels.

    Returns:
        RepoRefs sorted case-insensitively by name
    """
    if not root.is_dir():
        return []

    found: list[Path] = []
    if (root / ".git").exists():
        found.append(root)

    def walk(directory: Path, depth: int) -> None:
        if depth > max_depth:
            return
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError as e:
            logger.debug("skipping unreadable directory %s: %s", directory, e)
            return

        for entry in entries:
            if not entry.is_dir(follow_symlinks=False) or _is_ignored(entry.name, ignore):
                continue
            child = Path(entry.path)
            if (child / ".git").exists():
                found.append(child)
                continue
            walk(child, depth + 1)

    walk(root, 1)

    repos = [RepoRef.from_path(p) for p in found]
    logger.debug("discovered %d repositories under %s", len(repos), root)
    return sorted(repos, key=lambda r: (r.name.lower(), str(r.path)))


def filter_repos(repos: Iterable[RepoRef], patterns: Sequence[str]) -> list[RepoRef]:
    """Select repositories with the 4-tier match.

    Tiers, first non-empty wins: exact name, name prefix, exact slug,
    slug prefix. No patterns selects everything.
    """
    repo_list = list(repos)
    if not patterns:
        return repo_list

    tiers = (
        lambda r, p: r.name == p,
        lambda r, p: r.name.startswith(p),
        lambda r, p: r.slug is not None and r.slug == p,
        lambda r, p: r.slug is not None and r.slug.startswith(p),
    )
    for matches in tiers:
        selected = [r for r in repo_list if any(matches(r, p) for p in patterns)]
        if selected:
            return selected
    return []
