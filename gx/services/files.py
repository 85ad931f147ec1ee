"""File mutation primitives for `gx create`.

Planning is separated from applying: `plan_change` reads the repository
and computes every edit (new content plus diff) without touching
anything. The pipeline then applies the plan one edit at a time,
backing files up first so each step can be compensated.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from gx.core.result import Err, Ok, Result
from gx.platform.files import copy_preserving

from .diff import generate_diff

__all__ = [
    "AddFile",
    "BACKUP_DIR_NAME",
    "Change",
    "ChangePlan",
    "DeleteFiles",
    "EditError",
    "PlannedEdit",
    "RegexSubstitute",
    "Substitute",
    "SubstitutionStats",
    "apply_edit",
    "backup_file",
    "backup_path",
    "find_files",
    "plan_change",
]

logger = logging.getLogger(__name__)

BACKUP_DIR_NAME = "gx-backups"

EditErrorKind = Literal["file_exists", "invalid_pattern", "io_error"]
EditKind = Literal["create", "modify", "delete"]


@dataclass(frozen=True, slots=True)
class EditError:
    kind: EditErrorKind
    message: str
    hint: str | None = None

    def __str__(self) -> str:
        return self.message


# -----------------------------------------------------------------------------
# Change requests
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AddFile:
    """Create one new file; fails if it already exists."""

    path: str
    content: str


@dataclass(frozen=True, slots=True)
class DeleteFiles:
    patterns: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class Substitute:
    """Literal, case-sensitive replacement of every occurrence."""

    patterns: tuple[str, ...]
    old: str
    new: str


@dataclass(frozen=True, slots=True)
class RegexSubstitute:
    """Regex replacement; `replacement` may use `\\1` style group refs."""

    patterns: tuple[str, ...]
    pattern: str
    replacement: str


type Change = AddFile | DeleteFiles | Substitute | RegexSubstitute


# -----------------------------------------------------------------------------
# Plans
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SubstitutionStats:
    files_scanned: int = 0
    files_changed: int = 0
    files_no_matches: int = 0
    files_no_change: int = 0
    total_matches: int = 0

    def __add__(self, other: SubstitutionStats) -> SubstitutionStats:
        return SubstitutionStats(
            files_scanned=self.files_scanned + other.files_scanned,
            files_changed=self.files_changed + other.files_changed,
            files_no_matches=self.files_no_matches + other.files_no_matches,
            files_no_change=self.files_no_change + other.files_no_change,
            total_matches=self.total_matches + other.total_matches,
        )


@dataclass(frozen=True, slots=True)
class PlannedEdit:
    """One file edit, fully computed.

    Attributes:
        relpath: Path relative to the repository root (posix separators)
        kind: create, modify or delete
        new_content: Content to write (None for delete)
        diff: Unified diff of the edit
    """

    relpath: str
    kind: EditKind
    new_content: str | None
    diff: str

    @property
    def marker(self) -> str:
        return {"create": "A", "modify": "M", "delete": "D"}[self.kind]


@dataclass(frozen=True, slots=True)
class ChangePlan:
    edits: tuple[PlannedEdit, ...] = ()
    stats: SubstitutionStats | None = None

    @property
    def is_empty(self) -> bool:
        return not self.edits

    @property
    def files(self) -> tuple[str, ...]:
        return tuple(e.relpath for e in self.edits)


# -----------------------------------------------------------------------------
# Planning
# -----------------------------------------------------------------------------


def find_files(root: Path, patterns: Sequence[str]) -> list[str]:
    """Files under `root` matching any glob pattern, as sorted relative paths.

    Patterns are relative to `root` and support `**`. Nothing inside
    `.git` is ever returned, and neither is anything that resolves
    outside `root`.
    """
    base = root.resolve()
    found: set[str] = set()
    for pattern in patterns:
        pattern = pattern.strip().lstrip("/")
        if not pattern:
            continue
        for path in root.glob(pattern):
            if not path.is_file():
                continue
            rel = path.relative_to(root)
            if ".git" in rel.parts:
                continue
            if not _is_within(base, path):
                logger.warning("ignoring %s: outside %s", rel.as_posix(), root)
                continue
            found.add(rel.as_posix())
    return sorted(found)


def plan_change(root: Path, change: Change) -> Result[ChangePlan, EditError]:
    """Compute every edit `change` makes in the repository at `root`."""
    match change:
        case AddFile(path=path, content=content):
            return _plan_add(root, path, content)
        case DeleteFiles(patterns=patterns):
            return _plan_delete(root, patterns)
        case Substitute(patterns=patterns, old=old, new=new):
            if not old:
                return Err(
                    EditError(kind="invalid_pattern", message="Substitution text cannot be empty")
                )
            return _plan_substitute(
                root, patterns, lambda text: (text.replace(old, new), text.count(old))
            )
        case RegexSubstitute(patterns=patterns, pattern=pattern, replacement=replacement):
            try:
                regex = re.compile(pattern)
            except re.error as e:
                return Err(
                    EditError(
                        kind="invalid_pattern",
                        message=f"Invalid regex pattern {pattern!r}: {e}",
                    )
                )
            try:
                return _plan_substitute(
                    root, patterns, lambda text: regex.subn(replacement, text)
                )
            except re.error as e:
                return Err(
                    EditError(
                        kind="invalid_pattern",
                        message=f"Invalid replacement {replacement!r}: {e}",
                    )
                )


def _plan_add(root: Path, path: str, content: str) -> Result[ChangePlan, EditError]:
    relpath = Path(path.lstrip("/")).as_posix()
    if not _is_within(root.resolve(), root / relpath):
        return Err(
            EditError(kind="invalid_pattern", message=f"Path escapes the repository: {relpath}")
        )
    if (root / relpath).exists():
        return Err(EditError(kind="file_exists", message=f"File already exists: {relpath}"))
    if content and not content.endswith("\n"):
        content += "\n"
    edit = PlannedEdit(
        relpath=relpath,
        kind="create",
        new_content=content,
        diff=generate_diff("", content, path=relpath),
    )
    return Ok(ChangePlan(edits=(edit,)))


def _plan_delete(root: Path, patterns: Sequence[str]) -> Result[ChangePlan, EditError]:
    edits: list[PlannedEdit] = []
    for relpath in find_files(root, patterns):
        try:
            old = _read_text(root / relpath, errors="replace")
        except OSError as e:
            return Err(EditError(kind="io_error", message=f"Cannot read {relpath}: {e}"))
        edits.append(
            PlannedEdit(
                relpath=relpath,
                kind="delete",
                new_content=None,
                diff=generate_diff(old, "", path=relpath),
            )
        )
    return Ok(ChangePlan(edits=tuple(edits)))


def _plan_substitute(
    root: Path,
    patterns: Sequence[str],
    substitute: Callable[[str], tuple[str, int]],
) -> Result[ChangePlan, EditError]:
    edits: list[PlannedEdit] = []
    stats = SubstitutionStats()

    for relpath in find_files(root, patterns):
        try:
            old = _read_text(root / relpath)
        except UnicodeDecodeError:
            logger.debug("skipping non-text file %s", relpath)
            stats += SubstitutionStats(files_scanned=1, files_no_matches=1)
            continue
        except OSError as e:
            return Err(EditError(kind="io_error", message=f"Cannot read {relpath}: {e}"))

        new, count = substitute(old)
        if count == 0:
            stats += SubstitutionStats(files_scanned=1, files_no_matches=1)
            continue
        if new == old:
            stats += SubstitutionStats(files_scanned=1, files_no_change=1, total_matches=count)
            continue

        stats += SubstitutionStats(files_scanned=1, files_changed=1, total_matches=count)
        edits.append(
            PlannedEdit(
                relpath=relpath,
                kind="modify",
                new_content=new,
                diff=generate_diff(old, new, path=relpath),
            )
        )

    return Ok(ChangePlan(edits=tuple(edits), stats=stats))


# -----------------------------------------------------------------------------
# Applying
# -----------------------------------------------------------------------------


def backup_path(root: Path, transaction_id: str, relpath: str) -> Path:
    """Where the backup of `relpath` lives; inside .git so it is never staged."""
    return root / ".git" / BACKUP_DIR_NAME / transaction_id / f"{relpath}.backup"


def backup_file(root: Path, transaction_id: str, relpath: str) -> Result[Path, EditError]:
    dst = backup_path(root, transaction_id, relpath)
    try:
        copy_preserving(root / relpath, dst)
    except OSError as e:
        return Err(EditError(kind="io_error", message=f"Cannot back up {relpath}: {e}"))
    return Ok(dst)


def apply_edit(root: Path, edit: PlannedEdit) -> Result[None, EditError]:
    """Perform one planned edit on disk."""
    target = root / edit.relpath
    try:
        match edit.kind:
            case "delete":
                target.unlink()
            case "create" | "modify":
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(edit.new_content or "", encoding="utf-8", newline="")
    except OSError as e:
        return Err(EditError(kind="io_error", message=f"Cannot write {edit.relpath}: {e}"))
    return Ok(None)


def _is_within(base: Path, path: Path) -> bool:
    return path.resolve().is_relative_to(base)


def _read_text(path: Path, *, errors: str = "strict") -> str:
    # newline="" keeps CRLF intact so untouched lines are written back as-is
    with path.open(encoding="utf-8", errors=errors, newline="") as handle:
        return handle.read()
