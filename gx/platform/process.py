"""The one place gx starts child processes.

Every git and gh invocation goes through `run`. Output is captured, a
failure comes back as a ProcessError instead of an exception, and the
child never gets a chance to prompt: fan-out runs many of these on
worker threads with no terminal to answer.

Usage:
    result = run(["git", "status", "--porcelain"], cwd=repo_path, timeout=30.0)
    match result:
        case Ok(stdout):
            ...
        case Err(error):
            logger.warning("%s: %s", error, error.output)
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from gx.core.result import Err, Ok, Result

__all__ = ["NONINTERACTIVE_ENV", "ProcessError", "noninteractive_env", "run"]

logger = logging.getLogger(__name__)

# Makes git and gh fail fast instead of waiting for credentials or confirmation
NONINTERACTIVE_ENV: Mapping[str, str] = {
    "GIT_TERMINAL_PROMPT": "0",
    "GH_PROMPT_DISABLED": "1",
    "GH_NO_UPDATE_NOTIFIER": "1",
}


@dataclass(frozen=True, slots=True)
class ProcessError:
    """A command that could not run or exited non-zero.

    Attributes:
        command: argv as executed
        returncode: exit status; -1 when the process never started or was killed
        stdout: captured standard output (may be empty)
        stderr: captured standard error, or our own explanation for -1
        timed_out: True when the timeout expired
    """

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def output(self) -> str:
        """Best available diagnostic text, stderr first."""
        return self.stderr.strip() or self.stdout.strip()

    def __str__(self) -> str:
        shown = " ".join(self.command[:3])
        if len(self.command) > 3:
            shown += " ..."
        if self.timed_out:
            return f"{shown} timed out"
        return f"{shown} failed (exit {self.returncode})"


def noninteractive_env(env: Mapping[str, str] | None = None) -> dict[str, str]:
    """`env` (default: the current environment) with prompts switched off."""
    base = dict(os.environ if env is None else env)
    base.update(NONINTERACTIVE_ENV)
    return base


def run(
    cmd: list[str],
    cwd: Path,
    env: Mapping[str, str] | None = None,
    *,
    timeout: float | None = None,
) -> Result[str, ProcessError]:
    """Run `cmd` in `cwd` and return its stdout.

    `env` replaces the inherited environment; either way the prompt
    switches in NONINTERACTIVE_ENV are forced on.
    """
    command = tuple(cmd)
    started = time.monotonic()
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd),
            env=noninteractive_env(env),
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        logger.debug("%s timed out after %ss", " ".join(command), timeout)
        return Err(
            ProcessError(
                command=command,
                returncode=-1,
                stdout=e.stdout if isinstance(e.stdout, str) else "",
                stderr=f"Command timed out after {timeout}s",
                timed_out=True,
            )
        )
    except OSError as e:
        return Err(ProcessError(command=command, returncode=-1, stdout="", stderr=str(e)))

    logger.debug(
        "%s -> %d in %.2fs (cwd=%s)",
        " ".join(command),
        proc.returncode,
        time.monotonic() - started,
        cwd,
    )
    if proc.returncode != 0:
        return Err(
            ProcessError(
                command=command,
                returncode=proc.returncode,
                stdout=proc.stdout,
                stderr=proc.stderr,
            )
        )
    return Ok(proc.stdout)
