"""CLI fixtures: a CLIContext over temp directories with a capturing console."""

from __future__ import annotations

from pathlib import Path

import pytest

from gx.cli.context import CLIContext
from gx.core.config import Config
from gx.output.console import MockConsole


@pytest.fixture
def cli_context(tmp_path: Path) -> CLIContext:
    work = tmp_path / "work"
    work.mkdir()
    return CLIContext(
        config=Config(jobs=2),
        console=MockConsole(),
        cwd=work,
        state_dir=tmp_path / "state",
        max_depth=2,
    )
