"""Helpers for CLI tests."""

from __future__ import annotations

from types import ModuleType

import pytest

from gx.cli.context import CLIContext
from gx.output.console import MockConsole


def use_context(monkeypatch: pytest.MonkeyPatch, module: ModuleType, ctx: CLIContext) -> None:
    """Make `module.build_context()` return `ctx`."""
    monkeypatch.setattr(module, "build_context", lambda: ctx)


def console_of(ctx: CLIContext) -> MockConsole:
    assert isinstance(ctx.console, MockConsole)
    return ctx.console
