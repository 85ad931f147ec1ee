"""Logging setup for the CLI.

Library modules only ever call `logging.getLogger(__name__)`; this is
the one place handlers are attached. Log records go to stderr through
Rich so they never interleave with report lines on stdout.
"""

from __future__ import annotations

import logging
from pathlib import Path

__all__ = ["LOG_FORMAT", "parse_level", "setup_logging"]

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(threadName)s]: %(message)s"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


def parse_level(name: str | None, default: int = logging.WARNING) -> int:
    if not name:
        return default
    return _LEVELS.get(name.strip().lower(), default)


def setup_logging(level: int = logging.WARNING, log_file: Path | None = None) -> None:
    """Attach a stderr RichHandler, plus a plain FileHandler if requested.

    Calling it again replaces the handlers installed by a previous call.
    """
    from rich.console import Console
    from rich.logging import RichHandler

    root = logging.getLogger()
    for handler in [h for h in root.handlers if getattr(h, "_gx_handler", False)]:
        root.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(
        console=Console(stderr=True),
        level=level,
        show_path=False,
        rich_tracebacks=level <= logging.DEBUG,
        markup=False,
    )
    console_handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    console_handler._gx_handler = True  # type: ignore[attr-defined]
    root.addHandler(console_handler)

    effective = level
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        file_handler._gx_handler = True  # type: ignore[attr-defined]
        root.addHandler(file_handler)
        effective = logging.DEBUG

    root.setLevel(effective)
