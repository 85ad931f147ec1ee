"""Platform-aware path utilities.

User-level locations only: the global config file and the state
directory holding recovery files and change records.
"""

from __future__ import annotations

import os
import sys
from functools import lru_cache
from pathlib import Path

__all__ = [
    "APP_NAME",
    "changes_dir",
    "clear_caches",
    "config_path",
    "home",
    "recovery_dir",
    "state_dir",
    "user_config_dir",
]

# Application name used for directory naming
APP_NAME = "gx"

# Overrides the state directory (useful for CI and tests)
STATE_DIR_ENV = "GX_STATE_DIR"


def _is_windows() -> bool:
    return sys.platform == "win32"


@lru_cache(maxsize=1)
def home() -> Path:
    """Get user's home directory.

    Uses USERPROFILE on Windows, HOME on Unix, then Path.home().
    """
    if _is_windows():
        userprofile = os.environ.get("USERPROFILE")
        if userprofile:
            return Path(userprofile)
    else:
        home_env = os.environ.get("HOME")
        if home_env:
            return Path(home_env)

    return Path.home()


@lru_cache(maxsize=1)
def user_config_dir() -> Path:
    """Get the user-level configuration directory.

    Location: ~/.config/gx/ (Linux/macOS) or ~/AppData/Roaming/gx/ (Windows)
    """
    if _is_windows():
        app_data = os.environ.get("APPDATA")
        if app_data:
            return Path(app_data) / APP_NAME
        return home() / "AppData" / "Roaming" / APP_NAME

    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / APP_NAME
    return home() / ".config" / APP_NAME


def config_path() -> Path:
    """Default location of config.toml."""
    return user_config_dir() / "config.toml"


@lru_cache(maxsize=1)
def state_dir() -> Path:
    """Root of per-user gx state (~/.gx unless GX_STATE_DIR is set)."""
    override = os.environ.get(STATE_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return home() / f".{APP_NAME}"


def recovery_dir(base: Path | None = None) -> Path:
    """Directory of serialized pending transactions."""
    return (base or state_dir()) / "recovery"


def changes_dir(base: Path | None = None) -> Path:
    """Directory of per-change tracking records."""
    return (base or state_dir()) / "changes"


def clear_caches() -> None:
    """Clear all cached paths.

    Useful for testing when environment variables change.
    """
    home.cache_clear()
    user_config_dir.cache_clear()
    state_dir.cache_clear()
