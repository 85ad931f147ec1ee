"""Platform abstraction layer."""

from .paths import (
    changes_dir,
    config_path,
    home,
    recovery_dir,
    state_dir,
    user_config_dir,
)
from .process import (
    ProcessError,
    run,
)

__all__ = [
    # paths
    "changes_dir",
    "config_path",
    "home",
    "recovery_dir",
    "state_dir",
    "user_config_dir",
    # process
    "ProcessError",
    "run",
]
