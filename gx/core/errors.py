"""Error codes for CLI exit status.

Setup failures (bad arguments, unreadable config, missing tools) exit with
one of the fixed ErrorCode values. Fan-out commands instead exit with the
number of failed repositories, capped to what a shell can represent.
"""

from enum import IntEnum

__all__ = ["ErrorCode", "MAX_EXIT_CODE", "error_exit_code"]

MAX_EXIT_CODE = 255


class ErrorCode(IntEnum):
    """Exit codes for setup-level failures.

    These values are used as process exit codes and should remain stable:
    - 0: Success
    - 1: User error (bad input, unknown transaction id)
    - 2: Environment error (missing git/gh, broken config)
    - 3: Repository error (recovery validation refused, git failure)
    - 4: Network error (GitHub unreachable)
    - 5: I/O error (state directory unreadable)
    """

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    REPO_ERROR = 3
    NETWORK_ERROR = 4
    IO_ERROR = 5

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK

    @property
    def is_error(self) -> bool:
        return self != ErrorCode.OK


def error_exit_code(error_count: int) -> int:
    """Exit code for a fan-out run: the error count, capped at 255."""
    if error_count <= 0:
        return 0
    return min(error_count, MAX_EXIT_CODE)
