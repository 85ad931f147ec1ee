"""Core domain types and logic."""

from .config import Config, ConfigError, load_config, load_config_or_default
from .errors import ErrorCode, error_exit_code
from .result import Err, Ok, Result, is_err, is_ok

__all__ = [
    # config
    "Config",
    "ConfigError",
    "load_config",
    "load_config_or_default",
    # errors
    "ErrorCode",
    "error_exit_code",
    # result
    "Err",
    "Ok",
    "Result",
    "is_err",
    "is_ok",
]
