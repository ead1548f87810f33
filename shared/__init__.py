"""
Shared module for the email platform integration layer.
Contains logging setup and environment helpers used by every package.
"""

from shared.utils.logging import setup_logging, sanitize_log_data
from shared.utils.env import get_env, get_env_bool, get_env_float

__all__ = [
    "setup_logging",
    "sanitize_log_data",
    "get_env",
    "get_env_bool",
    "get_env_float",
]
