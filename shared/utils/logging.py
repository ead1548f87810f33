"""
Logging configuration module.
Provides standardized logging setup using loguru, plus redaction of
credential fields before they reach any sink.
"""

import sys
from typing import Any, Dict, Optional

from loguru import logger

DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

SENSITIVE_KEYS = ("api_key", "apikey", "token", "secret", "password", "authorization")
REDACTED = "***REDACTED***"


def setup_logging(
    level: str = "INFO",
    format: str = DEFAULT_FORMAT,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure loguru logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        format: Log message format
        log_file: Optional file path to write logs
    """
    logger.remove()

    logger.add(
        sys.stderr,
        format=format,
        level=level.upper(),
        colorize=True,
    )

    if log_file:
        logger.add(
            log_file,
            format=format,
            level=level.upper(),
            rotation="10 MB",
            retention="7 days",
            enqueue=True,
        )


def sanitize_log_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return a copy of ``data`` with credential-looking values masked.

    Nested dictionaries are sanitized recursively.
    """
    sanitized: Dict[str, Any] = {}
    for key, value in data.items():
        normalized = str(key).lower().replace("-", "_")
        if any(sk in normalized for sk in SENSITIVE_KEYS):
            sanitized[key] = REDACTED
        elif isinstance(value, dict):
            sanitized[key] = sanitize_log_data(value)
        else:
            sanitized[key] = value
    return sanitized
