"""Shared error classification for vendor adapters.

Every adapter wraps its vendor calls and routes failures through
:func:`handle_api_error`, so the rest of the system only ever sees
``RateLimitError`` or ``PlatformError`` from an adapter.
"""

from typing import Any, Mapping, NoReturn, Optional

from loguru import logger

from emailops.core.exceptions import (
    EmailOpsError,
    PlatformError,
    RateLimitError,
    TransportError,
)

MESSAGE_KEYS = ("message", "detail", "error", "error_message", "error_description")
NESTED_ERROR_KEYS = ("title", "message", "detail")


def adapter_logger(platform: str, client_id: Optional[str]):
    """Logger carrying the platform and client on every record."""
    return logger.bind(platform=platform, client_id=client_id)


def _message_from_payload(payload: Any) -> Optional[str]:
    if isinstance(payload, str):
        return payload or None
    if not isinstance(payload, Mapping):
        return None

    for key in MESSAGE_KEYS:
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
        if isinstance(value, Mapping):
            nested = _message_from_payload(value)
            if nested:
                return nested

    errors = payload.get("errors")
    if isinstance(errors, list) and errors:
        first = errors[0]
        if isinstance(first, str):
            return first
        if isinstance(first, Mapping):
            for key in NESTED_ERROR_KEYS:
                value = first.get(key)
                if isinstance(value, str) and value:
                    return value
    return None


def extract_error_message(error: Any) -> str:
    """Pull a human-readable message out of whatever the vendor returned.

    Args:
        error: A TransportError, any exception, or a raw string

    Returns:
        The vendor's message, the raw body, or the exception text
    """
    if isinstance(error, str):
        return error or "Unknown error"

    if isinstance(error, TransportError):
        message = _message_from_payload(error.payload)
        if message:
            return message
        if error.response_body:
            return error.response_body
        return error.message or "Unknown error"

    if isinstance(error, EmailOpsError):
        return error.message
    return str(error) or "Unknown error"


def extract_retry_after(error: Any) -> Optional[int]:
    """Integer seconds from the vendor's Retry-After header, if any."""
    value = getattr(error, "retry_after", None)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def status_code_of(error: Any) -> Optional[int]:
    return getattr(error, "status_code", None)


def is_not_found(error: Any) -> bool:
    return status_code_of(error) == 404


def is_rate_limit_error(error: Any) -> bool:
    return status_code_of(error) == 429


def handle_api_error(
    platform: str,
    operation: str,
    error: Exception,
    client_id: Optional[str] = None,
) -> NoReturn:
    """Classify a failed vendor call and raise the matching error.

    Args:
        platform: Vendor display name
        operation: Adapter operation that failed (e.g. ``getCampaigns``)
        error: The caught exception
        client_id: Client the adapter works for, for the log record

    Raises:
        RateLimitError: On a 429 response
        PlatformError: For every other failure
    """
    # Errors raised deliberately inside the adapter pass through untouched
    if isinstance(error, (PlatformError, RateLimitError)):
        raise error

    rate_limited = is_rate_limit_error(error)
    message = extract_error_message(error)

    adapter_logger(platform, client_id).error(
        f"{platform} {operation} failed: {message}"
        + (" (rate limited)" if rate_limited else "")
    )

    if rate_limited:
        raise RateLimitError(platform, extract_retry_after(error)) from error

    details = {}
    status_code = status_code_of(error)
    if status_code is not None:
        details["status_code"] = status_code
    raise PlatformError(platform, operation, message, details=details or None) from error
