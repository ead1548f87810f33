"""Custom exception hierarchy for the emailops package.

Adapters classify every vendor failure into one of these types before it
leaves the adapter; processors decide from the type whether a failure is
per-item (log and continue) or fatal for the job (fail the JobRun).
"""

from typing import Any, Dict, Optional


class EmailOpsError(Exception):
    """Base exception for all emailops errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ValidationError(EmailOpsError):
    """Raised when input (job payloads, credential bags, platform ids) is malformed.

    Examples:
        - Job payload without ``clientId``
        - Credential bag missing a field the platform requires
        - Unsupported platform identifier
    """

    pass


class NotFoundError(EmailOpsError):
    """Raised when a referenced local record does not exist."""

    def __init__(self, resource: str, resource_id: Optional[str] = None):
        message = (
            f"{resource} with ID {resource_id} not found" if resource_id else f"{resource} not found"
        )
        super().__init__(message)
        self.resource = resource
        self.resource_id = resource_id


class ConfigurationError(EmailOpsError):
    """Raised when process configuration is invalid or missing.

    Examples:
        - ENCRYPTION_KEY missing or not 64 hex characters
        - Invalid worker concurrency or retry settings
        - Unreadable YAML configuration file
    """

    pass


class EncryptionError(EmailOpsError):
    """Raised when a credential payload cannot be decrypted or authenticated."""

    pass


class TransportError(EmailOpsError):
    """Raised by the vendor HTTP client for any non-2xx response or network failure.

    Adapters never let this escape: they turn it into an absent result (404),
    a RateLimitError (429) or a PlatformError.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        retry_after: Optional[int] = None,
        payload: Optional[Any] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
        self.retry_after = retry_after
        self.payload = payload

    def __str__(self) -> str:
        base = self.message
        if self.status_code:
            base = f"[HTTP {self.status_code}] {base}"
        return base


class PlatformError(EmailOpsError):
    """Raised when a vendor call fails for a reason other than rate limiting."""

    def __init__(
        self,
        platform: str,
        operation: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(f"[{platform}] {operation}: {message}", details)
        self.platform = platform
        self.operation = operation
        self.reason = message


class RateLimitError(EmailOpsError):
    """Raised when a vendor answers 429.

    ``retry_after_seconds`` carries the vendor's Retry-After hint when present.
    """

    def __init__(self, platform: str, retry_after_seconds: Optional[int] = None):
        message = f"[{platform}] Rate limit exceeded"
        if retry_after_seconds is not None:
            message = f"{message} (retry after {retry_after_seconds}s)"
        super().__init__(message, {"retry_after": retry_after_seconds})
        self.platform = platform
        self.retry_after_seconds = retry_after_seconds


class JobError(EmailOpsError):
    """Raised for queue-level problems (unknown job name, unknown queue)."""

    def __init__(self, message: str, job_name: Optional[str] = None):
        super().__init__(message)
        self.job_name = job_name

    def __str__(self) -> str:
        if self.job_name:
            return f"[{self.job_name}] {self.message}"
        return self.message
