"""Core building blocks: constants, exceptions, configuration and protocols."""

from emailops.core.constants import (
    AlertSeverity,
    AlertType,
    CampaignStatus,
    ClientStatus,
    JobName,
    JobRunStatus,
    JobState,
    QueueName,
    SyncStatus,
)
from emailops.core.exceptions import (
    EmailOpsError,
    ValidationError,
    NotFoundError,
    ConfigurationError,
    EncryptionError,
    TransportError,
    PlatformError,
    RateLimitError,
    JobError,
)

__all__ = [
    "AlertSeverity",
    "AlertType",
    "CampaignStatus",
    "ClientStatus",
    "JobName",
    "JobRunStatus",
    "JobState",
    "QueueName",
    "SyncStatus",
    "EmailOpsError",
    "ValidationError",
    "NotFoundError",
    "ConfigurationError",
    "EncryptionError",
    "TransportError",
    "PlatformError",
    "RateLimitError",
    "JobError",
]
