"""Constants and enumerations for the emailops package.

This module centralizes the normalized vocabularies (statuses, severities,
queue and job names) and the numeric limits shared by adapters and jobs.
"""

from enum import Enum
from typing import Final


class CampaignStatus(str, Enum):
    """Normalized campaign status every vendor status maps into."""

    DRAFT = "DRAFT"
    SCHEDULED = "SCHEDULED"
    SENDING = "SENDING"
    SENT = "SENT"
    CANCELLED = "CANCELLED"
    ARCHIVED = "ARCHIVED"
    UNKNOWN = "UNKNOWN"


class ClientStatus(str, Enum):
    """Client lifecycle status."""

    ONBOARDING = "ONBOARDING"
    ACTIVE = "ACTIVE"
    PENDING = "PENDING"
    PAUSED = "PAUSED"
    CHURNED = "CHURNED"


class SyncStatus(str, Enum):
    """Aggregate mirror status of a client."""

    NEVER = "NEVER"
    SYNCED = "SYNCED"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


class AlertType(str, Enum):
    CREDENTIAL_ISSUE = "CREDENTIAL_ISSUE"
    PERFORMANCE_ANOMALY = "PERFORMANCE_ANOMALY"
    SYNC_FAILURE = "SYNC_FAILURE"


class AlertSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class JobRunStatus(str, Enum):
    """Status of a JobRun audit row."""

    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class JobState(str, Enum):
    """Queue-side state of a job."""

    WAITING = "WAITING"
    DELAYED = "DELAYED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class QueueName(str, Enum):
    SYNC = "sync"
    VERIFICATION = "verification"
    ANALYTICS = "analytics"
    MAINTENANCE = "maintenance"


class JobName(str, Enum):
    """Job names, grouped by the queue that runs them."""

    # Sync queue
    SYNC_CAMPAIGNS = "sync:campaigns"
    SYNC_ALL_CAMPAIGNS = "sync:all-campaigns"
    SYNC_LISTS = "sync:lists"
    SYNC_METRICS = "sync:metrics"

    # Verification queue
    VERIFY_CREDENTIALS = "verify:credentials"
    VERIFY_ALL_CREDENTIALS = "verify:all-credentials"

    # Analytics queue
    CALCULATE_BENCHMARKS = "calculate:benchmarks"
    DETECT_ANOMALIES = "detect:anomalies"

    # Maintenance queue
    CLEANUP_OLD_ALERTS = "cleanup:old-alerts"
    CLEANUP_OLD_JOBS = "cleanup:old-jobs"
    CLEANUP_OLD_SESSIONS = "cleanup:old-sessions"


class HTTPMethod(Enum):
    """HTTP request methods."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


JOB_QUEUES: Final[dict] = {
    JobName.SYNC_CAMPAIGNS: QueueName.SYNC,
    JobName.SYNC_ALL_CAMPAIGNS: QueueName.SYNC,
    JobName.SYNC_LISTS: QueueName.SYNC,
    JobName.SYNC_METRICS: QueueName.SYNC,
    JobName.VERIFY_CREDENTIALS: QueueName.VERIFICATION,
    JobName.VERIFY_ALL_CREDENTIALS: QueueName.VERIFICATION,
    JobName.CALCULATE_BENCHMARKS: QueueName.ANALYTICS,
    JobName.DETECT_ANOMALIES: QueueName.ANALYTICS,
    JobName.CLEANUP_OLD_ALERTS: QueueName.MAINTENANCE,
    JobName.CLEANUP_OLD_JOBS: QueueName.MAINTENANCE,
    JobName.CLEANUP_OLD_SESSIONS: QueueName.MAINTENANCE,
}

# Worker concurrency per queue; sized for the slowest vendor rate limits
QUEUE_CONCURRENCY: Final[dict] = {
    QueueName.SYNC: 3,
    QueueName.VERIFICATION: 2,
    QueueName.ANALYTICS: 5,
    QueueName.MAINTENANCE: 1,
}

# Retry policy defaults
DEFAULT_MAX_ATTEMPTS: Final[int] = 3
DEFAULT_BACKOFF_SECONDS: Final[float] = 1.0
DEFAULT_BACKOFF_MULTIPLIER: Final[float] = 2.0
MAX_BACKOFF_SECONDS: Final[float] = 600.0

# Queue retention
COMPLETED_JOB_RETENTION_SECONDS: Final[int] = 24 * 3600
COMPLETED_JOB_RETENTION_COUNT: Final[int] = 1000
FAILED_JOB_RETENTION_SECONDS: Final[int] = 7 * 24 * 3600
WORKER_POLL_INTERVAL_SECONDS: Final[float] = 0.5

# API constants
REQUEST_TIMEOUT_SECONDS: Final[int] = 30
DEFAULT_PAGE_SIZE: Final[int] = 50
SYNC_PAGE_SIZE: Final[int] = 100
MAX_PAGES: Final[int] = 50

# Credential cipher (AES-256-GCM)
ENCRYPTION_KEY_BYTES: Final[int] = 32
ENCRYPTION_IV_BYTES: Final[int] = 12
ENCRYPTION_TAG_BYTES: Final[int] = 16

# Analytics
BENCHMARK_PERIOD_DAYS: Final[dict] = {"weekly": 7, "monthly": 30, "quarterly": 90}
ANOMALY_LOOKBACK_DAYS: Final[int] = 30
ANOMALY_MIN_CAMPAIGNS: Final[int] = 3
ANOMALY_SAMPLE_SIZE: Final[int] = 10
DEFAULT_BENCHMARK_OPEN_RATE: Final[float] = 20.0
DEFAULT_BENCHMARK_BOUNCE_RATE: Final[float] = 2.0
OPEN_RATE_ALERT_FACTOR: Final[float] = 0.5
BOUNCE_RATE_ALERT_FACTOR: Final[float] = 2.0
DEFAULT_INDUSTRY: Final[str] = "OTHER"

# Environment variable names
ENV_ENCRYPTION_KEY: Final[str] = "ENCRYPTION_KEY"
ENV_LOG_LEVEL: Final[str] = "LOG_LEVEL"
ENV_LOG_FILE: Final[str] = "LOG_FILE"
ENV_WORKER_CONFIG: Final[str] = "WORKER_CONFIG"
ENV_SCHEDULER_ENABLED: Final[str] = "SCHEDULER_ENABLED"
ENV_POLL_INTERVAL: Final[str] = "WORKER_POLL_INTERVAL"

LOG_LEVEL_DEFAULT: Final[str] = "INFO"
