"""Job processors, one dispatcher per queue."""

from emailops.core.constants import QueueName
from emailops.jobs.processors.analytics import process_analytics_job
from emailops.jobs.processors.context import ClientLocks, ProcessorContext
from emailops.jobs.processors.maintenance import process_maintenance_job
from emailops.jobs.processors.sync import process_sync_job
from emailops.jobs.processors.verification import process_verification_job

QUEUE_PROCESSORS = {
    QueueName.SYNC: process_sync_job,
    QueueName.VERIFICATION: process_verification_job,
    QueueName.ANALYTICS: process_analytics_job,
    QueueName.MAINTENANCE: process_maintenance_job,
}

__all__ = [
    "ClientLocks",
    "ProcessorContext",
    "QUEUE_PROCESSORS",
    "process_analytics_job",
    "process_maintenance_job",
    "process_sync_job",
    "process_verification_job",
]
