"""Job pipeline: queues, retry policy, workers, scheduler and processors."""

from emailops.jobs.queue import InMemoryJobStore, Job, JobQueue, JobStore
from emailops.jobs.retry import RetryPolicy, exponential_backoff
from emailops.jobs.scheduler import RECURRING_JOBS, JobScheduler, RecurringJob
from emailops.jobs.worker import QueueWorker

__all__ = [
    "InMemoryJobStore",
    "Job",
    "JobQueue",
    "JobScheduler",
    "JobStore",
    "QueueWorker",
    "RECURRING_JOBS",
    "RecurringJob",
    "RetryPolicy",
    "exponential_backoff",
]
