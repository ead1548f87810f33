"""In-process job queue.

A JobQueue owns the jobs of one named queue. Jobs move
WAITING -> RUNNING -> COMPLETED | FAILED, passing through DELAYED while
they wait for a retry. Storage sits behind ``JobStore`` so a durable
backend can replace ``InMemoryJobStore`` without touching workers.
"""

import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Protocol

from loguru import logger

from emailops.core.constants import (
    COMPLETED_JOB_RETENTION_COUNT,
    COMPLETED_JOB_RETENTION_SECONDS,
    FAILED_JOB_RETENTION_SECONDS,
    JOB_QUEUES,
    JobName,
    JobState,
    QueueName,
)
from emailops.core.exceptions import ConfigurationError, JobError, ValidationError
from emailops.domain.models import new_id
from emailops.jobs.retry import RetryPolicy
from emailops.utils.date_utils import utcnow

Clock = Callable[[], datetime]

# Failures that no amount of retrying can fix
NON_RETRYABLE_ERRORS = (ValidationError, ConfigurationError, JobError)


@dataclass
class Job:
    """One unit of queued work.

    Attributes:
        name: Job name, e.g. ``sync:campaigns``
        queue: Queue the job belongs to
        data: camelCase payload
        id: Caller-supplied id for deduplication, random otherwise
        state: Queue-side state
        attempts_made: Attempts started so far
        available_at: Earliest time the job may run
        failed_reason: Error text of the last failed attempt
        result: Processor output of the successful attempt
    """
    name: str
    queue: str
    data: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=new_id)
    state: JobState = JobState.WAITING
    attempts_made: int = 0
    created_at: datetime = field(default_factory=utcnow)
    available_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    failed_reason: Optional[str] = None
    result: Optional[Any] = None

    @property
    def is_finished(self) -> bool:
        return self.state in (JobState.COMPLETED, JobState.FAILED)


class JobStore(Protocol):
    """Storage backend of one queue."""

    def insert(self, job: Job) -> Optional[Job]:
        """Store ``job`` unless its id exists; return the existing job in that case."""
        ...

    def get(self, job_id: str) -> Optional[Job]:
        ...

    def update(self, job: Job) -> None:
        ...

    def claim_next(self, now: datetime) -> Optional[Job]:
        """Atomically move the oldest runnable job to RUNNING and return it."""
        ...

    def all(self) -> List[Job]:
        ...

    def delete(self, job_ids: List[str]) -> None:
        ...


class InMemoryJobStore:
    """Lock-guarded dict of jobs, claimed in FIFO order of availability."""

    def __init__(self):
        self._lock = threading.Lock()
        self._jobs: Dict[str, Job] = {}

    def insert(self, job: Job) -> Optional[Job]:
        with self._lock:
            existing = self._jobs.get(job.id)
            if existing is not None:
                return replace(existing)
            self._jobs[job.id] = replace(job)
            return None

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return replace(job) if job else None

    def update(self, job: Job) -> None:
        with self._lock:
            self._jobs[job.id] = replace(job)

    def claim_next(self, now: datetime) -> Optional[Job]:
        with self._lock:
            ready = [
                job
                for job in self._jobs.values()
                if job.state in (JobState.WAITING, JobState.DELAYED) and job.available_at <= now
            ]
            if not ready:
                return None
            job = min(ready, key=lambda j: (j.available_at, j.created_at))
            job.state = JobState.RUNNING
            job.attempts_made += 1
            job.started_at = now
            return replace(job)

    def all(self) -> List[Job]:
        with self._lock:
            return [replace(job) for job in self._jobs.values()]

    def delete(self, job_ids: List[str]) -> None:
        with self._lock:
            for job_id in job_ids:
                self._jobs.pop(job_id, None)


class JobQueue:
    """Named queue with retry and retention handling.

    Example:
        ```python
        queue = JobQueue(QueueName.SYNC)
        queue.add(JobName.SYNC_CAMPAIGNS, {"clientId": "c1"})
        job = queue.next_job()
        ```
    """

    def __init__(
        self,
        name: QueueName,
        store: Optional[JobStore] = None,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Clock = utcnow,
    ):
        self.name = QueueName(name)
        self.store: JobStore = store if store is not None else InMemoryJobStore()
        self.retry_policy = retry_policy or RetryPolicy()
        self._clock = clock
        self._available = threading.Condition()

    def add(
        self,
        name: JobName,
        data: Optional[Dict[str, Any]] = None,
        job_id: Optional[str] = None,
        delay_seconds: float = 0,
    ) -> Job:
        """Enqueue a job.

        Args:
            name: Job name; must belong to this queue
            data: Payload dict
            job_id: Explicit id; adding an id that is still retained returns the existing job
            delay_seconds: Hold the job back for this long

        Returns:
            The enqueued (or already existing) job

        Raises:
            ValidationError: If the job name is unknown or belongs to another queue
        """
        try:
            job_name = JobName(name)
        except ValueError:
            raise ValidationError(f"Unknown job name: {name}")
        if JOB_QUEUES[job_name] != self.name:
            raise ValidationError(
                f"Job {job_name.value} belongs to queue '{JOB_QUEUES[job_name].value}', not '{self.name.value}'"
            )

        now = self._clock()
        job = Job(
            name=job_name.value,
            queue=self.name.value,
            data=dict(data or {}),
            id=job_id or new_id(),
            state=JobState.DELAYED if delay_seconds > 0 else JobState.WAITING,
            created_at=now,
            available_at=now + timedelta(seconds=delay_seconds),
        )
        existing = self.store.insert(job)
        if existing is not None:
            logger.debug(f"[{self.name.value}] Job {existing.id} already queued, skipping duplicate")
            return existing

        logger.debug(f"[{self.name.value}] Added job {job.name} ({job.id})")
        self._notify()
        return job

    def next_job(self) -> Optional[Job]:
        """Claim the next runnable job, or None when nothing is ready."""
        return self.store.claim_next(self._clock())

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.store.get(job_id)

    def complete(self, job: Job, result: Any = None) -> Job:
        job.state = JobState.COMPLETED
        job.result = result
        job.finished_at = self._clock()
        job.failed_reason = None
        self.store.update(job)
        return job

    def fail(self, job: Job, error: BaseException) -> Job:
        """Record a failed attempt; schedule a retry or fail the job terminally.

        Returns:
            The job, now DELAYED (retry pending) or FAILED (exhausted)
        """
        now = self._clock()
        job.failed_reason = str(error)
        retryable = not isinstance(error, NON_RETRYABLE_ERRORS)

        if retryable and self.retry_policy.should_retry(job.attempts_made):
            delay = self.retry_policy.next_delay(job.attempts_made, error)
            job.state = JobState.DELAYED
            job.available_at = now + timedelta(seconds=delay)
            self.store.update(job)
            self._notify()
            return job

        job.state = JobState.FAILED
        job.finished_at = now
        self.store.update(job)
        return job

    def jobs(self, state: Optional[JobState] = None) -> List[Job]:
        return [job for job in self.store.all() if state is None or job.state == state]

    def counts(self) -> Dict[str, int]:
        counts = {state.value: 0 for state in JobState}
        for job in self.store.all():
            counts[job.state.value] += 1
        return counts

    def prune(self) -> int:
        """Drop finished jobs past retention.

        Completed jobs are kept for 24 hours and at most 1000 of them; failed
        jobs for 7 days.

        Returns:
            Number of jobs removed
        """
        now = self._clock()
        completed_cutoff = now - timedelta(seconds=COMPLETED_JOB_RETENTION_SECONDS)
        failed_cutoff = now - timedelta(seconds=FAILED_JOB_RETENTION_SECONDS)

        jobs = self.store.all()
        completed = sorted(
            (j for j in jobs if j.state == JobState.COMPLETED),
            key=lambda j: j.finished_at or j.created_at,
            reverse=True,
        )
        doomed = [
            j.id
            for index, j in enumerate(completed)
            if index >= COMPLETED_JOB_RETENTION_COUNT or (j.finished_at or j.created_at) < completed_cutoff
        ]
        doomed.extend(
            j.id
            for j in jobs
            if j.state == JobState.FAILED and (j.finished_at or j.created_at) < failed_cutoff
        )
        if doomed:
            self.store.delete(doomed)
            logger.debug(f"[{self.name.value}] Pruned {len(doomed)} finished jobs")
        return len(doomed)

    def wait_for_job(self, timeout: float) -> None:
        """Block until a job is added or retried, or ``timeout`` seconds pass."""
        with self._available:
            self._available.wait(timeout)

    def wake_all(self) -> None:
        self._notify()

    def _notify(self) -> None:
        with self._available:
            self._available.notify_all()
