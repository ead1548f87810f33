"""Recurring job scheduler.

Registers the cron schedules on an APScheduler ``BackgroundScheduler``.
Each firing only enqueues a job; the queue workers do the work.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from emailops.core.constants import JOB_QUEUES, JobName, QueueName
from emailops.core.exceptions import ConfigurationError
from emailops.jobs.queue import JobQueue


@dataclass(frozen=True)
class RecurringJob:
    name: JobName
    pattern: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def queue(self) -> QueueName:
        return JOB_QUEUES[self.name]

    @property
    def schedule_id(self) -> str:
        return f"{self.queue.value}:{self.name.value}"


RECURRING_JOBS: List[RecurringJob] = [
    RecurringJob(JobName.SYNC_ALL_CAMPAIGNS, "0 */4 * * *"),
    RecurringJob(JobName.VERIFY_ALL_CREDENTIALS, "0 6 * * *"),
    RecurringJob(JobName.CALCULATE_BENCHMARKS, "0 2 * * 0", {"period": "weekly"}),
    RecurringJob(JobName.DETECT_ANOMALIES, "0 * * * *"),
    RecurringJob(JobName.CLEANUP_OLD_ALERTS, "0 2 * * *", {"olderThanDays": 30, "onlyResolved": True}),
    RecurringJob(JobName.CLEANUP_OLD_JOBS, "0 3 * * 6", {"olderThanDays": 30}),
    RecurringJob(JobName.CLEANUP_OLD_SESSIONS, "0 4 * * *", {"olderThanDays": 7}),
]


def _cron_trigger(pattern: str) -> CronTrigger:
    try:
        return CronTrigger.from_crontab(pattern, timezone=timezone.utc)
    except ValueError as e:
        raise ConfigurationError(f"Invalid cron pattern '{pattern}': {e}")


class JobScheduler:
    """Owns the BackgroundScheduler and the recurring job registrations.

    Args:
        queues: Queue per queue name; firings enqueue into these
        overrides: Cron pattern per job name replacing the default pattern
        scheduler: Scheduler instance, a UTC BackgroundScheduler by default
    """

    def __init__(
        self,
        queues: Mapping[QueueName, JobQueue],
        overrides: Optional[Mapping[str, str]] = None,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        self.queues = dict(queues)
        self.overrides = dict(overrides or {})
        self._scheduler = scheduler or BackgroundScheduler(
            timezone=timezone.utc,
            job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 3600},
        )

        unknown = set(self.overrides) - {job.name.value for job in RECURRING_JOBS}
        if unknown:
            raise ConfigurationError(f"Schedule overrides for unknown jobs: {', '.join(sorted(unknown))}")

    def recurring_jobs(self) -> List[RecurringJob]:
        return [
            RecurringJob(job.name, self.overrides.get(job.name.value, job.pattern), dict(job.data))
            for job in RECURRING_JOBS
        ]

    def register(self) -> int:
        """Register every recurring job; calling it again replaces, never duplicates.

        Returns:
            Number of registered schedules
        """
        count = 0
        for job in self.recurring_jobs():
            queue = self.queues.get(job.queue)
            if queue is None:
                raise ConfigurationError(f"No queue configured for '{job.queue.value}'")

            # A stopped scheduler keeps pending jobs without honouring replace_existing
            if self._scheduler.get_job(job.schedule_id) is not None:
                self._scheduler.remove_job(job.schedule_id)

            self._scheduler.add_job(
                func=self._enqueue,
                trigger=_cron_trigger(job.pattern),
                id=job.schedule_id,
                name=job.name.value,
                replace_existing=True,
                kwargs={"queue": queue, "name": job.name, "data": job.data},
            )
            logger.debug(f"Scheduled {job.name.value} on '{job.queue.value}' ({job.pattern})")
            count += 1

        logger.info(f"Registered {count} recurring jobs")
        return count

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Scheduler started")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

    def list_scheduled_jobs(self) -> List[Dict[str, Any]]:
        """Describe every registered schedule: queue, name, cron pattern and next run."""
        patterns = {job.schedule_id: job.pattern for job in self.recurring_jobs()}
        now = datetime.now(timezone.utc)
        scheduled = []
        for job in self._scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None) or job.trigger.get_next_fire_time(None, now)
            scheduled.append(
                {
                    "queue": job.kwargs["queue"].name.value,
                    "name": job.name,
                    "pattern": patterns.get(job.id),
                    "next_run": next_run,
                }
            )
        return sorted(scheduled, key=lambda entry: (entry["queue"], entry["name"]))

    @staticmethod
    def _enqueue(queue: JobQueue, name: JobName, data: Dict[str, Any]) -> None:
        job = queue.add(name, data)
        logger.info(f"Scheduler enqueued {name.value} ({job.id})")
