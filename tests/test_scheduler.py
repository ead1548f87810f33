import pytest
from apscheduler.schedulers.background import BackgroundScheduler

from emailops.core.constants import JobName, JobState, QueueName
from emailops.core.exceptions import ConfigurationError
from emailops.jobs.queue import JobQueue
from emailops.jobs.scheduler import RECURRING_JOBS, JobScheduler


@pytest.fixture
def queues():
    return {name: JobQueue(name) for name in QueueName}


@pytest.fixture
def scheduler(queues):
    return JobScheduler(queues, scheduler=BackgroundScheduler(timezone="UTC"))


class TestRecurringJobs:
    def test_schedule_table(self):
        patterns = {job.name: job.pattern for job in RECURRING_JOBS}
        assert patterns == {
            JobName.SYNC_ALL_CAMPAIGNS: "0 */4 * * *",
            JobName.VERIFY_ALL_CREDENTIALS: "0 6 * * *",
            JobName.CALCULATE_BENCHMARKS: "0 2 * * 0",
            JobName.DETECT_ANOMALIES: "0 * * * *",
            JobName.CLEANUP_OLD_ALERTS: "0 2 * * *",
            JobName.CLEANUP_OLD_JOBS: "0 3 * * 6",
            JobName.CLEANUP_OLD_SESSIONS: "0 4 * * *",
        }

    def test_payloads(self):
        data = {job.name: job.data for job in RECURRING_JOBS}
        assert data[JobName.CALCULATE_BENCHMARKS] == {"period": "weekly"}
        assert data[JobName.CLEANUP_OLD_ALERTS] == {"olderThanDays": 30, "onlyResolved": True}
        assert data[JobName.CLEANUP_OLD_SESSIONS] == {"olderThanDays": 7}


class TestJobScheduler:
    def test_registration_is_idempotent(self, scheduler):
        assert scheduler.register() == 7
        assert scheduler.register() == 7
        assert len(scheduler.list_scheduled_jobs()) == 7

    def test_listing_reports_queue_pattern_and_next_run(self, scheduler):
        scheduler.register()
        entries = {entry["name"]: entry for entry in scheduler.list_scheduled_jobs()}
        sync = entries["sync:all-campaigns"]
        assert sync["queue"] == "sync"
        assert sync["pattern"] == "0 */4 * * *"
        assert sync["next_run"] is not None
        assert sync["next_run"].hour % 4 == 0
        assert entries["cleanup:old-jobs"]["queue"] == "maintenance"

    def test_overrides_replace_patterns(self, queues):
        scheduler = JobScheduler(
            queues,
            overrides={"sync:all-campaigns": "*/30 * * * *"},
            scheduler=BackgroundScheduler(timezone="UTC"),
        )
        scheduler.register()
        entries = {entry["name"]: entry for entry in scheduler.list_scheduled_jobs()}
        assert entries["sync:all-campaigns"]["pattern"] == "*/30 * * * *"

    def test_unknown_override_is_rejected(self, queues):
        with pytest.raises(ConfigurationError):
            JobScheduler(queues, overrides={"sync:nothing": "* * * * *"})

    def test_invalid_pattern_is_rejected(self, queues):
        scheduler = JobScheduler(
            queues,
            overrides={"detect:anomalies": "not a cron"},
            scheduler=BackgroundScheduler(timezone="UTC"),
        )
        with pytest.raises(ConfigurationError):
            scheduler.register()

    def test_firing_enqueues_into_the_owning_queue(self, scheduler, queues):
        scheduler._enqueue(queues[QueueName.ANALYTICS], JobName.CALCULATE_BENCHMARKS, {"period": "weekly"})
        jobs = queues[QueueName.ANALYTICS].jobs()
        assert len(jobs) == 1
        assert jobs[0].name == "calculate:benchmarks"
        assert jobs[0].state == JobState.WAITING
