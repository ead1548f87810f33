from datetime import datetime, timedelta, timezone

import pytest

from emailops.core.constants import JobName, JobState, QueueName
from emailops.core.exceptions import PlatformError, RateLimitError, ValidationError
from emailops.jobs.queue import JobQueue
from emailops.jobs.retry import RetryPolicy, exponential_backoff
from emailops.jobs.worker import QueueWorker


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sync_queue(clock):
    return JobQueue(QueueName.SYNC, clock=clock)


class TestRetryPolicy:
    def test_exponential_backoff_doubles(self):
        backoff = exponential_backoff(1.0)
        assert [backoff(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]

    def test_backoff_is_capped(self):
        assert exponential_backoff(1.0, max_seconds=5)(10) == 5

    def test_default_policy_allows_three_attempts(self):
        policy = RetryPolicy()
        assert policy.should_retry(1)
        assert policy.should_retry(2)
        assert not policy.should_retry(3)

    def test_rate_limit_hint_is_a_floor(self):
        policy = RetryPolicy()
        assert policy.next_delay(1, RateLimitError("Mailchimp", 30)) == 30
        assert policy.next_delay(1, RateLimitError("Mailchimp", None)) == 1.0
        assert policy.next_delay(1, PlatformError("Mailchimp", "op", "boom")) == 1.0


class TestJobQueue:
    def test_add_and_claim(self, sync_queue):
        job = sync_queue.add(JobName.SYNC_CAMPAIGNS, {"clientId": "c1"})
        assert job.state == JobState.WAITING

        claimed = sync_queue.next_job()
        assert claimed.id == job.id
        assert claimed.state == JobState.RUNNING
        assert claimed.attempts_made == 1
        assert sync_queue.next_job() is None

    def test_rejects_job_of_another_queue(self, sync_queue):
        with pytest.raises(ValidationError):
            sync_queue.add(JobName.CLEANUP_OLD_JOBS, {"olderThanDays": 30})

    def test_rejects_unknown_job_name(self, sync_queue):
        with pytest.raises(ValidationError):
            sync_queue.add("sync:everything", {})

    def test_explicit_job_id_deduplicates(self, sync_queue):
        first = sync_queue.add(JobName.SYNC_CAMPAIGNS, {"clientId": "c1"}, job_id="sync-c1")
        second = sync_queue.add(JobName.SYNC_CAMPAIGNS, {"clientId": "c1"}, job_id="sync-c1")
        assert first.id == second.id
        assert len(sync_queue.jobs()) == 1

    def test_failure_is_retried_with_backoff_then_terminal(self, sync_queue, clock):
        sync_queue.add(JobName.SYNC_CAMPAIGNS, {"clientId": "c1"})
        error = PlatformError("Mailchimp", "getCampaigns", "boom")

        job = sync_queue.fail(sync_queue.next_job(), error)
        assert job.state == JobState.DELAYED
        assert job.available_at == clock.now + timedelta(seconds=1)
        assert sync_queue.next_job() is None

        clock.advance(1)
        job = sync_queue.fail(sync_queue.next_job(), error)
        assert job.state == JobState.DELAYED
        assert job.available_at == clock.now + timedelta(seconds=2)

        clock.advance(2)
        job = sync_queue.fail(sync_queue.next_job(), error)
        assert job.state == JobState.FAILED
        assert job.attempts_made == 3
        assert job.failed_reason == str(error)
        # Terminal failures stay inspectable
        assert sync_queue.get_job(job.id).state == JobState.FAILED

    def test_validation_errors_are_not_retried(self, sync_queue):
        sync_queue.add(JobName.SYNC_CAMPAIGNS, {})
        job = sync_queue.fail(sync_queue.next_job(), ValidationError("clientId required"))
        assert job.state == JobState.FAILED
        assert job.attempts_made == 1

    def test_rate_limit_delays_retry_by_hint(self, sync_queue, clock):
        sync_queue.add(JobName.SYNC_CAMPAIGNS, {"clientId": "c1"})
        job = sync_queue.fail(sync_queue.next_job(), RateLimitError("Klaviyo", 30))
        assert job.available_at == clock.now + timedelta(seconds=30)

    def test_delayed_add(self, sync_queue, clock):
        job = sync_queue.add(JobName.SYNC_LISTS, {"clientId": "c1"}, delay_seconds=10)
        assert job.state == JobState.DELAYED
        assert sync_queue.next_job() is None
        clock.advance(10)
        assert sync_queue.next_job().id == job.id

    def test_counts(self, sync_queue):
        sync_queue.add(JobName.SYNC_CAMPAIGNS, {"clientId": "c1"})
        sync_queue.add(JobName.SYNC_CAMPAIGNS, {"clientId": "c2"})
        sync_queue.complete(sync_queue.next_job(), {"synced": 1})
        counts = sync_queue.counts()
        assert counts["COMPLETED"] == 1
        assert counts["WAITING"] == 1

    def test_prune_applies_retention(self, sync_queue, clock):
        sync_queue.add(JobName.SYNC_CAMPAIGNS, {"clientId": "done"})
        sync_queue.complete(sync_queue.next_job())
        sync_queue.add(JobName.SYNC_CAMPAIGNS, {"clientId": "bad"})
        sync_queue.fail(sync_queue.next_job(), ValidationError("bad"))

        clock.advance(25 * 3600)
        assert sync_queue.prune() == 1
        assert [j.data["clientId"] for j in sync_queue.jobs()] == ["bad"]

        clock.advance(7 * 24 * 3600)
        assert sync_queue.prune() == 1
        assert sync_queue.jobs() == []


class TestQueueWorker:
    def test_run_pending_completes_jobs(self, sync_queue):
        seen = []
        worker = QueueWorker(sync_queue, lambda job: seen.append(job.data["clientId"]) or {"ok": True})
        sync_queue.add(JobName.SYNC_CAMPAIGNS, {"clientId": "c1"})
        sync_queue.add(JobName.SYNC_CAMPAIGNS, {"clientId": "c2"})

        assert worker.run_pending() == 2
        assert sorted(seen) == ["c1", "c2"]
        assert all(j.state == JobState.COMPLETED for j in sync_queue.jobs())
        assert sync_queue.jobs()[0].result == {"ok": True}

    def test_processor_failure_schedules_retry(self, sync_queue):
        def explode(job):
            raise PlatformError("HubSpot", "getCampaigns", "down")

        worker = QueueWorker(sync_queue, explode)
        job = sync_queue.add(JobName.SYNC_CAMPAIGNS, {"clientId": "c1"})
        worker.run_pending()
        assert sync_queue.get_job(job.id).state == JobState.DELAYED

    def test_threaded_worker_drains_on_shutdown(self):
        queue = JobQueue(QueueName.MAINTENANCE)
        worker = QueueWorker(queue, lambda job: {"deleted": 0}, concurrency=1, poll_interval=0.05)
        job = queue.add(JobName.CLEANUP_OLD_JOBS, {"olderThanDays": 30})

        worker.start()
        try:
            for _ in range(100):
                if queue.get_job(job.id).state == JobState.COMPLETED:
                    break
                queue.wait_for_job(0.05)
        finally:
            worker.shutdown()

        assert queue.get_job(job.id).state == JobState.COMPLETED
        assert not worker.running

    def test_loop_survives_queue_error(self, monkeypatch):
        queue = JobQueue(QueueName.MAINTENANCE)
        worker = QueueWorker(queue, lambda job: {"deleted": 0}, concurrency=1, poll_interval=0.05)
        original_complete = queue.complete
        failures = []

        def complete_failing_once(job, result=None):
            if not failures:
                failures.append(job.id)
                raise RuntimeError("store unavailable")
            return original_complete(job, result)

        monkeypatch.setattr(queue, "complete", complete_failing_once)
        first = queue.add(JobName.CLEANUP_OLD_JOBS, {"olderThanDays": 30})
        second = queue.add(JobName.CLEANUP_OLD_JOBS, {"olderThanDays": 60})

        worker.start()
        try:
            for _ in range(100):
                if queue.get_job(second.id).state == JobState.COMPLETED:
                    break
                queue.wait_for_job(0.05)
            assert worker.running
        finally:
            worker.shutdown()

        assert failures == [first.id]
        assert queue.get_job(second.id).state == JobState.COMPLETED

    def test_concurrency_must_be_positive(self, sync_queue):
        with pytest.raises(ValueError):
            QueueWorker(sync_queue, lambda job: None, concurrency=0)
