import pytest

from emailops.core.config import WorkerConfig
from emailops.core.constants import JobName, JobRunStatus, JobState, QueueName, SyncStatus
from emailops.core.exceptions import ValidationError
from emailops.jobs.runtime import WorkerRuntime
from emailops.run_worker import main
from tests.conftest import TEST_ENCRYPTION_KEY, platform_campaign


@pytest.fixture
def runtime(repository, cipher, adapter_factory):
    config = WorkerConfig(encryption_key=TEST_ENCRYPTION_KEY, scheduler_enabled=False, poll_interval=0.05)
    return WorkerRuntime(config, repository=repository, cipher=cipher, adapter_factory=adapter_factory)


class TestWorkerRuntime:
    def test_builds_one_queue_and_worker_per_queue_name(self, runtime):
        assert set(runtime.queues) == set(QueueName)
        assert runtime.workers[QueueName.SYNC].concurrency == 3
        assert runtime.workers[QueueName.MAINTENANCE].concurrency == 1

    def test_enqueue_routes_by_job_name(self, runtime):
        job = runtime.enqueue(JobName.CLEANUP_OLD_SESSIONS, {})
        assert job.queue == "maintenance"
        assert runtime.queues[QueueName.MAINTENANCE].get_job(job.id) is not None

    def test_enqueue_unknown_name(self, runtime):
        with pytest.raises(ValidationError):
            runtime.enqueue("sync:everything", {})

    def test_sync_job_end_to_end(self, runtime, repository, adapter_factory, make_client):
        client = make_client(credentials={"apiKey": "key-us1"})
        adapter_factory.for_client(client.id).campaigns = [platform_campaign("c1"), platform_campaign("c2")]

        job = runtime.enqueue(JobName.SYNC_CAMPAIGNS, {"clientId": client.id})
        assert runtime.run_pending() == 1

        finished = runtime.queues[QueueName.SYNC].get_job(job.id)
        assert finished.state == JobState.COMPLETED
        assert finished.result["synced"] == 2
        assert repository.get_client(client.id).sync_status == SyncStatus.SYNCED
        assert repository.list_job_runs()[0].status == JobRunStatus.COMPLETED

    def test_invalid_payload_fails_without_retry(self, runtime, repository):
        job = runtime.enqueue(JobName.CLEANUP_OLD_ALERTS, {"olderThanDays": -1})
        runtime.run_pending()

        failed = runtime.queues[QueueName.MAINTENANCE].get_job(job.id)
        assert failed.state == JobState.FAILED
        assert failed.attempts_made == 1

    def test_start_and_shutdown_without_scheduler(self, runtime):
        runtime.start()
        assert all(worker.running for worker in runtime.workers.values())
        runtime.shutdown()
        assert not any(worker.running for worker in runtime.workers.values())


class TestMain:
    def test_list_schedules(self, monkeypatch):
        monkeypatch.setenv("ENCRYPTION_KEY", TEST_ENCRYPTION_KEY)
        monkeypatch.delenv("WORKER_CONFIG", raising=False)
        assert main(["--list-schedules"]) == 0

    def test_missing_encryption_key_is_a_configuration_error(self, monkeypatch):
        monkeypatch.delenv("ENCRYPTION_KEY", raising=False)
        monkeypatch.delenv("WORKER_CONFIG", raising=False)
        assert main(["--list-schedules"]) == 2
