import pytest

from emailops.core.config import RetryConfig, WorkerConfig
from emailops.core.exceptions import ConfigurationError
from emailops.jobs.retry import RetryPolicy
from tests.conftest import TEST_ENCRYPTION_KEY


class TestRetryConfig:
    def test_policy_backoff_grows_and_caps(self):
        policy = RetryPolicy.from_config(RetryConfig(backoff_seconds=1, backoff_multiplier=2, max_backoff_seconds=5))
        assert [policy.next_delay(n) for n in (1, 2, 3, 4)] == [1, 2, 4, 5]

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_attempts": 0},
            {"backoff_seconds": -1},
            {"backoff_multiplier": 0.5},
            {"backoff_seconds": 10, "max_backoff_seconds": 5},
        ],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigurationError):
            RetryConfig(**kwargs).validate()

    def test_policy_rejects_invalid_config(self):
        with pytest.raises(ConfigurationError):
            RetryPolicy.from_config(RetryConfig(max_backoff_seconds=-1))


class TestWorkerConfig:
    def test_defaults_cover_every_queue(self):
        config = WorkerConfig()
        config.validate()
        assert set(config.concurrency) == {"sync", "verification", "analytics", "maintenance"}
        assert config.get_concurrency("unknown") == 1

    def test_unknown_queue_rejected(self):
        config = WorkerConfig(concurrency={"email": 2})
        with pytest.raises(ConfigurationError):
            config.validate()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("ENCRYPTION_KEY", TEST_ENCRYPTION_KEY)
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("SCHEDULER_ENABLED", "false")

        config = WorkerConfig.from_env()

        assert config.encryption_key == TEST_ENCRYPTION_KEY
        assert config.log_level == "DEBUG"
        assert config.scheduler_enabled is False

    def test_from_yaml(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SCHEDULER_ENABLED", raising=False)
        path = tmp_path / "worker.yaml"
        path.write_text(
            "worker:\n"
            "  poll_interval: 0.25\n"
            "concurrency:\n"
            "  sync: 5\n"
            "retry:\n"
            "  max_attempts: 4\n"
            "schedules:\n"
            '  "sync:all-campaigns": "0 */2 * * *"\n'
        )

        config = WorkerConfig.from_yaml(path)

        assert config.poll_interval == 0.25
        assert config.get_concurrency("sync") == 5
        assert config.get_concurrency("verification") == 2
        assert config.retry.max_attempts == 4
        assert config.schedules == {"sync:all-campaigns": "0 */2 * * *"}

    def test_missing_yaml(self, tmp_path):
        with pytest.raises(ConfigurationError):
            WorkerConfig.from_yaml(tmp_path / "absent.yaml")

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        with pytest.raises(ConfigurationError):
            WorkerConfig.from_yaml(path)
