"""Worker Configuration Module.

This module provides configuration management for the job worker process:
encryption key, logging, per-queue concurrency, retry policy and cron
schedule overrides.

Key Features:
- Retry policy settings with exponential backoff
- Per-queue worker concurrency
- Environment and YAML-based configuration loading
- Validation methods for configuration integrity
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import yaml
from loguru import logger

from emailops.core.constants import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_BACKOFF_SECONDS,
    DEFAULT_MAX_ATTEMPTS,
    ENV_ENCRYPTION_KEY,
    ENV_LOG_FILE,
    ENV_LOG_LEVEL,
    ENV_POLL_INTERVAL,
    ENV_SCHEDULER_ENABLED,
    LOG_LEVEL_DEFAULT,
    MAX_BACKOFF_SECONDS,
    QUEUE_CONCURRENCY,
    WORKER_POLL_INTERVAL_SECONDS,
    QueueName,
)
from emailops.core.exceptions import ConfigurationError
from shared.utils.env import get_env, get_env_bool, get_env_float


@dataclass
class RetryConfig:
    """Retry configuration for queued jobs.

    Attributes:
        max_attempts: Total attempts including the first run (default: 3)
        backoff_seconds: Delay before the second attempt (default: 1)
        backoff_multiplier: Multiplier for exponential backoff (default: 2.0)
        max_backoff_seconds: Upper bound for any single delay (default: 600)
    """
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    max_backoff_seconds: float = MAX_BACKOFF_SECONDS

    def validate(self) -> None:
        """Validate retry configuration.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1")
        if self.backoff_seconds < 0:
            raise ConfigurationError("backoff_seconds must be non-negative")
        if self.backoff_multiplier < 1.0:
            raise ConfigurationError("backoff_multiplier must be at least 1.0")
        if self.max_backoff_seconds < self.backoff_seconds:
            raise ConfigurationError("max_backoff_seconds must not be below backoff_seconds")


@dataclass
class WorkerConfig:
    """Main worker process configuration.

    Attributes:
        encryption_key: 64 hex characters for the credential cipher
        log_level: loguru level name
        log_file: Optional path of a rotating log file
        concurrency: Worker threads per queue name
        retry: Retry policy settings shared by every queue
        poll_interval: Seconds a worker sleeps when its queue is empty
        scheduler_enabled: Register the recurring cron jobs at start
        schedules: Cron pattern overrides keyed by job name
    """
    encryption_key: Optional[str] = None
    log_level: str = LOG_LEVEL_DEFAULT
    log_file: Optional[str] = None
    concurrency: Dict[str, int] = field(
        default_factory=lambda: {queue.value: size for queue, size in QUEUE_CONCURRENCY.items()}
    )
    retry: RetryConfig = field(default_factory=RetryConfig)
    poll_interval: float = WORKER_POLL_INTERVAL_SECONDS
    scheduler_enabled: bool = True
    schedules: Dict[str, str] = field(default_factory=dict)

    def get_concurrency(self, queue_name: str) -> int:
        """Worker count for a queue, falling back to 1 for unknown queues."""
        return self.concurrency.get(queue_name, 1)

    def validate(self) -> None:
        """Validate worker configuration.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        valid_queues = {queue.value for queue in QueueName}
        for queue_name, size in self.concurrency.items():
            if queue_name not in valid_queues:
                raise ConfigurationError(
                    f"Unknown queue in concurrency settings: '{queue_name}'. "
                    f"Must be one of: {', '.join(sorted(valid_queues))}"
                )
            if size < 1:
                raise ConfigurationError(f"Concurrency for queue '{queue_name}' must be at least 1")

        if self.poll_interval <= 0:
            raise ConfigurationError("poll_interval must be positive")

        self.retry.validate()

    @classmethod
    def from_env(cls) -> "WorkerConfig":
        """Build configuration from environment variables."""
        config = cls(
            encryption_key=get_env(ENV_ENCRYPTION_KEY),
            log_level=get_env(ENV_LOG_LEVEL, LOG_LEVEL_DEFAULT),
            log_file=get_env(ENV_LOG_FILE),
            scheduler_enabled=get_env_bool(ENV_SCHEDULER_ENABLED, True),
            poll_interval=get_env_float(ENV_POLL_INTERVAL, WORKER_POLL_INTERVAL_SECONDS),
        )
        config.validate()
        return config

    @classmethod
    def from_yaml(cls, config_path: Path) -> "WorkerConfig":
        """Load worker configuration from a YAML file, layered over the environment.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            WorkerConfig instance

        Raises:
            ConfigurationError: If configuration loading or validation fails

        Example YAML structure:
            ```yaml
            worker:
              log_level: DEBUG
              poll_interval: 0.5
              scheduler_enabled: true

            concurrency:
              sync: 3
              verification: 2

            retry:
              max_attempts: 3
              backoff_seconds: 1

            schedules:
              "sync:all-campaigns": "0 */2 * * *"
            ```
        """
        config_path = Path(config_path)
        logger.info(f"Loading worker configuration from: {config_path}")

        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML: {e}")
            raise ConfigurationError(f"Invalid YAML format: {e}")

        if not yaml_data:
            raise ConfigurationError("Configuration file is empty")

        config = cls.from_env()
        worker_settings = yaml_data.get("worker", {}) or {}
        config.log_level = worker_settings.get("log_level", config.log_level)
        config.log_file = worker_settings.get("log_file", config.log_file)
        config.poll_interval = float(worker_settings.get("poll_interval", config.poll_interval))
        config.scheduler_enabled = bool(
            worker_settings.get("scheduler_enabled", config.scheduler_enabled)
        )

        for queue_name, size in (yaml_data.get("concurrency") or {}).items():
            config.concurrency[str(queue_name)] = int(size)

        retry_data = yaml_data.get("retry") or {}
        config.retry = RetryConfig(
            max_attempts=retry_data.get("max_attempts", DEFAULT_MAX_ATTEMPTS),
            backoff_seconds=retry_data.get("backoff_seconds", DEFAULT_BACKOFF_SECONDS),
            backoff_multiplier=retry_data.get("backoff_multiplier", DEFAULT_BACKOFF_MULTIPLIER),
            max_backoff_seconds=retry_data.get("max_backoff_seconds", MAX_BACKOFF_SECONDS),
        )

        config.schedules = {str(k): str(v) for k, v in (yaml_data.get("schedules") or {}).items()}

        config.validate()
        logger.success(f"Configuration loaded successfully: {len(config.concurrency)} queues configured")
        return config
