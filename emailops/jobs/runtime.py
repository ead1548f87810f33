"""Worker runtime: wires queues, workers, processors and the scheduler."""

import functools
from typing import Any, Dict, Optional

from loguru import logger

from emailops.core.config import WorkerConfig
from emailops.core.constants import JOB_QUEUES, JobName, QueueName
from emailops.core.exceptions import ValidationError
from emailops.core.protocols import MirrorRepository
from emailops.jobs.processors import QUEUE_PROCESSORS, ProcessorContext
from emailops.jobs.processors.context import AdapterFactory
from emailops.jobs.queue import Job, JobQueue
from emailops.jobs.retry import RetryPolicy
from emailops.jobs.scheduler import JobScheduler
from emailops.jobs.worker import QueueWorker
from emailops.repository.memory import InMemoryMirrorRepository
from emailops.security.cipher import CredentialCipher


class WorkerRuntime:
    """Everything the worker process runs, built explicitly from configuration.

    Example:
        ```python
        runtime = WorkerRuntime(WorkerConfig.from_env())
        runtime.start()
        runtime.enqueue(JobName.SYNC_CAMPAIGNS, {"clientId": client_id})
        ...
        runtime.shutdown()
        ```
    """

    def __init__(
        self,
        config: WorkerConfig,
        repository: Optional[MirrorRepository] = None,
        cipher: Optional[CredentialCipher] = None,
        adapter_factory: Optional[AdapterFactory] = None,
        scheduler: Optional[JobScheduler] = None,
    ):
        config.validate()
        self.config = config
        self.repository = repository if repository is not None else InMemoryMirrorRepository()
        self.cipher = cipher or CredentialCipher(config.encryption_key)
        self.context = ProcessorContext(self.repository, self.cipher, adapter_factory)

        retry_policy = RetryPolicy.from_config(config.retry)
        self.queues: Dict[QueueName, JobQueue] = {
            queue_name: JobQueue(queue_name, retry_policy=retry_policy) for queue_name in QueueName
        }
        self.workers: Dict[QueueName, QueueWorker] = {
            queue_name: QueueWorker(
                queue,
                functools.partial(QUEUE_PROCESSORS[queue_name], context=self.context),
                concurrency=config.get_concurrency(queue_name.value),
                poll_interval=config.poll_interval,
            )
            for queue_name, queue in self.queues.items()
        }
        self.scheduler = scheduler or JobScheduler(self.queues, overrides=config.schedules)

    def start(self) -> None:
        for worker in self.workers.values():
            worker.start()
        if self.config.scheduler_enabled:
            self.scheduler.register()
            self.scheduler.start()
        else:
            logger.info("Scheduler disabled, only explicitly enqueued jobs will run")

    def shutdown(self) -> None:
        """Stop the scheduler, then drain every queue's in-flight jobs."""
        logger.info("Shutting down worker runtime...")
        self.scheduler.shutdown()
        for worker in self.workers.values():
            worker.shutdown(wait=True)
        logger.info("Worker runtime stopped")

    def enqueue(
        self, name: JobName, data: Optional[Dict[str, Any]] = None, job_id: Optional[str] = None
    ) -> Job:
        """Add a job to the queue its name belongs to."""
        try:
            job_name = JobName(name)
        except ValueError:
            raise ValidationError(f"Unknown job name: {name}")
        return self.queues[JOB_QUEUES[job_name]].add(job_name, data, job_id=job_id)

    def run_pending(self) -> int:
        """Process every ready job on the calling thread, queue by queue."""
        return sum(worker.run_pending() for worker in self.workers.values())
