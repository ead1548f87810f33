"""Queue workers.

One ``QueueWorker`` per queue runs ``concurrency`` polling loops on a
ThreadPoolExecutor. Shutdown stops the loops from claiming new jobs and
waits for the in-flight ones to finish.
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, List, Optional

from loguru import logger

from emailops.core.constants import JobState, WORKER_POLL_INTERVAL_SECONDS
from emailops.jobs.queue import Job, JobQueue

JobProcessor = Callable[[Job], Any]

PRUNE_INTERVAL_SECONDS = 60.0


class QueueWorker:
    """Pulls jobs from one queue and hands them to a processor.

    Args:
        queue: Queue to consume
        processor: Callable run for each job; its return value becomes the job result
        concurrency: Number of jobs processed at the same time
        poll_interval: Seconds to wait for new work when the queue is idle
    """

    def __init__(
        self,
        queue: JobQueue,
        processor: JobProcessor,
        concurrency: int = 1,
        poll_interval: float = WORKER_POLL_INTERVAL_SECONDS,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.queue = queue
        self.processor = processor
        self.concurrency = concurrency
        self.poll_interval = poll_interval
        self._stop = threading.Event()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._loops: List[Future] = []
        self._log = logger.bind(queue=queue.name.value)
        self._prune_lock = threading.Lock()
        self._last_prune = time.monotonic()

    @property
    def running(self) -> bool:
        return self._executor is not None and not self._stop.is_set()

    def start(self) -> None:
        if self._executor is not None:
            return
        self._stop.clear()
        self._executor = ThreadPoolExecutor(
            max_workers=self.concurrency,
            thread_name_prefix=f"{self.queue.name.value}-worker",
        )
        self._loops = [self._executor.submit(self._run_loop) for _ in range(self.concurrency)]
        self._log.info(f"Worker started for queue '{self.queue.name.value}' (concurrency {self.concurrency})")

    def shutdown(self, wait: bool = True) -> None:
        """Stop claiming jobs and drain the in-flight ones."""
        if self._executor is None:
            return
        self._stop.set()
        self.queue.wake_all()
        self._executor.shutdown(wait=wait)
        self._executor = None
        self._loops = []
        self._log.info(f"Worker for queue '{self.queue.name.value}' stopped, jobs by state: {self.queue.counts()}")

    def run_pending(self) -> int:
        """Process every job that is ready right now on the calling thread.

        Returns:
            Number of attempts executed
        """
        executed = 0
        while True:
            job = self.queue.next_job()
            if job is None:
                return executed
            self.process(job)
            executed += 1

    def process(self, job: Job) -> Job:
        """Run one claimed job and record the outcome on the queue."""
        started = time.monotonic()
        try:
            result = self.processor(job)
        except Exception as e:
            job = self.queue.fail(job, e)
            elapsed = time.monotonic() - started
            if job.state == JobState.DELAYED:
                self._log.warning(
                    f"Job {job.name} ({job.id}) attempt {job.attempts_made} failed after {elapsed:.2f}s, "
                    f"retrying at {job.available_at.isoformat()}: {e}"
                )
            else:
                self._log.error(
                    f"Job {job.name} ({job.id}) failed after {job.attempts_made} attempt(s): {e}"
                )
            return job

        job = self.queue.complete(job, result)
        self._log.info(f"Job {job.name} ({job.id}) completed in {time.monotonic() - started:.2f}s")
        return job

    def _run_loop(self) -> None:
        while not self._stop.is_set():
            try:
                self._poll_once()
            except Exception:
                # Failures outside the processor, e.g. in the job store
                self._log.exception("Worker loop error, retrying after the poll interval")
                self._stop.wait(self.poll_interval)

    def _poll_once(self) -> None:
        job = self.queue.next_job()
        if job is None:
            self._maybe_prune()
            self.queue.wait_for_job(self.poll_interval)
            return
        self.process(job)

    def _maybe_prune(self) -> None:
        with self._prune_lock:
            now = time.monotonic()
            if now - self._last_prune < PRUNE_INTERVAL_SECONDS:
                return
            self._last_prune = now
        pruned = self.queue.prune()
        if pruned:
            self._log.debug(f"Pruned {pruned} finished jobs, remaining by state: {self.queue.counts()}")
