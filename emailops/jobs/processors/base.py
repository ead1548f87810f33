"""JobRun bookkeeping shared by the queue dispatchers."""

from typing import Any, Callable, Dict, Mapping

from loguru import logger

from emailops.core.constants import JobRunStatus
from emailops.core.exceptions import JobError
from emailops.domain.models import JobRun
from emailops.jobs.processors.context import ProcessorContext
from emailops.jobs.queue import Job
from shared.utils.logging import sanitize_log_data

JobHandler = Callable[[ProcessorContext, Dict[str, Any]], Dict[str, Any]]


def run_job(job: Job, context: ProcessorContext, handlers: Mapping[str, JobHandler]) -> Dict[str, Any]:
    """Execute ``job`` with its handler inside a JobRun audit record.

    The JobRun is written as RUNNING first, then finalized COMPLETED with the
    handler output or FAILED with the error text. Failures are re-raised so
    the queue can retry.

    Args:
        job: Claimed job
        context: Processor dependencies
        handlers: Handler per job name of this queue

    Returns:
        Handler output

    Raises:
        JobError: If the job name has no handler
    """
    log = logger.bind(job_id=job.id, job_name=job.name)
    job_run = context.repository.create_job_run(
        JobRun(job_id=job.id, job_name=job.name, queue_name=job.queue, input=dict(job.data))
    )
    log.info(f"Processing {job.name} (attempt {job.attempts_made}) with {sanitize_log_data(job.data)}")

    try:
        handler = handlers.get(job.name)
        if handler is None:
            raise JobError(f"Unknown job name '{job.name}' for queue '{job.queue}'", job_name=job.name)
        output = handler(context, dict(job.data))
    except Exception as e:
        context.repository.finalize_job_run(job_run.id, JobRunStatus.FAILED, error=str(e))
        log.error(f"{job.name} failed: {e}")
        raise

    context.repository.finalize_job_run(job_run.id, JobRunStatus.COMPLETED, output=output)
    log.success(f"{job.name} completed: {output}")
    return output
