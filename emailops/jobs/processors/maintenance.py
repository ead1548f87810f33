"""Maintenance queue processors: retention cleanups."""

from typing import Any, Dict

from loguru import logger

from emailops.core.constants import JobName
from emailops.jobs.definitions import CLEANUP_DEFAULT_DAYS, parse_cleanup_payload
from emailops.jobs.processors.base import run_job
from emailops.jobs.processors.context import ProcessorContext
from emailops.jobs.queue import Job
from emailops.utils.date_utils import days_ago, utcnow


def cleanup_old_alerts(context: ProcessorContext, data: Dict[str, Any]) -> Dict[str, int]:
    payload = parse_cleanup_payload(data, CLEANUP_DEFAULT_DAYS[JobName.CLEANUP_OLD_ALERTS])
    cutoff = days_ago(payload.older_than_days)
    deleted = context.repository.delete_alerts_before(cutoff, only_resolved=payload.only_resolved)
    logger.info(
        f"Deleted {deleted} alerts older than {payload.older_than_days} days"
        f"{' (resolved only)' if payload.only_resolved else ''}"
    )
    return {"deleted": deleted}


def cleanup_old_jobs(context: ProcessorContext, data: Dict[str, Any]) -> Dict[str, int]:
    payload = parse_cleanup_payload(data, CLEANUP_DEFAULT_DAYS[JobName.CLEANUP_OLD_JOBS])
    cutoff = days_ago(payload.older_than_days)
    deleted = context.repository.delete_job_runs_before(cutoff)
    logger.info(f"Deleted {deleted} job runs older than {payload.older_than_days} days")
    return {"deleted": deleted}


def cleanup_old_sessions(context: ProcessorContext, data: Dict[str, Any]) -> Dict[str, int]:
    """Delete sessions that are expired or older than the retention window."""
    payload = parse_cleanup_payload(data, CLEANUP_DEFAULT_DAYS[JobName.CLEANUP_OLD_SESSIONS])
    now = utcnow()
    deleted = context.repository.delete_sessions(
        expired_before=now, created_before=days_ago(payload.older_than_days, now)
    )
    logger.info(f"Deleted {deleted} expired or old sessions")
    return {"deleted": deleted}


MAINTENANCE_HANDLERS = {
    JobName.CLEANUP_OLD_ALERTS.value: cleanup_old_alerts,
    JobName.CLEANUP_OLD_JOBS.value: cleanup_old_jobs,
    JobName.CLEANUP_OLD_SESSIONS.value: cleanup_old_sessions,
}


def process_maintenance_job(job: Job, context: ProcessorContext) -> Dict[str, Any]:
    return run_job(job, context, MAINTENANCE_HANDLERS)
