from datetime import timedelta

import pytest

from emailops.core.constants import AlertSeverity, AlertType, JobName, JobRunStatus, QueueName
from emailops.core.exceptions import ValidationError
from emailops.domain.models import Alert, JobRun, Session
from emailops.jobs.processors.maintenance import (
    cleanup_old_alerts,
    cleanup_old_jobs,
    cleanup_old_sessions,
    process_maintenance_job,
)
from emailops.jobs.queue import Job
from emailops.utils.date_utils import utcnow


def make_alert(repository, age_days, resolved):
    created = utcnow() - timedelta(days=age_days)
    return repository.create_alert(
        Alert(
            client_id="client-1",
            type=AlertType.SYNC_FAILURE,
            severity=AlertSeverity.LOW,
            title="Sync failed",
            message="timeout",
            created_at=created,
            resolved_at=created if resolved else None,
        )
    )


class TestCleanupOldAlerts:
    def test_only_resolved_when_asked(self, context, repository):
        make_alert(repository, 40, resolved=True)
        make_alert(repository, 40, resolved=False)
        make_alert(repository, 5, resolved=True)

        assert cleanup_old_alerts(context, {"olderThanDays": 30, "onlyResolved": True}) == {"deleted": 1}
        assert len(repository.list_alerts()) == 2

    def test_unresolved_included_by_default(self, context, repository):
        make_alert(repository, 40, resolved=True)
        make_alert(repository, 40, resolved=False)
        make_alert(repository, 5, resolved=False)

        assert cleanup_old_alerts(context, {"olderThanDays": 30}) == {"deleted": 2}
        assert len(repository.list_alerts()) == 1

    def test_default_retention(self, context, repository):
        make_alert(repository, 31, resolved=True)
        make_alert(repository, 29, resolved=True)

        assert cleanup_old_alerts(context, {}) == {"deleted": 1}

    @pytest.mark.parametrize("days", [-1, "30", 1.5, True])
    def test_invalid_retention_is_rejected(self, context, days):
        with pytest.raises(ValidationError):
            cleanup_old_alerts(context, {"olderThanDays": days})


class TestCleanupOldJobs:
    def test_deletes_finished_runs_only(self, context, repository):
        old = repository.create_job_run(
            JobRun(job_id="a", job_name="sync:campaigns", queue_name="sync", started_at=utcnow() - timedelta(days=40))
        )
        repository.finalize_job_run(old.id, JobRunStatus.COMPLETED, output={})
        repository.create_job_run(
            JobRun(job_id="b", job_name="sync:campaigns", queue_name="sync", started_at=utcnow() - timedelta(days=40))
        )

        # Runs completed just now are inside any positive window
        assert cleanup_old_jobs(context, {"olderThanDays": 30}) == {"deleted": 0}
        assert cleanup_old_jobs(context, {"olderThanDays": 0}) == {"deleted": 1}
        (remaining,) = repository.list_job_runs()
        assert remaining.status == JobRunStatus.RUNNING


class TestCleanupOldSessions:
    def test_expired_or_stale_sessions_are_deleted(self, context, repository):
        now = utcnow()
        repository.save_session(Session(user_id="u1", expires_at=now - timedelta(hours=1)))
        repository.save_session(
            Session(user_id="u2", expires_at=now + timedelta(days=30), created_at=now - timedelta(days=10))
        )
        keep = repository.save_session(Session(user_id="u3", expires_at=now + timedelta(days=1)))

        assert cleanup_old_sessions(context, {"olderThanDays": 7}) == {"deleted": 2}
        assert [s.id for s in repository.list_sessions()] == [keep.id]


class TestProcessMaintenanceJob:
    def test_negative_retention_fails_job_run(self, context, repository):
        job = Job(
            name=JobName.CLEANUP_OLD_ALERTS.value,
            queue=QueueName.MAINTENANCE.value,
            data={"olderThanDays": -5},
        )

        with pytest.raises(ValidationError):
            process_maintenance_job(job, context)

        (job_run,) = repository.list_job_runs()
        assert job_run.status == JobRunStatus.FAILED
        assert "olderThanDays" in job_run.error

    def test_cleanup_job_run_output(self, context, repository):
        job = Job(name=JobName.CLEANUP_OLD_SESSIONS.value, queue=QueueName.MAINTENANCE.value, data={})

        assert process_maintenance_job(job, context) == {"deleted": 0}
        assert repository.list_job_runs()[0].output == {"deleted": 0}
