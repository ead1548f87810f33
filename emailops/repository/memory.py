"""Thread-safe in-memory implementation of the MirrorRepository protocol.

Used by the worker when no database-backed store is wired in, and by the
test suite. Natural keys mirror the unique constraints of the relational
store: (client_id, external_id) for campaigns and lists, client_id for
credentials, (industry, metric) for benchmarks.
"""

import threading
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from emailops.core.constants import AlertType, CampaignStatus, ClientStatus, JobRunStatus, SyncStatus
from emailops.core.exceptions import NotFoundError, ValidationError
from emailops.domain.models import (
    Alert,
    AudienceList,
    Campaign,
    Client,
    Credential,
    IndustryBenchmark,
    JobRun,
    Session,
)
from emailops.utils.date_utils import utcnow


class InMemoryMirrorRepository:
    """Dictionary-backed mirror store guarded by a single lock.

    Records are copied on the way in and out so callers never share mutable
    state with the store.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._clients: Dict[str, Client] = {}
        self._credentials: Dict[str, Credential] = {}
        self._campaigns: Dict[Tuple[str, str], Campaign] = {}
        self._lists: Dict[Tuple[str, str], AudienceList] = {}
        self._alerts: Dict[str, Alert] = {}
        self._job_runs: Dict[str, JobRun] = {}
        self._benchmarks: Dict[Tuple[str, str], IndustryBenchmark] = {}
        self._sessions: Dict[str, Session] = {}

    # --- Clients ---

    def get_client(self, client_id: str) -> Optional[Client]:
        with self._lock:
            client = self._clients.get(client_id)
            return replace(client) if client else None

    def list_clients(self, statuses: Optional[List[ClientStatus]] = None) -> List[Client]:
        with self._lock:
            return [
                replace(c)
                for c in self._clients.values()
                if statuses is None or c.status in statuses
            ]

    def save_client(self, client: Client) -> Client:
        with self._lock:
            self._clients[client.id] = replace(client)
            return replace(client)

    def update_client_sync(
        self, client_id: str, sync_status: SyncStatus, last_sync_at: Optional[datetime] = None
    ) -> Optional[Client]:
        """Set the sync fields of the stored client, leaving every other field as stored.

        ``last_sync_at`` is only written when given. Returns None for an unknown client.
        """
        with self._lock:
            client = self._clients.get(client_id)
            if client is None:
                return None
            updated = replace(
                client,
                sync_status=SyncStatus(sync_status),
                last_sync_at=last_sync_at if last_sync_at is not None else client.last_sync_at,
            )
            self._clients[client_id] = updated
            return replace(updated)

    def set_client_status(self, client_id: str, status: ClientStatus) -> Optional[Client]:
        with self._lock:
            client = self._clients.get(client_id)
            if client is None:
                return None
            updated = replace(client, status=ClientStatus(status))
            self._clients[client_id] = updated
            return replace(updated)

    # --- Credentials ---

    def get_credential(self, client_id: str) -> Optional[Credential]:
        with self._lock:
            credential = self._credentials.get(client_id)
            return replace(credential) if credential else None

    def save_credential(self, credential: Credential) -> Credential:
        with self._lock:
            existing = self._credentials.get(credential.client_id)
            stored = replace(credential, id=existing.id if existing else credential.id, updated_at=utcnow())
            self._credentials[credential.client_id] = stored
            return replace(stored)

    # --- Campaigns ---

    def get_campaign(self, client_id: str, external_id: str) -> Optional[Campaign]:
        with self._lock:
            campaign = self._campaigns.get((client_id, external_id))
            return replace(campaign) if campaign else None

    def upsert_campaign(self, campaign: Campaign) -> Campaign:
        """Insert or update by (client_id, external_id); the row id is stable."""
        if not campaign.external_id:
            raise ValidationError("Campaign external_id is required")
        key = (campaign.client_id, campaign.external_id)
        with self._lock:
            existing = self._campaigns.get(key)
            stored = replace(campaign, id=existing.id if existing else campaign.id)
            self._campaigns[key] = stored
            return replace(stored)

    def list_campaigns(
        self,
        client_id: Optional[str] = None,
        status: Optional[CampaignStatus] = None,
        sent_after: Optional[datetime] = None,
    ) -> List[Campaign]:
        with self._lock:
            campaigns = [
                replace(c)
                for c in self._campaigns.values()
                if (client_id is None or c.client_id == client_id)
                and (status is None or c.status == status)
                and (sent_after is None or (c.sent_at is not None and c.sent_at >= sent_after))
            ]
        # Most recent sends first; unsent campaigns trail in insertion order.
        sent = sorted((c for c in campaigns if c.sent_at is not None), key=lambda c: c.sent_at, reverse=True)
        return sent + [c for c in campaigns if c.sent_at is None]

    # --- Lists ---

    def upsert_list(self, audience_list: AudienceList) -> AudienceList:
        if not audience_list.external_id:
            raise ValidationError("List external_id is required")
        key = (audience_list.client_id, audience_list.external_id)
        with self._lock:
            existing = self._lists.get(key)
            stored = replace(audience_list, id=existing.id if existing else audience_list.id)
            self._lists[key] = stored
            return replace(stored)

    def list_audience_lists(self, client_id: str) -> List[AudienceList]:
        with self._lock:
            return [replace(l) for (owner, _), l in self._lists.items() if owner == client_id]

    # --- Alerts ---

    def find_open_alert(
        self, client_id: str, alert_type: AlertType, metric: Optional[str] = None
    ) -> Optional[Alert]:
        with self._lock:
            for alert in self._alerts.values():
                if (
                    alert.client_id == client_id
                    and alert.type == alert_type
                    and not alert.is_resolved
                    and (metric is None or alert.metric == metric)
                ):
                    return replace(alert)
        return None

    def create_alert(self, alert: Alert) -> Alert:
        with self._lock:
            self._alerts[alert.id] = replace(alert)
            return replace(alert)

    def resolve_alerts(self, client_id: str, alert_type: AlertType) -> int:
        now = utcnow()
        resolved = 0
        with self._lock:
            for alert_id, alert in self._alerts.items():
                if alert.client_id == client_id and alert.type == alert_type and not alert.is_resolved:
                    self._alerts[alert_id] = replace(alert, resolved_at=now)
                    resolved += 1
        return resolved

    def list_alerts(self, client_id: Optional[str] = None) -> List[Alert]:
        with self._lock:
            return [
                replace(a) for a in self._alerts.values() if client_id is None or a.client_id == client_id
            ]

    def delete_alerts_before(self, cutoff: datetime, only_resolved: bool = True) -> int:
        with self._lock:
            doomed = [
                alert_id
                for alert_id, alert in self._alerts.items()
                if alert.created_at < cutoff and (not only_resolved or alert.is_resolved)
            ]
            for alert_id in doomed:
                del self._alerts[alert_id]
        return len(doomed)

    # --- Job runs ---

    def create_job_run(self, job_run: JobRun) -> JobRun:
        with self._lock:
            self._job_runs[job_run.id] = replace(job_run)
            return replace(job_run)

    def finalize_job_run(
        self,
        job_run_id: str,
        status: JobRunStatus,
        output: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> JobRun:
        """Move a RUNNING job run to a terminal status exactly once.

        Raises:
            NotFoundError: If the job run does not exist
            ValidationError: If the job run is already terminal or the status is not terminal
        """
        status = JobRunStatus(status)
        if status == JobRunStatus.RUNNING:
            raise ValidationError("A job run can only be finalized as COMPLETED or FAILED")

        with self._lock:
            job_run = self._job_runs.get(job_run_id)
            if job_run is None:
                raise NotFoundError("JobRun", job_run_id)
            if job_run.is_terminal:
                raise ValidationError(
                    f"JobRun {job_run_id} is already {job_run.status.value}",
                    details={"job_run_id": job_run_id},
                )
            completed_at = utcnow()
            duration_ms = int((completed_at - job_run.started_at).total_seconds() * 1000)
            finalized = replace(
                job_run,
                status=status,
                output=output,
                error=error,
                completed_at=completed_at,
                duration_ms=max(duration_ms, 0),
            )
            self._job_runs[job_run_id] = finalized
            return replace(finalized)

    def list_job_runs(self) -> List[JobRun]:
        with self._lock:
            return [replace(j) for j in self._job_runs.values()]

    def delete_job_runs_before(self, cutoff: datetime) -> int:
        """Delete terminal job runs completed before ``cutoff``; RUNNING rows stay."""
        with self._lock:
            doomed = [
                run_id
                for run_id, run in self._job_runs.items()
                if run.is_terminal and run.completed_at is not None and run.completed_at < cutoff
            ]
            for run_id in doomed:
                del self._job_runs[run_id]
        return len(doomed)

    # --- Benchmarks ---

    def upsert_benchmark(self, benchmark: IndustryBenchmark) -> IndustryBenchmark:
        with self._lock:
            self._benchmarks[(benchmark.industry, benchmark.metric)] = replace(benchmark)
            return replace(benchmark)

    def get_benchmark(self, industry: str, metric: str) -> Optional[IndustryBenchmark]:
        with self._lock:
            benchmark = self._benchmarks.get((industry, metric))
            return replace(benchmark) if benchmark else None

    def list_benchmarks(self) -> List[IndustryBenchmark]:
        with self._lock:
            return [replace(b) for b in self._benchmarks.values()]

    # --- Sessions ---

    def save_session(self, session: Session) -> Session:
        with self._lock:
            self._sessions[session.id] = replace(session)
            return replace(session)

    def list_sessions(self) -> List[Session]:
        with self._lock:
            return [replace(s) for s in self._sessions.values()]

    def delete_sessions(self, expired_before: datetime, created_before: datetime) -> int:
        """Delete sessions that expired before ``expired_before`` or were created before ``created_before``."""
        with self._lock:
            doomed = [
                session_id
                for session_id, session in self._sessions.items()
                if session.expires_at < expired_before or session.created_at < created_before
            ]
            for session_id in doomed:
                del self._sessions[session_id]
        if doomed:
            logger.debug(f"Deleted {len(doomed)} sessions")
        return len(doomed)
