"""Protocol definitions (interfaces) for the emailops package.

This module defines the abstract interfaces using Python's Protocol so
vendor adapters and persistence backends are swapped without inheritance
and replaced by fakes in tests.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from emailops.core.constants import AlertType, CampaignStatus, ClientStatus, SyncStatus
from emailops.domain.models import (
    Alert,
    AudienceList,
    Campaign,
    Client,
    ConnectionTestResult,
    CreateCampaignInput,
    Credential,
    IndustryBenchmark,
    JobRun,
    Metrics,
    PaginatedResult,
    PaginationOptions,
    PlatformCampaign,
    PlatformList,
    Session,
    UpdateCampaignInput,
)


class EmailPlatformAdapter(Protocol):
    """Unified capability contract every vendor adapter implements.

    Lookups return ``None`` for a vendor 404. Every other failure is raised
    as ``RateLimitError`` (429) or ``PlatformError``.
    """

    platform: str
    client_id: str

    def test_connection(self) -> ConnectionTestResult:
        """Check the credentials against the vendor.

        Returns:
            ConnectionTestResult; failures are reported, not raised
        """
        ...

    def get_campaigns(
        self, options: Optional[PaginationOptions] = None
    ) -> PaginatedResult[PlatformCampaign]:
        """Fetch one page of campaigns.

        Args:
            options: Page, limit and optional filters

        Returns:
            Page of normalized campaigns plus ``has_more``
        """
        ...

    def get_campaign(self, external_id: str) -> Optional[PlatformCampaign]:
        ...

    def create_campaign(self, data: CreateCampaignInput) -> PlatformCampaign:
        """Create a campaign and return the re-fetched canonical object."""
        ...

    def update_campaign(self, external_id: str, data: UpdateCampaignInput) -> PlatformCampaign:
        """Apply a partial update and return the re-fetched canonical object."""
        ...

    def schedule_campaign(self, external_id: str, scheduled_at: datetime) -> None:
        ...

    def send_campaign(self, external_id: str) -> None:
        ...

    def get_campaign_metrics(self, external_id: str) -> Metrics:
        ...

    def get_lists(self) -> List[PlatformList]:
        ...

    def get_list(self, external_id: str) -> Optional[PlatformList]:
        ...

    def normalize_status(self, vendor_status: Any) -> CampaignStatus:
        """Map a vendor status to the normalized enumeration; never raises."""
        ...

    def map_status(self, status: CampaignStatus) -> Any:
        """Map a normalized status back to the vendor vocabulary."""
        ...


class MirrorRepository(Protocol):
    """Persistence collaborator for the mirrored store.

    Campaigns and lists are keyed by (client_id, external_id); credentials
    by client_id; benchmarks by (industry, metric). All writes are upserts.
    """

    # Clients
    def get_client(self, client_id: str) -> Optional[Client]:
        ...

    def list_clients(self, statuses: Optional[List[ClientStatus]] = None) -> List[Client]:
        ...

    def save_client(self, client: Client) -> Client:
        ...

    def update_client_sync(
        self, client_id: str, sync_status: SyncStatus, last_sync_at: Optional[datetime] = None
    ) -> Optional[Client]:
        ...

    def set_client_status(self, client_id: str, status: ClientStatus) -> Optional[Client]:
        ...

    # Credentials
    def get_credential(self, client_id: str) -> Optional[Credential]:
        ...

    def save_credential(self, credential: Credential) -> Credential:
        ...

    # Campaigns
    def get_campaign(self, client_id: str, external_id: str) -> Optional[Campaign]:
        ...

    def upsert_campaign(self, campaign: Campaign) -> Campaign:
        ...

    def list_campaigns(
        self,
        client_id: Optional[str] = None,
        status: Optional[CampaignStatus] = None,
        sent_after: Optional[datetime] = None,
    ) -> List[Campaign]:
        ...

    # Lists
    def upsert_list(self, audience_list: AudienceList) -> AudienceList:
        ...

    def list_audience_lists(self, client_id: str) -> List[AudienceList]:
        ...

    # Alerts
    def find_open_alert(
        self, client_id: str, alert_type: AlertType, metric: Optional[str] = None
    ) -> Optional[Alert]:
        ...

    def create_alert(self, alert: Alert) -> Alert:
        ...

    def resolve_alerts(self, client_id: str, alert_type: AlertType) -> int:
        ...

    def list_alerts(self, client_id: Optional[str] = None) -> List[Alert]:
        ...

    def delete_alerts_before(self, cutoff: datetime, only_resolved: bool = True) -> int:
        ...

    # Job runs
    def create_job_run(self, job_run: JobRun) -> JobRun:
        ...

    def finalize_job_run(
        self,
        job_run_id: str,
        status: Any,
        output: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> JobRun:
        ...

    def list_job_runs(self) -> List[JobRun]:
        ...

    def delete_job_runs_before(self, cutoff: datetime) -> int:
        ...

    # Benchmarks
    def upsert_benchmark(self, benchmark: IndustryBenchmark) -> IndustryBenchmark:
        ...

    def get_benchmark(self, industry: str, metric: str) -> Optional[IndustryBenchmark]:
        ...

    # Sessions
    def save_session(self, session: Session) -> Session:
        ...

    def delete_sessions(self, expired_before: datetime, created_before: datetime) -> int:
        ...
