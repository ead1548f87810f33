"""Domain models for the email platform mirror.

Two groups live here: the transfer objects adapters return (``Platform*``,
``Metrics``, inputs and pagination), and the mirror records the processors
persist through the repository (``Client``, ``Campaign``, ``JobRun`` ...).
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar

from emailops.core.constants import (
    AlertSeverity,
    AlertType,
    CampaignStatus,
    ClientStatus,
    JobRunStatus,
    SyncStatus,
)
from emailops.utils.date_utils import utcnow
from emailops.utils.parsing import safe_ratio

T = TypeVar("T")


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Metrics:
    """Campaign performance snapshot.

    Always built from vendor counters through :meth:`from_counts`; rates are
    fractions of ``sent`` and are 0 when nothing was sent.
    """

    sent: int = 0
    delivered: int = 0
    unique_opens: int = 0
    total_opens: int = 0
    unique_clicks: int = 0
    total_clicks: int = 0
    bounces: int = 0
    unsubscribes: int = 0
    complaints: int = 0
    open_rate: float = 0.0
    click_rate: float = 0.0
    bounce_rate: float = 0.0
    unsubscribe_rate: float = 0.0

    @classmethod
    def from_counts(
        cls,
        sent: int,
        bounces: int = 0,
        unique_opens: int = 0,
        unique_clicks: int = 0,
        unsubscribes: int = 0,
        complaints: int = 0,
        delivered: Optional[int] = None,
        total_opens: Optional[int] = None,
        total_clicks: Optional[int] = None,
    ) -> "Metrics":
        """Build a snapshot, deriving ``delivered`` and every rate from the counts.

        Args:
            sent: Emails sent
            bounces: Hard plus soft bounces
            unique_opens: Unique opens
            unique_clicks: Unique clicks
            unsubscribes: Unsubscribes
            complaints: Spam complaints
            delivered: Vendor-reported deliveries; ``sent - bounces`` when None
            total_opens: Total opens; defaults to ``unique_opens``
            total_clicks: Total clicks; defaults to ``unique_clicks``
        """
        sent = max(int(sent or 0), 0)
        bounces = max(int(bounces or 0), 0)
        if delivered is None:
            delivered = max(sent - bounces, 0)
        return cls(
            sent=sent,
            delivered=int(delivered),
            unique_opens=int(unique_opens or 0),
            total_opens=int(total_opens if total_opens is not None else unique_opens or 0),
            unique_clicks=int(unique_clicks or 0),
            total_clicks=int(total_clicks if total_clicks is not None else unique_clicks or 0),
            bounces=bounces,
            unsubscribes=int(unsubscribes or 0),
            complaints=int(complaints or 0),
            open_rate=safe_ratio(unique_opens or 0, sent),
            click_rate=safe_ratio(unique_clicks or 0, sent),
            bounce_rate=safe_ratio(bounces, sent),
            unsubscribe_rate=safe_ratio(unsubscribes or 0, sent),
        )

    @classmethod
    def empty(cls) -> "Metrics":
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PlatformCampaign:
    """A campaign as returned by a vendor adapter, already normalized."""

    external_id: str
    name: str
    status: CampaignStatus
    subject_line: Optional[str] = None
    preview_text: Optional[str] = None
    from_name: Optional[str] = None
    from_email: Optional[str] = None
    content_html: Optional[str] = None
    content_text: Optional[str] = None
    list_id: Optional[str] = None
    list_name: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    metrics: Optional[Metrics] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PlatformList:
    """An audience list as returned by a vendor adapter."""

    external_id: str
    name: str
    member_count: int = 0
    unsubscribe_count: int = 0
    cleaned_count: int = 0
    open_rate: Optional[float] = None
    click_rate: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AccountInfo:
    id: str
    name: str
    email: Optional[str] = None
    plan: Optional[str] = None


@dataclass
class ConnectionTestResult:
    """Outcome of ``test_connection``; failures carry the vendor's error text."""

    success: bool
    message: str
    account_info: Optional[AccountInfo] = None
    error: Optional[str] = None


@dataclass
class CreateCampaignInput:
    name: str
    subject_line: str
    from_name: str
    from_email: str
    list_id: str
    content_html: str
    preview_text: Optional[str] = None
    content_text: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class UpdateCampaignInput:
    """Partial update; ``None`` fields are left untouched on the vendor side."""

    name: Optional[str] = None
    subject_line: Optional[str] = None
    preview_text: Optional[str] = None
    from_name: Optional[str] = None
    from_email: Optional[str] = None
    content_html: Optional[str] = None
    content_text: Optional[str] = None

    def has_content_changes(self) -> bool:
        return any(
            value is not None
            for value in (
                self.subject_line,
                self.preview_text,
                self.from_name,
                self.from_email,
                self.content_html,
                self.content_text,
            )
        )


@dataclass
class PaginationOptions:
    page: int = 1
    limit: int = 50
    since: Optional[datetime] = None
    statuses: List[CampaignStatus] = field(default_factory=list)

    @property
    def offset(self) -> int:
        return (max(self.page, 1) - 1) * self.limit


@dataclass
class PaginatedResult(Generic[T]):
    items: List[T]
    total: int
    page: int
    limit: int
    has_more: bool


# --- Mirror records ---


@dataclass
class Client:
    name: str
    platform: str
    id: str = field(default_factory=new_id)
    industry: Optional[str] = None
    status: ClientStatus = ClientStatus.ONBOARDING
    sync_status: SyncStatus = SyncStatus.NEVER
    last_sync_at: Optional[datetime] = None


@dataclass
class Credential:
    """Encrypted credential bag of one client. The plaintext is never stored."""

    client_id: str
    ciphertext: str
    iv: str
    auth_tag: str
    id: str = field(default_factory=new_id)
    is_valid: Optional[bool] = None
    last_verified_at: Optional[datetime] = None
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class Campaign:
    """Mirror of a vendor campaign, unique per (client_id, external_id)."""

    client_id: str
    external_id: str
    name: str
    status: CampaignStatus
    id: str = field(default_factory=new_id)
    subject_line: Optional[str] = None
    preview_text: Optional[str] = None
    from_name: Optional[str] = None
    from_email: Optional[str] = None
    content_html: Optional[str] = None
    content_text: Optional[str] = None
    list_id: Optional[str] = None
    list_name: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    metrics: Optional[Metrics] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    synced_at: Optional[datetime] = None


@dataclass
class AudienceList:
    """Mirror of a vendor audience list, unique per (client_id, external_id)."""

    client_id: str
    external_id: str
    name: str
    id: str = field(default_factory=new_id)
    member_count: int = 0
    unsubscribe_count: int = 0
    cleaned_count: int = 0
    avg_open_rate: Optional[float] = None
    avg_click_rate: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    synced_at: Optional[datetime] = None


@dataclass
class JobRun:
    """Audit row for one execution of one queued job."""

    job_id: str
    job_name: str
    queue_name: str
    id: str = field(default_factory=new_id)
    status: JobRunStatus = JobRunStatus.RUNNING
    input: Dict[str, Any] = field(default_factory=dict)
    output: Optional[Dict[str, Any]] = None
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobRunStatus.COMPLETED, JobRunStatus.FAILED)


@dataclass
class Alert:
    client_id: str
    type: AlertType
    severity: AlertSeverity
    title: str
    message: str
    id: str = field(default_factory=new_id)
    metadata: Dict[str, Any] = field(default_factory=dict)
    is_read: bool = False
    is_dismissed: bool = False
    created_at: datetime = field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None

    @property
    def metric(self) -> Optional[str]:
        return self.metadata.get("metric")

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None


@dataclass
class IndustryBenchmark:
    """Aggregate rate (percent) for one industry and metric."""

    industry: str
    metric: str
    value: float
    sample_size: int
    period: str = "weekly"
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class Session:
    user_id: str
    expires_at: datetime
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
