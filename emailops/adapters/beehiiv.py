"""beehiiv API v2 adapter.

Every call is scoped to one publication: the base URL embeds the
``accountId`` credential (``pub_...``). Auth is a Bearer API key.

beehiiv has a single "confirmed" state for posts that will be or have been
sent; the normalized status is derived from the post's scheduled time.
Post creation is an Enterprise-only endpoint and posts cannot be edited,
scheduled or sent through the public API.
"""

from datetime import datetime
from typing import Any, Dict, List, Mapping, NoReturn, Optional

from emailops.adapters.errors import (
    adapter_logger,
    extract_error_message,
    handle_api_error,
    is_not_found,
    status_code_of,
)
from emailops.adapters.http_client import VendorHTTPClient
from emailops.adapters.mapping import map_with, normalize_with, require_refetched
from emailops.core.constants import DEFAULT_PAGE_SIZE, MAX_PAGES, CampaignStatus
from emailops.core.exceptions import EmailOpsError, PlatformError
from emailops.domain.models import (
    AccountInfo,
    ConnectionTestResult,
    CreateCampaignInput,
    Metrics,
    PaginatedResult,
    PaginationOptions,
    PlatformCampaign,
    PlatformList,
    UpdateCampaignInput,
)
from emailops.utils.date_utils import parse_datetime, utcnow
from emailops.utils.parsing import first_present, to_int

BEEHIIV_BASE_URL = "https://api.beehiiv.com/v2/publications/{publication_id}"
MAX_POST_PAGE_SIZE = 100
SEGMENT_PAGE_SIZE = 100
ENTERPRISE_REQUIRED = "Creating posts through the API requires a beehiiv Enterprise plan"
DASHBOARD_ONLY = "is not supported by the beehiiv API; use the beehiiv dashboard"

STATUS_MAP = {
    "draft": CampaignStatus.DRAFT,
    "confirmed": CampaignStatus.SENT,
    "archived": CampaignStatus.ARCHIVED,
}

REVERSE_STATUS_MAP = {
    CampaignStatus.DRAFT: "draft",
    CampaignStatus.SCHEDULED: "confirmed",
    CampaignStatus.SENDING: "confirmed",
    CampaignStatus.SENT: "confirmed",
    CampaignStatus.ARCHIVED: "archived",
}


def post_scheduled_at(post: Mapping[str, Any]) -> Optional[datetime]:
    return parse_datetime(first_present(post, "scheduled_at", "publish_date"))


def derive_status(post: Mapping[str, Any], now: Optional[datetime] = None) -> CampaignStatus:
    """Normalized status of a post.

    A confirmed post is SCHEDULED while its scheduled time is in the future
    and SENT otherwise.
    """
    status = normalize_with(STATUS_MAP, post.get("status"))
    if post.get("status") == "confirmed":
        scheduled_at = post_scheduled_at(post)
        if scheduled_at is not None and scheduled_at > (now or utcnow()):
            return CampaignStatus.SCHEDULED
    return status


class BeehiivAdapter:
    """Adapter for beehiiv posts and segments."""

    platform = "Beehiiv"

    def __init__(self, client_id: str, credentials: Mapping[str, Any], session: Optional[Any] = None):
        self.client_id = client_id
        api_key = credentials.get("apiKey") or ""
        self._http = VendorHTTPClient(
            base_url=BEEHIIV_BASE_URL.format(publication_id=credentials.get("accountId") or ""),
            auth_headers=lambda: {"Authorization": f"Bearer {api_key}"},
            session=session,
        )
        self._log = adapter_logger(self.platform, client_id)

    def _fail(self, operation: str, error: Exception) -> NoReturn:
        handle_api_error(self.platform, operation, error, self.client_id)

    def test_connection(self) -> ConnectionTestResult:
        try:
            publication = self._http.get("").get("data") or {}
        except EmailOpsError as e:
            message = extract_error_message(e)
            self._log.error(f"Beehiiv connection test failed: {message}")
            return ConnectionTestResult(success=False, message="Failed to connect to Beehiiv", error=message)

        return ConnectionTestResult(
            success=True,
            message="Successfully connected to Beehiiv",
            account_info=AccountInfo(
                id=str(publication.get("id", "")),
                name=publication.get("name") or publication.get("organization_name") or "",
            ),
        )

    def get_campaigns(self, options: Optional[PaginationOptions] = None) -> PaginatedResult[PlatformCampaign]:
        options = options or PaginationOptions(limit=DEFAULT_PAGE_SIZE)
        limit = min(options.limit, MAX_POST_PAGE_SIZE)
        params: Dict[str, Any] = {
            "page": options.page,
            "limit": limit,
            "expand[]": "stats",
            "order_by": "publish_date",
            "direction": "desc",
        }
        vendor_statuses = {self.map_status(s) for s in options.statuses}
        if len(vendor_statuses) == 1:
            params["status"] = vendor_statuses.pop()

        try:
            response = self._http.get("/posts", params=params)
        except Exception as e:
            self._fail("getCampaigns", e)

        campaigns = [self._map_post(post) for post in response.get("data") or []]
        if options.statuses:
            wanted = set(options.statuses)
            campaigns = [c for c in campaigns if c.status in wanted]
        if options.since:
            campaigns = [c for c in campaigns if c.scheduled_at is None or c.scheduled_at >= options.since]

        page = to_int(response.get("page"), options.page)
        total_pages = to_int(response.get("total_pages"))
        return PaginatedResult(
            items=campaigns,
            total=to_int(response.get("total_results"), len(campaigns)),
            page=page,
            limit=limit,
            has_more=bool(response.get("data")) and page < total_pages,
        )

    def get_campaign(self, external_id: str) -> Optional[PlatformCampaign]:
        post = self._fetch_post(external_id, "getCampaign", expand=["stats", "free_email_content"])
        return self._map_post(post) if post is not None else None

    def _fetch_post(self, external_id: str, operation: str, expand: List[str]) -> Optional[Dict[str, Any]]:
        try:
            response = self._http.get(f"/posts/{external_id}", params={"expand[]": expand})
        except Exception as e:
            if is_not_found(e):
                return None
            self._fail(operation, e)
        return response.get("data")

    def create_campaign(self, data: CreateCampaignInput) -> PlatformCampaign:
        body: Dict[str, Any] = {
            "title": data.name,
            "body_content": data.content_html,
            "status": "draft",
            "email_settings": {
                "email_subject_line": data.subject_line,
                "email_preview_text": data.preview_text or "",
                "from_address": data.from_email,
            },
        }
        if data.list_id:
            body["recipients"] = {"email": {"include_segment_ids": [data.list_id]}}

        try:
            created = self._http.post("/posts", json=body)
            post_id = str((created.get("data") or {}).get("id"))
            campaign = self.get_campaign(post_id)
            return require_refetched(self.platform, "createCampaign", campaign, "creation")
        except Exception as e:
            if status_code_of(e) == 403:
                raise PlatformError(self.platform, "createCampaign", ENTERPRISE_REQUIRED) from e
            self._fail("createCampaign", e)

    def update_campaign(self, external_id: str, data: UpdateCampaignInput) -> PlatformCampaign:
        raise PlatformError(self.platform, "updateCampaign", f"Editing posts {DASHBOARD_ONLY}")

    def schedule_campaign(self, external_id: str, scheduled_at: datetime) -> None:
        raise PlatformError(self.platform, "scheduleCampaign", f"Scheduling existing posts {DASHBOARD_ONLY}")

    def send_campaign(self, external_id: str) -> None:
        raise PlatformError(self.platform, "sendCampaign", f"Sending posts {DASHBOARD_ONLY}")

    def get_campaign_metrics(self, external_id: str) -> Metrics:
        post = self._fetch_post(external_id, "getCampaignMetrics", expand=["stats"])
        if not post:
            return Metrics.empty()
        return self._metrics(post) or Metrics.empty()

    def get_lists(self) -> List[PlatformList]:
        """Segments are beehiiv's closest equivalent of audience lists."""
        lists: List[PlatformList] = []
        try:
            for page in range(1, MAX_PAGES + 1):
                response = self._http.get(
                    "/segments", params={"page": page, "limit": SEGMENT_PAGE_SIZE, "expand[]": "stats"}
                )
                items = response.get("data") or []
                lists.extend(self._map_segment(item) for item in items)
                if not items or page >= to_int(response.get("total_pages")):
                    break
        except Exception as e:
            self._fail("getLists", e)
        return lists

    def get_list(self, external_id: str) -> Optional[PlatformList]:
        try:
            response = self._http.get(f"/segments/{external_id}", params={"expand[]": "stats"})
        except Exception as e:
            if is_not_found(e):
                return None
            self._fail("getList", e)
        item = response.get("data")
        return self._map_segment(item) if item else None

    def normalize_status(self, vendor_status: Any) -> CampaignStatus:
        return normalize_with(STATUS_MAP, vendor_status)

    def map_status(self, status: CampaignStatus) -> str:
        return map_with(REVERSE_STATUS_MAP, status, "draft")

    @staticmethod
    def _metrics(post: Mapping[str, Any]) -> Optional[Metrics]:
        email = (post.get("stats") or {}).get("email")
        if not email:
            return None
        unique_opens = to_int(email.get("unique_opens"))
        unique_clicks = to_int(email.get("unique_clicks"))
        return Metrics.from_counts(
            sent=to_int(email.get("recipients")),
            delivered=to_int(email.get("delivered")) if "delivered" in email else None,
            bounces=to_int(email.get("bounces")),
            unique_opens=unique_opens,
            total_opens=to_int(email.get("opens"), unique_opens),
            unique_clicks=unique_clicks,
            total_clicks=to_int(email.get("clicks"), unique_clicks),
            unsubscribes=to_int(email.get("unsubscribes")),
            complaints=to_int(email.get("spam_reports")),
        )

    def _map_post(self, post: Mapping[str, Any]) -> PlatformCampaign:
        status = derive_status(post)
        scheduled_at = post_scheduled_at(post)
        content = ((post.get("content") or {}).get("free") or {})
        return PlatformCampaign(
            external_id=str(post.get("id")),
            name=post.get("title") or "",
            status=status,
            subject_line=post.get("subject_line") or post.get("title") or "",
            preview_text=post.get("preview_text") or post.get("subtitle") or "",
            content_html=content.get("email") or content.get("web") or None,
            scheduled_at=scheduled_at,
            sent_at=scheduled_at if status == CampaignStatus.SENT else None,
            metrics=self._metrics(post),
            metadata={
                "vendorStatus": post.get("status"),
                "webUrl": post.get("web_url"),
                "audience": post.get("audience"),
                "platform": post.get("platform"),
                "contentTags": post.get("content_tags"),
            },
        )

    def _map_segment(self, item: Mapping[str, Any]) -> PlatformList:
        stats = item.get("stats") or {}
        return PlatformList(
            external_id=str(item.get("id")),
            name=item.get("name") or "",
            member_count=to_int(first_present(item, "total_results", default=stats.get("total_results"))),
            open_rate=stats.get("open_rate"),
            click_rate=stats.get("click_rate"),
            updated_at=parse_datetime(item.get("last_calculated")),
            metadata={"type": item.get("type"), "status": item.get("status")},
        )
