"""ActiveCampaign API v3 adapter.

The base URL is account specific (``https://<account>.api-us1.com/api/3``)
and auth is an ``Api-Token`` header. Campaign statuses are numeric codes and
unset dates come back as the MySQL zero-date sentinel.
"""

from datetime import datetime
from typing import Any, Dict, List, Mapping, NoReturn, Optional

from emailops.adapters.errors import adapter_logger, extract_error_message, handle_api_error, is_not_found
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
from emailops.utils.date_utils import format_sql_datetime, parse_datetime
from emailops.utils.parsing import to_int

LIST_PAGE_SIZE = 100

STATUS_MAP = {
    "0": CampaignStatus.DRAFT,
    "1": CampaignStatus.SCHEDULED,
    "2": CampaignStatus.SENDING,
    "3": CampaignStatus.CANCELLED,
    "4": CampaignStatus.CANCELLED,
    "5": CampaignStatus.SENT,
    "6": CampaignStatus.DRAFT,
}

REVERSE_STATUS_MAP = {
    CampaignStatus.DRAFT: "0",
    CampaignStatus.SCHEDULED: "1",
    CampaignStatus.SENDING: "2",
    CampaignStatus.CANCELLED: "4",
    CampaignStatus.SENT: "5",
}

STATUS_SCHEDULED = 1
STATUS_SENDING = 2


def build_base_url(account_url: str) -> str:
    return f"{(account_url or '').rstrip('/')}/api/3"


class ActiveCampaignAdapter:
    """Adapter for ActiveCampaign campaigns, messages and lists."""

    platform = "ActiveCampaign"

    def __init__(self, client_id: str, credentials: Mapping[str, Any], session: Optional[Any] = None):
        self.client_id = client_id
        api_key = credentials.get("apiKey") or ""
        self._http = VendorHTTPClient(
            base_url=build_base_url(credentials.get("accountUrl") or ""),
            auth_headers=lambda: {"Api-Token": api_key},
            session=session,
        )
        self._log = adapter_logger(self.platform, client_id)

    def _fail(self, operation: str, error: Exception) -> NoReturn:
        handle_api_error(self.platform, operation, error, self.client_id)

    def test_connection(self) -> ConnectionTestResult:
        try:
            user = self._http.get("/users/me").get("user") or {}
        except EmailOpsError as e:
            message = extract_error_message(e)
            self._log.error(f"ActiveCampaign connection test failed: {message}")
            return ConnectionTestResult(
                success=False, message="Failed to connect to ActiveCampaign", error=message
            )

        user_id = str(user.get("id", ""))
        return ConnectionTestResult(
            success=True,
            message="Successfully connected to ActiveCampaign",
            account_info=AccountInfo(
                id=user_id,
                name=user.get("username") or user.get("firstName") or user_id,
                email=user.get("email"),
            ),
        )

    def get_campaigns(self, options: Optional[PaginationOptions] = None) -> PaginatedResult[PlatformCampaign]:
        options = options or PaginationOptions(limit=DEFAULT_PAGE_SIZE)
        try:
            response = self._http.get(
                "/campaigns", params={"limit": options.limit, "offset": options.offset}
            )
        except Exception as e:
            self._fail("getCampaigns", e)

        campaigns = [self._map_campaign(c) for c in response.get("campaigns") or []]
        total = to_int((response.get("meta") or {}).get("total"))
        return PaginatedResult(
            items=campaigns,
            total=total,
            page=options.page,
            limit=options.limit,
            has_more=bool(campaigns) and options.offset + len(campaigns) < total,
        )

    def get_campaign(self, external_id: str) -> Optional[PlatformCampaign]:
        campaign = self._fetch_campaign(external_id, "getCampaign")
        return self._map_campaign(campaign) if campaign is not None else None

    def _fetch_campaign(self, external_id: str, operation: str) -> Optional[Dict[str, Any]]:
        try:
            response = self._http.get(f"/campaigns/{external_id}")
        except Exception as e:
            if is_not_found(e):
                return None
            self._fail(operation, e)
        return response.get("campaign")

    def create_campaign(self, data: CreateCampaignInput) -> PlatformCampaign:
        try:
            # A campaign and its message are separate resources
            created = self._http.post(
                "/campaigns",
                json={
                    "campaign": {
                        "type": "single",
                        "name": data.name,
                        "status": 0,
                        "segmentid": 0,
                        "p": {data.list_id: data.list_id},
                    }
                },
            )
            campaign_id = str((created.get("campaign") or {}).get("id"))
            self._http.post(
                f"/campaigns/{campaign_id}/messages",
                json={
                    "message": {
                        "campaignid": campaign_id,
                        "subject": data.subject_line,
                        "preheader_text": data.preview_text or "",
                        "fromname": data.from_name,
                        "fromemail": data.from_email,
                        "html": data.content_html,
                        "text": data.content_text or "",
                    }
                },
            )
            campaign = self.get_campaign(campaign_id)
            return require_refetched(self.platform, "createCampaign", campaign, "creation")
        except Exception as e:
            self._fail("createCampaign", e)

    def update_campaign(self, external_id: str, data: UpdateCampaignInput) -> PlatformCampaign:
        try:
            if data.name is not None:
                self._http.put(f"/campaigns/{external_id}", json={"campaign": {"name": data.name}})

            if data.has_content_changes():
                self._update_message(external_id, data)

            campaign = self.get_campaign(external_id)
            return require_refetched(self.platform, "updateCampaign", campaign, "update")
        except Exception as e:
            self._fail("updateCampaign", e)

    def _update_message(self, external_id: str, data: UpdateCampaignInput) -> None:
        campaign = self._fetch_campaign(external_id, "updateCampaign") or {}
        rss_items = campaign.get("activerss_items") or []
        message_id = rss_items[0].get("messageid") if rss_items else None
        if not message_id:
            raise PlatformError(
                self.platform,
                "updateCampaign",
                "Campaign has no message to update; edit its content in ActiveCampaign",
            )

        message: Dict[str, Any] = {}
        if data.subject_line is not None:
            message["subject"] = data.subject_line
        if data.content_html is not None:
            message["html"] = data.content_html
        if data.content_text is not None:
            message["text"] = data.content_text
        if data.from_name is not None:
            message["fromname"] = data.from_name
        if data.from_email is not None:
            message["fromemail"] = data.from_email
        if data.preview_text is not None:
            message["preheader_text"] = data.preview_text
        self._http.put(f"/messages/{message_id}", json={"message": message})

    def schedule_campaign(self, external_id: str, scheduled_at: datetime) -> None:
        try:
            self._http.put(
                f"/campaigns/{external_id}",
                json={"campaign": {"status": STATUS_SCHEDULED, "sdate": format_sql_datetime(scheduled_at)}},
            )
        except Exception as e:
            self._fail("scheduleCampaign", e)
        self._log.info(f"ActiveCampaign campaign {external_id} scheduled for {format_sql_datetime(scheduled_at)}")

    def send_campaign(self, external_id: str) -> None:
        try:
            self._http.put(f"/campaigns/{external_id}", json={"campaign": {"status": STATUS_SENDING}})
        except Exception as e:
            self._fail("sendCampaign", e)
        self._log.info(f"ActiveCampaign campaign {external_id} sent")

    def get_campaign_metrics(self, external_id: str) -> Metrics:
        campaign = self._fetch_campaign(external_id, "getCampaignMetrics")
        if not campaign:
            return Metrics.empty()
        return self._metrics(campaign)

    def get_lists(self) -> List[PlatformList]:
        lists: List[PlatformList] = []
        offset = 0
        try:
            for _ in range(MAX_PAGES):
                response = self._http.get("/lists", params={"limit": LIST_PAGE_SIZE, "offset": offset})
                page = [self._map_list(item) for item in response.get("lists") or []]
                lists.extend(page)

                total = to_int((response.get("meta") or {}).get("total"))
                if len(lists) >= total or len(page) < LIST_PAGE_SIZE:
                    break
                offset += LIST_PAGE_SIZE
        except Exception as e:
            self._fail("getLists", e)
        return lists

    def get_list(self, external_id: str) -> Optional[PlatformList]:
        try:
            response = self._http.get(f"/lists/{external_id}")
        except Exception as e:
            if is_not_found(e):
                return None
            self._fail("getList", e)
        item = response.get("list")
        return self._map_list(item) if item else None

    def normalize_status(self, vendor_status: Any) -> CampaignStatus:
        if vendor_status is None:
            return CampaignStatus.UNKNOWN
        return normalize_with(STATUS_MAP, str(vendor_status))

    def map_status(self, status: CampaignStatus) -> str:
        return map_with(REVERSE_STATUS_MAP, status, "0")

    @staticmethod
    def _metrics(campaign: Mapping[str, Any]) -> Metrics:
        unique_opens = to_int(campaign.get("uniqueopens"))
        unique_clicks = to_int(campaign.get("uniquelinkclicks"))
        return Metrics.from_counts(
            sent=to_int(campaign.get("send_amt")),
            bounces=to_int(campaign.get("hardbounces")) + to_int(campaign.get("softbounces")),
            unique_opens=unique_opens,
            total_opens=to_int(campaign.get("opens"), unique_opens),
            unique_clicks=unique_clicks,
            total_clicks=to_int(campaign.get("linkclicks"), unique_clicks),
            unsubscribes=to_int(campaign.get("unsubscribes")),
            complaints=to_int(campaign.get("spamcount")),
        )

    def _map_campaign(self, campaign: Mapping[str, Any]) -> PlatformCampaign:
        has_stats = to_int(campaign.get("send_amt")) > 0
        return PlatformCampaign(
            external_id=str(campaign.get("id")),
            name=campaign.get("name") or "",
            status=self.normalize_status(campaign.get("status")),
            subject_line=campaign.get("subject") or "",
            scheduled_at=parse_datetime(campaign.get("sdate")),
            sent_at=parse_datetime(campaign.get("ldate")),
            metrics=self._metrics(campaign) if has_stats else None,
            metadata={
                "type": campaign.get("type"),
                "cdate": campaign.get("cdate"),
                "mdate": campaign.get("mdate"),
                "segmentid": campaign.get("segmentid"),
            },
        )

    def _map_list(self, item: Mapping[str, Any]) -> PlatformList:
        return PlatformList(
            external_id=str(item.get("id")),
            name=item.get("name") or "",
            member_count=to_int(item.get("subscriber_count")),
            created_at=parse_datetime(item.get("cdate")),
            updated_at=parse_datetime(item.get("udate")),
            metadata={
                "stringid": item.get("stringid"),
                "senderName": item.get("sender_name"),
                "senderAddr": item.get("sender_addr"),
                "senderUrl": item.get("sender_url"),
            },
        )
