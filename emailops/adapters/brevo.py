"""Brevo (formerly Sendinblue) API v3 adapter."""

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
from emailops.utils.date_utils import parse_datetime, to_iso
from emailops.utils.parsing import to_int

BREVO_BASE_URL = "https://api.brevo.com/v3"
LIST_PAGE_SIZE = 50

STATUS_MAP = {
    "draft": CampaignStatus.DRAFT,
    "queued": CampaignStatus.SCHEDULED,
    "inProcess": CampaignStatus.SENDING,
    "in_process": CampaignStatus.SENDING,
    "sent": CampaignStatus.SENT,
    "suspended": CampaignStatus.CANCELLED,
    "archive": CampaignStatus.ARCHIVED,
    "inReview": CampaignStatus.DRAFT,
}

REVERSE_STATUS_MAP = {
    CampaignStatus.DRAFT: "draft",
    CampaignStatus.SCHEDULED: "queued",
    CampaignStatus.SENDING: "inProcess",
    CampaignStatus.SENT: "sent",
    CampaignStatus.CANCELLED: "suspended",
    CampaignStatus.ARCHIVED: "archive",
}


class BrevoAdapter:
    """Adapter for Brevo email campaigns and contact lists.

    Brevo's create returns only ``{"id": ...}`` and its updates return 204,
    so every write is followed by a re-fetch.
    """

    platform = "Brevo"

    def __init__(self, client_id: str, credentials: Mapping[str, Any], session: Optional[Any] = None):
        self.client_id = client_id
        api_key = credentials.get("apiKey") or ""
        self._http = VendorHTTPClient(
            base_url=BREVO_BASE_URL,
            auth_headers=lambda: {"api-key": api_key},
            session=session,
        )
        self._log = adapter_logger(self.platform, client_id)

    def _fail(self, operation: str, error: Exception) -> NoReturn:
        handle_api_error(self.platform, operation, error, self.client_id)

    def test_connection(self) -> ConnectionTestResult:
        try:
            account = self._http.get("/account")
        except EmailOpsError as e:
            message = extract_error_message(e)
            self._log.error(f"Brevo connection test failed: {message}")
            return ConnectionTestResult(success=False, message="Failed to connect to Brevo", error=message)

        plans = account.get("plan") or []
        return ConnectionTestResult(
            success=True,
            message="Successfully connected to Brevo",
            account_info=AccountInfo(
                id=account.get("email") or "",
                name=account.get("companyName") or account.get("email") or "",
                email=account.get("email"),
                plan=plans[0].get("type") if plans else None,
            ),
        )

    def get_campaigns(self, options: Optional[PaginationOptions] = None) -> PaginatedResult[PlatformCampaign]:
        options = options or PaginationOptions(limit=DEFAULT_PAGE_SIZE)
        params: Dict[str, Any] = {"limit": options.limit, "offset": options.offset, "sort": "desc"}
        if options.statuses:
            params["status"] = ",".join(self.map_status(s) for s in options.statuses)
        if options.since:
            params["startDate"] = to_iso(options.since)

        try:
            response = self._http.get("/emailCampaigns", params=params)
        except Exception as e:
            self._fail("getCampaigns", e)

        campaigns = [self._map_campaign(c) for c in response.get("campaigns") or []]
        total = to_int(response.get("count"))
        return PaginatedResult(
            items=campaigns,
            total=total,
            page=options.page,
            limit=options.limit,
            has_more=bool(campaigns) and options.offset + len(campaigns) < total,
        )

    def get_campaign(self, external_id: str) -> Optional[PlatformCampaign]:
        try:
            campaign = self._http.get(f"/emailCampaigns/{external_id}")
        except Exception as e:
            if is_not_found(e):
                return None
            self._fail("getCampaign", e)
        return self._map_campaign(campaign)

    def create_campaign(self, data: CreateCampaignInput) -> PlatformCampaign:
        body: Dict[str, Any] = {
            "name": data.name,
            "subject": data.subject_line,
            "sender": {"name": data.from_name, "email": data.from_email},
            "htmlContent": data.content_html,
            "recipients": {"listIds": [to_int(data.list_id)]},
        }
        if data.preview_text:
            body["previewText"] = data.preview_text

        try:
            created = self._http.post("/emailCampaigns", json=body)
            campaign = self.get_campaign(str(created.get("id")))
            return require_refetched(self.platform, "createCampaign", campaign, "creation")
        except Exception as e:
            self._fail("createCampaign", e)

    def update_campaign(self, external_id: str, data: UpdateCampaignInput) -> PlatformCampaign:
        body: Dict[str, Any] = {}
        if data.name is not None:
            body["name"] = data.name
        if data.subject_line is not None:
            body["subject"] = data.subject_line
        if data.preview_text is not None:
            body["previewText"] = data.preview_text
        if data.content_html is not None:
            body["htmlContent"] = data.content_html
        if data.from_name is not None or data.from_email is not None:
            body["sender"] = {}
            if data.from_name is not None:
                body["sender"]["name"] = data.from_name
            if data.from_email is not None:
                body["sender"]["email"] = data.from_email

        try:
            if body:
                self._http.put(f"/emailCampaigns/{external_id}", json=body)
            campaign = self.get_campaign(external_id)
            return require_refetched(self.platform, "updateCampaign", campaign, "update")
        except Exception as e:
            self._fail("updateCampaign", e)

    def schedule_campaign(self, external_id: str, scheduled_at: datetime) -> None:
        try:
            self._http.put(f"/emailCampaigns/{external_id}", json={"scheduledAt": to_iso(scheduled_at)})
        except Exception as e:
            self._fail("scheduleCampaign", e)
        self._log.info(f"Brevo campaign {external_id} scheduled for {to_iso(scheduled_at)}")

    def send_campaign(self, external_id: str) -> None:
        try:
            self._http.post(f"/emailCampaigns/{external_id}/sendNow")
        except Exception as e:
            if status_code_of(e) == 402:
                raise PlatformError(
                    self.platform, "sendCampaign", "Insufficient Brevo email credits to send this campaign"
                ) from e
            self._fail("sendCampaign", e)
        self._log.info(f"Brevo campaign {external_id} sent")

    def get_campaign_metrics(self, external_id: str) -> Metrics:
        try:
            campaign = self._http.get(
                f"/emailCampaigns/{external_id}", params={"statistics": "globalStats"}
            )
        except Exception as e:
            if is_not_found(e):
                return Metrics.empty()
            self._fail("getCampaignMetrics", e)
        return self._metrics(campaign) or Metrics.empty()

    def get_lists(self) -> List[PlatformList]:
        lists: List[PlatformList] = []
        offset = 0
        try:
            for _ in range(MAX_PAGES):
                response = self._http.get(
                    "/contacts/lists", params={"limit": LIST_PAGE_SIZE, "offset": offset}
                )
                page = [self._map_list(item) for item in response.get("lists") or []]
                lists.extend(page)
                if len(lists) >= to_int(response.get("count")) or len(page) < LIST_PAGE_SIZE:
                    break
                offset += LIST_PAGE_SIZE
        except Exception as e:
            self._fail("getLists", e)
        return lists

    def get_list(self, external_id: str) -> Optional[PlatformList]:
        try:
            item = self._http.get(f"/contacts/lists/{external_id}")
        except Exception as e:
            if is_not_found(e):
                return None
            self._fail("getList", e)
        return self._map_list(item)

    def normalize_status(self, vendor_status: Any) -> CampaignStatus:
        return normalize_with(STATUS_MAP, vendor_status)

    def map_status(self, status: CampaignStatus) -> str:
        return map_with(REVERSE_STATUS_MAP, status, "draft")

    @staticmethod
    def _metrics(campaign: Mapping[str, Any]) -> Optional[Metrics]:
        stats = (campaign.get("statistics") or {}).get("globalStats")
        if not stats:
            return None
        unique_opens = to_int(stats.get("uniqueOpens"))
        unique_clicks = to_int(stats.get("uniqueClicks"))
        delivered = to_int(stats.get("delivered"))
        return Metrics.from_counts(
            sent=to_int(stats.get("sent")),
            delivered=delivered or None,
            bounces=to_int(stats.get("hardBounces")) + to_int(stats.get("softBounces")),
            unique_opens=unique_opens,
            total_opens=to_int(stats.get("viewed")) or unique_opens,
            unique_clicks=unique_clicks,
            total_clicks=to_int(stats.get("clickers")) or unique_clicks,
            unsubscribes=to_int(stats.get("unsubscriptions")),
            complaints=to_int(stats.get("spamReports")),
        )

    def _map_campaign(self, campaign: Mapping[str, Any]) -> PlatformCampaign:
        sender = campaign.get("sender") or {}
        list_ids = (campaign.get("recipients") or {}).get("listIds") or []
        return PlatformCampaign(
            external_id=str(campaign.get("id")),
            name=campaign.get("name") or "",
            status=self.normalize_status(campaign.get("status")),
            subject_line=campaign.get("subject") or "",
            preview_text=campaign.get("previewText") or "",
            from_name=sender.get("name") or "",
            from_email=sender.get("email") or "",
            content_html=campaign.get("htmlContent") or None,
            list_id=str(list_ids[0]) if list_ids else None,
            scheduled_at=parse_datetime(campaign.get("scheduledAt")),
            sent_at=parse_datetime(campaign.get("sentDate")),
            metrics=self._metrics(campaign),
            metadata={
                "tag": campaign.get("tag"),
                "createdAt": campaign.get("createdAt"),
                "modifiedAt": campaign.get("modifiedAt"),
            },
        )

    def _map_list(self, item: Mapping[str, Any]) -> PlatformList:
        return PlatformList(
            external_id=str(item.get("id")),
            name=item.get("name") or "",
            member_count=to_int(item.get("totalSubscribers") or item.get("uniqueSubscribers")),
            created_at=parse_datetime(item.get("createdAt")),
            metadata={
                "folderId": item.get("folderId"),
                "totalBlacklisted": item.get("totalBlacklisted"),
                "dynamicList": item.get("dynamicList"),
            },
        )
