"""Mailchimp Marketing API v3 adapter.

Auth is HTTP basic with any username and the API key as password. The
data center (``us6`` ...) is the suffix of the key and selects the base URL.
"""

from datetime import datetime
from typing import Any, Dict, List, Mapping, NoReturn, Optional

from requests.auth import HTTPBasicAuth

from emailops.adapters.errors import adapter_logger, extract_error_message, handle_api_error, is_not_found
from emailops.adapters.http_client import VendorHTTPClient
from emailops.adapters.mapping import map_with, normalize_with, require_refetched
from emailops.core.constants import DEFAULT_PAGE_SIZE, CampaignStatus
from emailops.core.exceptions import EmailOpsError
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

MAILCHIMP_BASE_URL = "https://{data_center}.api.mailchimp.com/3.0"
HEALTHY_PING = "Everything's Chimpy!"

STATUS_MAP = {
    "save": CampaignStatus.DRAFT,
    "paused": CampaignStatus.DRAFT,
    "schedule": CampaignStatus.SCHEDULED,
    "sending": CampaignStatus.SENDING,
    "sent": CampaignStatus.SENT,
    "canceled": CampaignStatus.CANCELLED,
    "archived": CampaignStatus.ARCHIVED,
}

REVERSE_STATUS_MAP = {
    CampaignStatus.DRAFT: "save",
    CampaignStatus.SCHEDULED: "schedule",
    CampaignStatus.SENDING: "sending",
    CampaignStatus.SENT: "sent",
    CampaignStatus.CANCELLED: "canceled",
    CampaignStatus.ARCHIVED: "archived",
}


def data_center_from_key(api_key: str) -> str:
    if "-" in api_key:
        return api_key.rsplit("-", 1)[-1]
    return "us1"


class MailchimpAdapter:
    """Adapter for Mailchimp campaigns, reports and audiences."""

    platform = "Mailchimp"

    def __init__(self, client_id: str, credentials: Mapping[str, Any], session: Optional[Any] = None):
        self.client_id = client_id
        api_key = credentials.get("apiKey") or ""
        data_center = credentials.get("dataCenter") or data_center_from_key(api_key)
        self._http = VendorHTTPClient(
            base_url=MAILCHIMP_BASE_URL.format(data_center=data_center),
            auth=HTTPBasicAuth("anystring", api_key),
            session=session,
        )
        self._log = adapter_logger(self.platform, client_id)

    def _fail(self, operation: str, error: Exception) -> NoReturn:
        handle_api_error(self.platform, operation, error, self.client_id)

    def test_connection(self) -> ConnectionTestResult:
        try:
            ping = self._http.get("/ping")
            if ping.get("health_status") != HEALTHY_PING:
                return ConnectionTestResult(success=False, message="Mailchimp health check failed")

            account = self._http.get("/")
            return ConnectionTestResult(
                success=True,
                message="Successfully connected to Mailchimp",
                account_info=AccountInfo(
                    id=str(account.get("account_id", "")),
                    name=account.get("account_name", ""),
                    email=account.get("email"),
                    plan=account.get("pricing_plan_type"),
                ),
            )
        except EmailOpsError as e:
            message = extract_error_message(e)
            self._log.error(f"Mailchimp connection test failed: {message}")
            return ConnectionTestResult(
                success=False, message="Failed to connect to Mailchimp", error=message
            )

    def get_campaigns(self, options: Optional[PaginationOptions] = None) -> PaginatedResult[PlatformCampaign]:
        options = options or PaginationOptions(limit=DEFAULT_PAGE_SIZE)
        params: Dict[str, Any] = {
            "count": options.limit,
            "offset": options.offset,
            "sort_field": "send_time",
            "sort_dir": "DESC",
        }
        if options.since:
            params["since_send_time"] = to_iso(options.since)
        if options.statuses:
            params["status"] = ",".join(self.map_status(s) for s in options.statuses)

        try:
            response = self._http.get("/campaigns", params=params)
        except Exception as e:
            self._fail("getCampaigns", e)

        campaigns = [self._map_campaign(c) for c in response.get("campaigns", [])]
        total = to_int(response.get("total_items"))
        return PaginatedResult(
            items=campaigns,
            total=total,
            page=options.page,
            limit=options.limit,
            has_more=options.offset + len(campaigns) < total and len(campaigns) > 0,
        )

    def get_campaign(self, external_id: str) -> Optional[PlatformCampaign]:
        try:
            campaign = self._http.get(f"/campaigns/{external_id}")
        except Exception as e:
            if is_not_found(e):
                return None
            self._fail("getCampaign", e)
        return self._map_campaign(campaign)

    def create_campaign(self, data: CreateCampaignInput) -> PlatformCampaign:
        try:
            created = self._http.post(
                "/campaigns",
                json={
                    "type": "regular",
                    "recipients": {"list_id": data.list_id},
                    "settings": {
                        "subject_line": data.subject_line,
                        "preview_text": data.preview_text or "",
                        "title": data.name,
                        "from_name": data.from_name,
                        "reply_to": data.from_email,
                    },
                },
            )
            campaign_id = created["id"]
            self._http.put(
                f"/campaigns/{campaign_id}/content",
                json={"html": data.content_html, "plain_text": data.content_text},
            )
            campaign = self.get_campaign(campaign_id)
            return require_refetched(self.platform, "createCampaign", campaign, "creation")
        except Exception as e:
            self._fail("createCampaign", e)

    def update_campaign(self, external_id: str, data: UpdateCampaignInput) -> PlatformCampaign:
        settings: Dict[str, Any] = {}
        if data.name is not None:
            settings["title"] = data.name
        if data.subject_line is not None:
            settings["subject_line"] = data.subject_line
        if data.preview_text is not None:
            settings["preview_text"] = data.preview_text
        if data.from_name is not None:
            settings["from_name"] = data.from_name
        if data.from_email is not None:
            settings["reply_to"] = data.from_email

        try:
            if settings:
                self._http.patch(f"/campaigns/{external_id}", json={"settings": settings})
            if data.content_html is not None:
                self._http.put(
                    f"/campaigns/{external_id}/content",
                    json={"html": data.content_html, "plain_text": data.content_text},
                )
            campaign = self.get_campaign(external_id)
            return require_refetched(self.platform, "updateCampaign", campaign, "update")
        except Exception as e:
            self._fail("updateCampaign", e)

    def schedule_campaign(self, external_id: str, scheduled_at: datetime) -> None:
        try:
            self._http.post(
                f"/campaigns/{external_id}/actions/schedule",
                json={"schedule_time": to_iso(scheduled_at)},
            )
        except Exception as e:
            self._fail("scheduleCampaign", e)
        self._log.info(f"Mailchimp campaign {external_id} scheduled for {to_iso(scheduled_at)}")

    def send_campaign(self, external_id: str) -> None:
        try:
            self._http.post(f"/campaigns/{external_id}/actions/send")
        except Exception as e:
            self._fail("sendCampaign", e)
        self._log.info(f"Mailchimp campaign {external_id} sent")

    def get_campaign_metrics(self, external_id: str) -> Metrics:
        try:
            report = self._http.get(f"/reports/{external_id}")
        except Exception as e:
            # Unsent campaigns have no report
            if is_not_found(e):
                return Metrics.empty()
            self._fail("getCampaignMetrics", e)

        bounces = report.get("bounces") or {}
        opens = report.get("opens") or {}
        clicks = report.get("clicks") or {}
        return Metrics.from_counts(
            sent=to_int(report.get("emails_sent")),
            bounces=to_int(bounces.get("hard_bounces")) + to_int(bounces.get("soft_bounces")),
            unique_opens=to_int(opens.get("unique_opens")),
            total_opens=to_int(opens.get("opens_total")),
            unique_clicks=to_int(clicks.get("unique_clicks")),
            total_clicks=to_int(clicks.get("clicks_total")),
            unsubscribes=to_int(report.get("unsubscribed")),
            complaints=to_int(report.get("abuse_reports")),
        )

    def get_lists(self) -> List[PlatformList]:
        try:
            response = self._http.get(
                "/lists", params={"count": 1000, "sort_field": "date_created", "sort_dir": "DESC"}
            )
        except Exception as e:
            self._fail("getLists", e)
        return [self._map_list(item) for item in response.get("lists", [])]

    def get_list(self, external_id: str) -> Optional[PlatformList]:
        try:
            item = self._http.get(f"/lists/{external_id}")
        except Exception as e:
            if is_not_found(e):
                return None
            self._fail("getList", e)
        return self._map_list(item)

    def normalize_status(self, vendor_status: Any) -> CampaignStatus:
        return normalize_with(STATUS_MAP, vendor_status)

    def map_status(self, status: CampaignStatus) -> str:
        return map_with(REVERSE_STATUS_MAP, status, "save")

    def _map_campaign(self, mc: Mapping[str, Any]) -> PlatformCampaign:
        settings = mc.get("settings") or {}
        recipients = mc.get("recipients") or {}
        content = mc.get("content") or {}
        send_time = parse_datetime(mc.get("send_time"))
        status = self.normalize_status(mc.get("status"))
        return PlatformCampaign(
            external_id=str(mc.get("id")),
            name=settings.get("title") or mc.get("campaign_title") or "",
            status=status,
            subject_line=settings.get("subject_line") or "",
            preview_text=settings.get("preview_text") or "",
            from_name=settings.get("from_name") or "",
            from_email=settings.get("reply_to") or "",
            content_html=content.get("html") or None,
            content_text=content.get("plain_text") or None,
            list_id=recipients.get("list_id"),
            list_name=recipients.get("list_name"),
            scheduled_at=send_time,
            sent_at=send_time if status == CampaignStatus.SENT else None,
            metadata={
                "webId": mc.get("web_id"),
                "archiveUrl": mc.get("archive_url"),
                "longArchiveUrl": mc.get("long_archive_url"),
                "createTime": mc.get("create_time"),
                "contentType": mc.get("content_type"),
            },
        )

    def _map_list(self, item: Mapping[str, Any]) -> PlatformList:
        stats = item.get("stats") or {}
        return PlatformList(
            external_id=str(item.get("id")),
            name=item.get("name") or "",
            member_count=to_int(stats.get("member_count")),
            unsubscribe_count=to_int(stats.get("unsubscribe_count")),
            cleaned_count=to_int(stats.get("cleaned_count")),
            open_rate=stats.get("open_rate"),
            click_rate=stats.get("click_rate"),
            created_at=parse_datetime(item.get("date_created")),
            metadata={
                "webId": item.get("web_id"),
                "permissionReminder": item.get("permission_reminder"),
                "visibility": item.get("visibility"),
            },
        )
