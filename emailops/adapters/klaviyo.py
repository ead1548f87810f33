"""Klaviyo JSON:API adapter.

Requests carry ``Authorization: Klaviyo-API-Key <key>`` and a pinned
``revision`` header. Collections paginate through the full URL in
``links.next``. Email content lives on the campaign's message, and HTML is
attached through a template.
"""

from datetime import datetime
from typing import Any, Dict, List, Mapping, NoReturn, Optional

from emailops.adapters.errors import adapter_logger, extract_error_message, handle_api_error, is_not_found
from emailops.adapters.http_client import VendorHTTPClient
from emailops.adapters.mapping import map_with, normalize_with, require_refetched
from emailops.core.constants import MAX_PAGES, CampaignStatus
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

KLAVIYO_BASE_URL = "https://a.klaviyo.com/api"
KLAVIYO_REVISION = "2024-10-15"
JSON_API = "application/vnd.api+json"
EMAIL_CHANNEL_FILTER = "equals(messages.channel,'email')"
CONVERSION_METRIC_NAME = "Placed Order"
REPORT_STATISTICS = [
    "recipients",
    "delivered",
    "opens_unique",
    "opens",
    "clicks_unique",
    "clicks",
    "bounced",
    "unsubscribes",
    "spam_complaints",
]

STATUS_MAP = {
    "Draft": CampaignStatus.DRAFT,
    "Scheduled": CampaignStatus.SCHEDULED,
    "Queued without Recipients": CampaignStatus.SCHEDULED,
    "Preparing to schedule": CampaignStatus.SCHEDULED,
    "Preparing to send": CampaignStatus.SENDING,
    "Adding Recipients": CampaignStatus.SENDING,
    "Sending": CampaignStatus.SENDING,
    "Sent": CampaignStatus.SENT,
    "Variations Sent": CampaignStatus.SENT,
    "Cancelled": CampaignStatus.CANCELLED,
}

REVERSE_STATUS_MAP = {
    CampaignStatus.DRAFT: "Draft",
    CampaignStatus.SCHEDULED: "Scheduled",
    CampaignStatus.SENDING: "Sending",
    CampaignStatus.SENT: "Sent",
    CampaignStatus.CANCELLED: "Cancelled",
}


def next_link(response: Mapping[str, Any]) -> Optional[str]:
    return (response.get("links") or {}).get("next") or None


class KlaviyoAdapter:
    """Adapter for Klaviyo email campaigns, reports and lists."""

    platform = "Klaviyo"

    def __init__(self, client_id: str, credentials: Mapping[str, Any], session: Optional[Any] = None):
        self.client_id = client_id
        api_key = credentials.get("apiKey") or ""
        self._conversion_metric_id: Optional[str] = credentials.get("conversionMetricId")
        self._http = VendorHTTPClient(
            base_url=KLAVIYO_BASE_URL,
            auth_headers=lambda: {"Authorization": f"Klaviyo-API-Key {api_key}"},
            default_headers={
                "revision": KLAVIYO_REVISION,
                "Accept": JSON_API,
                "Content-Type": JSON_API,
            },
            session=session,
        )
        self._log = adapter_logger(self.platform, client_id)

    def _fail(self, operation: str, error: Exception) -> NoReturn:
        handle_api_error(self.platform, operation, error, self.client_id)

    def test_connection(self) -> ConnectionTestResult:
        try:
            accounts = self._http.get("/accounts/").get("data") or []
        except EmailOpsError as e:
            message = extract_error_message(e)
            self._log.error(f"Klaviyo connection test failed: {message}")
            return ConnectionTestResult(success=False, message="Failed to connect to Klaviyo", error=message)

        if not accounts:
            return ConnectionTestResult(success=False, message="Klaviyo returned no account")

        account = accounts[0]
        contact = (account.get("attributes") or {}).get("contact_information") or {}
        return ConnectionTestResult(
            success=True,
            message="Successfully connected to Klaviyo",
            account_info=AccountInfo(
                id=str(account.get("id", "")),
                name=contact.get("organization_name") or str(account.get("id", "")),
                email=contact.get("default_sender_email"),
            ),
        )

    def get_campaigns(self, options: Optional[PaginationOptions] = None) -> PaginatedResult[PlatformCampaign]:
        options = options or PaginationOptions()
        filters = [EMAIL_CHANNEL_FILTER]
        if options.since:
            filters.append(f"greater-or-equal(updated_at,{to_iso(options.since)})")
        params = {
            "filter": filters[0] if len(filters) == 1 else f"and({','.join(filters)})",
            "include": "campaign-messages",
            "sort": "-updated_at",
        }

        try:
            response = self._http.fetch_cursor_page("/campaigns/", params, next_link, options.page)
        except Exception as e:
            self._fail("getCampaigns", e)

        messages = self._index_messages(response)
        campaigns = [self._map_campaign(item, messages) for item in response.get("data") or []]
        if options.statuses:
            wanted = set(options.statuses)
            campaigns = [c for c in campaigns if c.status in wanted]
        return PaginatedResult(
            items=campaigns,
            total=len(campaigns),
            page=min(max(options.page, 1), MAX_PAGES),
            limit=options.limit,
            has_more=bool(response.get("data")) and next_link(response) is not None,
        )

    def get_campaign(self, external_id: str) -> Optional[PlatformCampaign]:
        response = self._fetch_campaign(external_id, "getCampaign")
        if response is None:
            return None
        return self._map_campaign(response.get("data") or {}, self._index_messages(response))

    def _fetch_campaign(self, external_id: str, operation: str) -> Optional[Dict[str, Any]]:
        try:
            return self._http.get(
                f"/campaigns/{external_id}/", params={"include": "campaign-messages"}
            )
        except Exception as e:
            if is_not_found(e):
                return None
            self._fail(operation, e)

    def create_campaign(self, data: CreateCampaignInput) -> PlatformCampaign:
        body = {
            "data": {
                "type": "campaign",
                "attributes": {
                    "name": data.name,
                    "audiences": {"included": [data.list_id]},
                    "campaign-messages": {
                        "data": [
                            {
                                "type": "campaign-message",
                                "attributes": {
                                    "channel": "email",
                                    "content": self._content(
                                        subject=data.subject_line,
                                        preview_text=data.preview_text,
                                        from_name=data.from_name,
                                        from_email=data.from_email,
                                    ),
                                },
                            }
                        ]
                    },
                },
            }
        }
        try:
            created = self._http.post("/campaigns/", json=body)
            campaign_data = created.get("data") or {}
            campaign_id = str(campaign_data.get("id"))
            message_ids = [
                m.get("id")
                for m in ((campaign_data.get("relationships") or {}).get("campaign-messages") or {}).get("data") or []
            ]
            if message_ids and data.content_html:
                self._assign_html(message_ids[0], f"{data.name} template", data.content_html)

            campaign = self.get_campaign(campaign_id)
            return require_refetched(self.platform, "createCampaign", campaign, "creation")
        except Exception as e:
            self._fail("createCampaign", e)

    def update_campaign(self, external_id: str, data: UpdateCampaignInput) -> PlatformCampaign:
        try:
            if data.name is not None:
                self._http.patch(
                    f"/campaigns/{external_id}/",
                    json={"data": {"type": "campaign", "id": external_id, "attributes": {"name": data.name}}},
                )

            if data.has_content_changes():
                response = self._fetch_campaign(external_id, "updateCampaign")
                if response is None:
                    raise PlatformError(self.platform, "updateCampaign", "Campaign not found")
                attributes = (response.get("data") or {}).get("attributes") or {}
                if self.normalize_status(attributes.get("status")) != CampaignStatus.DRAFT:
                    raise PlatformError(
                        self.platform,
                        "updateCampaign",
                        "Klaviyo only allows content changes on draft campaigns",
                    )
                message_id = next(iter(self._index_messages(response)), None)
                if message_id is None:
                    raise PlatformError(self.platform, "updateCampaign", "Campaign has no email message")

                content = self._content(
                    subject=data.subject_line,
                    preview_text=data.preview_text,
                    from_name=data.from_name,
                    from_email=data.from_email,
                )
                if content:
                    self._http.patch(
                        f"/campaign-messages/{message_id}/",
                        json={
                            "data": {
                                "type": "campaign-message",
                                "id": message_id,
                                "attributes": {"content": content},
                            }
                        },
                    )
                if data.content_html is not None:
                    name = data.name or attributes.get("name") or external_id
                    self._assign_html(message_id, f"{name} template", data.content_html)

            campaign = self.get_campaign(external_id)
            return require_refetched(self.platform, "updateCampaign", campaign, "update")
        except Exception as e:
            self._fail("updateCampaign", e)

    def schedule_campaign(self, external_id: str, scheduled_at: datetime) -> None:
        strategy = {"method": "static", "options_static": {"datetime": to_iso(scheduled_at)}}
        try:
            self._set_send_strategy(external_id, strategy)
            self._create_send_job(external_id)
        except Exception as e:
            self._fail("scheduleCampaign", e)
        self._log.info(f"Klaviyo campaign {external_id} scheduled for {to_iso(scheduled_at)}")

    def send_campaign(self, external_id: str) -> None:
        try:
            self._set_send_strategy(external_id, {"method": "immediate"})
            self._create_send_job(external_id)
        except Exception as e:
            self._fail("sendCampaign", e)
        self._log.info(f"Klaviyo campaign {external_id} sent")

    def get_campaign_metrics(self, external_id: str) -> Metrics:
        try:
            metric_id = self._resolve_conversion_metric()
            if metric_id is None:
                self._log.warning("Klaviyo account has no metrics; campaign report unavailable")
                return Metrics.empty()
            report = self._http.post(
                "/campaign-values-reports/",
                json={
                    "data": {
                        "type": "campaign-values-report",
                        "attributes": {
                            "statistics": REPORT_STATISTICS,
                            "timeframe": {"key": "last_365_days"},
                            "conversion_metric_id": metric_id,
                            "filter": f"equals(campaign_id,\"{external_id}\")",
                        },
                    }
                },
            )
        except Exception as e:
            if is_not_found(e):
                return Metrics.empty()
            self._fail("getCampaignMetrics", e)

        results = (((report.get("data") or {}).get("attributes") or {}).get("results")) or []
        if not results:
            return Metrics.empty()
        stats = results[0].get("statistics") or {}
        unique_opens = to_int(stats.get("opens_unique"))
        unique_clicks = to_int(stats.get("clicks_unique"))
        return Metrics.from_counts(
            sent=to_int(stats.get("recipients")),
            delivered=to_int(stats.get("delivered")) if "delivered" in stats else None,
            bounces=to_int(stats.get("bounced")),
            unique_opens=unique_opens,
            total_opens=to_int(stats.get("opens"), unique_opens),
            unique_clicks=unique_clicks,
            total_clicks=to_int(stats.get("clicks"), unique_clicks),
            unsubscribes=to_int(stats.get("unsubscribes")),
            complaints=to_int(stats.get("spam_complaints")),
        )

    def get_lists(self) -> List[PlatformList]:
        lists: List[PlatformList] = []
        try:
            for response in self._http.iter_cursor_pages("/lists/", None, next_link):
                lists.extend(self._map_list(item) for item in response.get("data") or [])
        except Exception as e:
            self._fail("getLists", e)
        return lists

    def get_list(self, external_id: str) -> Optional[PlatformList]:
        try:
            response = self._http.get(
                f"/lists/{external_id}/", params={"additional-fields[list]": "profile_count"}
            )
        except Exception as e:
            if is_not_found(e):
                return None
            self._fail("getList", e)
        return self._map_list(response.get("data") or {})

    def normalize_status(self, vendor_status: Any) -> CampaignStatus:
        # "Cancelled: No Recipients", "Cancelled: Smart Sending", ...
        if isinstance(vendor_status, str) and vendor_status.startswith("Cancelled"):
            return CampaignStatus.CANCELLED
        return normalize_with(STATUS_MAP, vendor_status)

    def map_status(self, status: CampaignStatus) -> str:
        return map_with(REVERSE_STATUS_MAP, status, "Draft")

    # --- Private helpers ---

    @staticmethod
    def _content(
        subject: Optional[str] = None,
        preview_text: Optional[str] = None,
        from_name: Optional[str] = None,
        from_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        content = {
            "subject": subject,
            "preview_text": preview_text,
            "from_label": from_name,
            "from_email": from_email,
        }
        return {key: value for key, value in content.items() if value is not None}

    def _assign_html(self, message_id: str, template_name: str, html: str) -> None:
        template = self._http.post(
            "/templates/",
            json={
                "data": {
                    "type": "template",
                    "attributes": {"name": template_name, "editor_type": "CODE", "html": html},
                }
            },
        )
        template_id = (template.get("data") or {}).get("id")
        self._http.post(
            "/campaign-message-assign-template/",
            json={
                "data": {
                    "type": "campaign-message",
                    "id": message_id,
                    "relationships": {"template": {"data": {"type": "template", "id": template_id}}},
                }
            },
        )

    def _set_send_strategy(self, external_id: str, strategy: Dict[str, Any]) -> None:
        self._http.patch(
            f"/campaigns/{external_id}/",
            json={
                "data": {
                    "type": "campaign",
                    "id": external_id,
                    "attributes": {"send_strategy": strategy},
                }
            },
        )

    def _create_send_job(self, external_id: str) -> None:
        self._http.post(
            "/campaign-send-jobs/",
            json={"data": {"type": "campaign-send-job", "id": external_id}},
        )

    def _resolve_conversion_metric(self) -> Optional[str]:
        """Reports need a conversion metric; prefer "Placed Order", else the first one."""
        if self._conversion_metric_id:
            return self._conversion_metric_id
        metrics = self._http.get("/metrics/").get("data") or []
        for metric in metrics:
            if (metric.get("attributes") or {}).get("name") == CONVERSION_METRIC_NAME:
                self._conversion_metric_id = metric.get("id")
                return self._conversion_metric_id
        if metrics:
            self._conversion_metric_id = metrics[0].get("id")
        return self._conversion_metric_id

    @staticmethod
    def _index_messages(response: Mapping[str, Any]) -> Dict[str, Dict[str, Any]]:
        return {
            str(item.get("id")): item.get("attributes") or {}
            for item in response.get("included") or []
            if item.get("type") == "campaign-message"
        }

    def _map_campaign(
        self, item: Mapping[str, Any], messages: Mapping[str, Dict[str, Any]]
    ) -> PlatformCampaign:
        attributes = item.get("attributes") or {}
        relationships = item.get("relationships") or {}
        message_refs = (relationships.get("campaign-messages") or {}).get("data") or []
        message = {}
        for ref in message_refs:
            message = messages.get(str(ref.get("id"))) or {}
            if message:
                break
        content = message.get("content") or {}
        included_lists = (attributes.get("audiences") or {}).get("included") or []

        if attributes.get("archived") is True:
            status = CampaignStatus.ARCHIVED
        else:
            status = self.normalize_status(attributes.get("status"))
        send_time = parse_datetime(attributes.get("send_time"))
        return PlatformCampaign(
            external_id=str(item.get("id")),
            name=attributes.get("name") or "",
            status=status,
            subject_line=content.get("subject") or "",
            preview_text=content.get("preview_text") or "",
            from_name=content.get("from_label") or "",
            from_email=content.get("from_email") or "",
            list_id=str(included_lists[0]) if included_lists else None,
            scheduled_at=parse_datetime(attributes.get("scheduled_at")),
            sent_at=send_time if status == CampaignStatus.SENT else None,
            metadata={
                "vendorStatus": attributes.get("status"),
                "archived": attributes.get("archived"),
                "sendStrategy": (attributes.get("send_strategy") or {}).get("method"),
                "createdAt": attributes.get("created_at"),
                "updatedAt": attributes.get("updated_at"),
            },
        )

    def _map_list(self, item: Mapping[str, Any]) -> PlatformList:
        attributes = item.get("attributes") or {}
        return PlatformList(
            external_id=str(item.get("id")),
            name=attributes.get("name") or "",
            member_count=to_int(attributes.get("profile_count")),
            created_at=parse_datetime(attributes.get("created")),
            updated_at=parse_datetime(attributes.get("updated")),
            metadata={"optInProcess": attributes.get("opt_in_process")},
        )
