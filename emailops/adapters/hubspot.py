"""HubSpot Marketing Email API adapter.

Uses a private-app access token as Bearer auth. Marketing emails are read
from ``/marketing/v3/emails``; publishing requires Marketing Hub Enterprise.
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
from emailops.utils.date_utils import parse_datetime, to_iso
from emailops.utils.parsing import to_int

HUBSPOT_BASE_URL = "https://api.hubapi.com"
ENTERPRISE_REQUIRED = "requires a HubSpot Marketing Hub Enterprise subscription"

STATUS_MAP = {
    "DRAFT": CampaignStatus.DRAFT,
    "AUTOMATED_DRAFT": CampaignStatus.DRAFT,
    "SCHEDULED": CampaignStatus.SCHEDULED,
    "PUBLISHED": CampaignStatus.SENT,
    "AUTOMATED": CampaignStatus.SENT,
    "CANCELED": CampaignStatus.CANCELLED,
    "CANCELLED": CampaignStatus.CANCELLED,
}

REVERSE_STATUS_MAP = {
    CampaignStatus.DRAFT: "DRAFT",
    CampaignStatus.SCHEDULED: "SCHEDULED",
    CampaignStatus.SENDING: "PUBLISHED",
    CampaignStatus.SENT: "PUBLISHED",
    CampaignStatus.CANCELLED: "CANCELED",
}


class HubSpotAdapter:
    """Adapter for HubSpot marketing emails and CRM lists."""

    platform = "HubSpot"

    def __init__(self, client_id: str, credentials: Mapping[str, Any], session: Optional[Any] = None):
        self.client_id = client_id
        access_token = credentials.get("accessToken") or ""
        self._http = VendorHTTPClient(
            base_url=HUBSPOT_BASE_URL,
            auth_headers=lambda: {"Authorization": f"Bearer {access_token}"},
            session=session,
        )
        self._log = adapter_logger(self.platform, client_id)

    def _fail(self, operation: str, error: Exception) -> NoReturn:
        handle_api_error(self.platform, operation, error, self.client_id)

    def test_connection(self) -> ConnectionTestResult:
        try:
            account = self._http.get("/account-info/v3/details")
        except EmailOpsError as e:
            message = extract_error_message(e)
            self._log.error(f"HubSpot connection test failed: {message}")
            return ConnectionTestResult(success=False, message="Failed to connect to HubSpot", error=message)

        portal_id = str(account.get("portalId", ""))
        return ConnectionTestResult(
            success=True,
            message="Successfully connected to HubSpot",
            account_info=AccountInfo(
                id=portal_id,
                name=account.get("companyName") or account.get("uiDomain") or portal_id,
            ),
        )

    def get_campaigns(self, options: Optional[PaginationOptions] = None) -> PaginatedResult[PlatformCampaign]:
        options = options or PaginationOptions(limit=DEFAULT_PAGE_SIZE)
        page = min(max(options.page, 1), MAX_PAGES)

        # Cursor pagination: walk forward from the first page to the requested one
        after: Optional[str] = None
        response: Dict[str, Any] = {}
        try:
            for current in range(1, page + 1):
                params: Dict[str, Any] = {"limit": options.limit}
                if after:
                    params["after"] = after
                response = self._http.get("/marketing/v3/emails", params=params)
                next_after = ((response.get("paging") or {}).get("next") or {}).get("after")
                if current < page:
                    if not next_after or next_after == after:
                        response = {"results": [], "total": response.get("total", 0)}
                        break
                    after = next_after
        except Exception as e:
            self._fail("getCampaigns", e)

        campaigns = [self._map_email(e) for e in response.get("results", [])]
        next_after = ((response.get("paging") or {}).get("next") or {}).get("after")
        return PaginatedResult(
            items=campaigns,
            total=to_int(response.get("total"), len(campaigns)),
            page=page,
            limit=options.limit,
            has_more=bool(next_after) and bool(campaigns),
        )

    def get_campaign(self, external_id: str) -> Optional[PlatformCampaign]:
        try:
            email = self._http.get(f"/marketing/v3/emails/{external_id}")
        except Exception as e:
            if is_not_found(e):
                return None
            self._fail("getCampaign", e)
        return self._map_email(email)

    def create_campaign(self, data: CreateCampaignInput) -> PlatformCampaign:
        body: Dict[str, Any] = {
            "name": data.name,
            "subject": data.subject_line,
            "fromName": data.from_name,
            "content": {"html": data.content_html, "plainText": data.content_text or ""},
        }
        if data.preview_text:
            body["preheaderText"] = data.preview_text
        if data.list_id:
            body["activeContactListId"] = to_int(data.list_id)

        try:
            created = self._http.post("/marketing/v3/emails", json=body)
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
            body["preheaderText"] = data.preview_text
        if data.from_name is not None:
            body["fromName"] = data.from_name
        if data.content_html is not None or data.content_text is not None:
            body["content"] = {}
            if data.content_html is not None:
                body["content"]["html"] = data.content_html
            if data.content_text is not None:
                body["content"]["plainText"] = data.content_text

        try:
            if body:
                self._http.patch(f"/marketing/v3/emails/{external_id}", json=body)
            campaign = self.get_campaign(external_id)
            return require_refetched(self.platform, "updateCampaign", campaign, "update")
        except Exception as e:
            self._fail("updateCampaign", e)

    def schedule_campaign(self, external_id: str, scheduled_at: datetime) -> None:
        try:
            self._http.patch(
                f"/marketing/v3/emails/{external_id}", json={"publishDate": to_iso(scheduled_at)}
            )
            self._http.post(f"/marketing/v3/emails/{external_id}/publish")
        except Exception as e:
            if status_code_of(e) == 403:
                raise PlatformError(
                    self.platform, "scheduleCampaign", f"Scheduling campaigns {ENTERPRISE_REQUIRED}"
                ) from e
            self._fail("scheduleCampaign", e)
        self._log.info(f"HubSpot email {external_id} scheduled for {to_iso(scheduled_at)}")

    def send_campaign(self, external_id: str) -> None:
        try:
            self._http.post(f"/marketing/v3/emails/{external_id}/publish")
        except Exception as e:
            if status_code_of(e) == 403:
                raise PlatformError(
                    self.platform, "sendCampaign", f"Sending campaigns via API {ENTERPRISE_REQUIRED}"
                ) from e
            self._fail("sendCampaign", e)
        self._log.info(f"HubSpot email {external_id} published")

    def get_campaign_metrics(self, external_id: str) -> Metrics:
        try:
            email = self._http.get(f"/marketing/v3/emails/{external_id}")
        except Exception as e:
            if is_not_found(e):
                return Metrics.empty()
            self._fail("getCampaignMetrics", e)
        return self._metrics_from_stats(email.get("stats")) or Metrics.empty()

    def get_lists(self) -> List[PlatformList]:
        try:
            response = self._http.get("/crm/v3/lists", params={"count": 250})
        except Exception as e:
            self._fail("getLists", e)
        return [self._map_list(item) for item in response.get("lists", [])]

    def get_list(self, external_id: str) -> Optional[PlatformList]:
        try:
            response = self._http.get(f"/crm/v3/lists/{external_id}")
        except Exception as e:
            if is_not_found(e):
                return None
            self._fail("getList", e)
        return self._map_list(response.get("list", response))

    def normalize_status(self, vendor_status: Any) -> CampaignStatus:
        return normalize_with(STATUS_MAP, vendor_status)

    def map_status(self, status: CampaignStatus) -> str:
        return map_with(REVERSE_STATUS_MAP, status, "DRAFT")

    @staticmethod
    def _metrics_from_stats(stats: Optional[Mapping[str, Any]]) -> Optional[Metrics]:
        if not stats:
            return None
        counters = stats.get("counters") or {}
        sent = to_int(counters.get("sent"))
        return Metrics.from_counts(
            sent=sent,
            delivered=to_int(counters.get("delivered"), sent) if "delivered" in counters else None,
            bounces=to_int(counters.get("bounce")),
            unique_opens=to_int(counters.get("open")),
            unique_clicks=to_int(counters.get("click")),
            unsubscribes=to_int(counters.get("unsubscribed")),
            complaints=to_int(counters.get("spamreport")),
        )

    def _map_email(self, email: Mapping[str, Any]) -> PlatformCampaign:
        # The archived flag overrides the state field
        if email.get("archived") is True:
            status = CampaignStatus.ARCHIVED
        else:
            status = self.normalize_status(email.get("state") or email.get("status"))

        content = email.get("content") or {}
        list_id = email.get("activeContactListId")
        return PlatformCampaign(
            external_id=str(email.get("id")),
            name=email.get("name") or "",
            status=status,
            subject_line=email.get("subject") or "",
            preview_text=email.get("preheaderText") or "",
            from_name=email.get("fromName") or "",
            from_email=email.get("from") or "",
            content_html=content.get("html") or None,
            content_text=content.get("plainText") or None,
            list_id=str(list_id) if list_id else None,
            scheduled_at=parse_datetime(email.get("publishDate")),
            sent_at=parse_datetime(email.get("publishedAt")),
            metrics=self._metrics_from_stats(email.get("stats")),
            metadata={
                "portalId": email.get("portalId"),
                "createdAt": email.get("createdAt"),
                "updatedAt": email.get("updatedAt"),
                "archived": email.get("archived"),
            },
        )

    def _map_list(self, item: Mapping[str, Any]) -> PlatformList:
        meta = item.get("metaData") or {}
        return PlatformList(
            external_id=str(item.get("listId") or item.get("id")),
            name=item.get("name") or "",
            member_count=to_int(meta.get("size", item.get("size"))),
            created_at=parse_datetime(item.get("createdAt")),
            updated_at=parse_datetime(item.get("updatedAt")),
            metadata={
                "listType": item.get("listType"),
                "dynamic": item.get("dynamic"),
                "portalId": item.get("portalId"),
            },
        )
