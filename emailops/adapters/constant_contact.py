"""Constant Contact v3 API adapter.

OAuth2 Bearer tokens expire quickly, so a 401 triggers one refresh through
the token endpoint (basic auth with the app's client id and secret) and the
request is retried once. Content and schedules live on the campaign's
``primary_email`` activity, not on the campaign itself.
"""

from datetime import datetime
from typing import Any, Dict, List, Mapping, NoReturn, Optional

from requests.auth import HTTPBasicAuth

from emailops.adapters.errors import adapter_logger, extract_error_message, handle_api_error, is_not_found
from emailops.adapters.http_client import VendorHTTPClient, create_session
from emailops.adapters.mapping import map_with, normalize_with, require_refetched
from emailops.core.constants import DEFAULT_PAGE_SIZE, MAX_PAGES, REQUEST_TIMEOUT_SECONDS, CampaignStatus
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

CC_API_HOST = "https://api.cc.email"
CC_BASE_URL = f"{CC_API_HOST}/v3"
CC_TOKEN_URL = "https://authz.constantcontact.com/oauth2/default/v1/token"
CUSTOM_HTML_FORMAT = 5
SEND_NOW = "0"

STATUS_MAP = {
    "Draft": CampaignStatus.DRAFT,
    "Scheduled": CampaignStatus.SCHEDULED,
    "Executing": CampaignStatus.SENDING,
    "Done": CampaignStatus.SENT,
    "Error": CampaignStatus.DRAFT,
    "Removed": CampaignStatus.ARCHIVED,
}

REVERSE_STATUS_MAP = {
    CampaignStatus.DRAFT: "Draft",
    CampaignStatus.SCHEDULED: "Scheduled",
    CampaignStatus.SENDING: "Executing",
    CampaignStatus.SENT: "Done",
    CampaignStatus.ARCHIVED: "Removed",
}


def primary_activity(campaign: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    """The activity carrying content and schedules, or the first one."""
    activities = campaign.get("campaign_activities") or []
    for activity in activities:
        if activity.get("role") == "primary_email":
            return activity
    return activities[0] if activities else None


def next_page_url(response: Mapping[str, Any]) -> Optional[str]:
    href = ((response.get("_links") or {}).get("next") or {}).get("href")
    if not href:
        return None
    return href if href.startswith("http") else f"{CC_API_HOST}{href}"


class ConstantContactAdapter:
    """Adapter for Constant Contact email campaigns and contact lists.

    Refreshed tokens are kept in ``refreshed_credentials`` so the caller can
    re-encrypt and store them.
    """

    platform = "Constant Contact"

    def __init__(self, client_id: str, credentials: Mapping[str, Any], session: Optional[Any] = None):
        self.client_id = client_id
        self._credentials: Dict[str, Any] = dict(credentials)
        self.refreshed_credentials: Optional[Dict[str, Any]] = None
        self._session = session if session is not None else create_session()
        self._http = VendorHTTPClient(
            base_url=CC_BASE_URL,
            auth_headers=lambda: {"Authorization": f"Bearer {self._credentials.get('accessToken', '')}"},
            refresh=self._refresh_access_token,
            session=self._session,
        )
        self._log = adapter_logger(self.platform, client_id)

    def _fail(self, operation: str, error: Exception) -> NoReturn:
        handle_api_error(self.platform, operation, error, self.client_id)

    def _refresh_access_token(self) -> None:
        client_id = self._credentials.get("clientId")
        client_secret = self._credentials.get("clientSecret")
        refresh_token = self._credentials.get("refreshToken")
        if not client_id or not client_secret or not refresh_token:
            raise PlatformError(
                self.platform,
                "refreshAccessToken",
                "Missing clientId, clientSecret, or refreshToken for token refresh",
            )

        response = self._session.request(
            method="POST",
            url=CC_TOKEN_URL,
            data={"grant_type": "refresh_token", "refresh_token": refresh_token},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            auth=HTTPBasicAuth(client_id, client_secret),
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        if response.status_code >= 400:
            raise PlatformError(
                self.platform, "refreshAccessToken", f"Token refresh failed: {response.text}"
            )

        tokens = response.json()
        self._credentials["accessToken"] = tokens["access_token"]
        self._credentials["refreshToken"] = tokens.get("refresh_token", refresh_token)
        self.refreshed_credentials = dict(self._credentials)
        self._log.info("Constant Contact access token refreshed")

    def test_connection(self) -> ConnectionTestResult:
        try:
            account = self._http.get("/account/summary")
        except EmailOpsError as e:
            message = extract_error_message(e)
            self._log.error(f"Constant Contact connection test failed: {message}")
            return ConnectionTestResult(
                success=False, message="Failed to connect to Constant Contact", error=message
            )

        return ConnectionTestResult(
            success=True,
            message="Successfully connected to Constant Contact",
            account_info=AccountInfo(
                id=account.get("encoded_account_id") or "",
                name=account.get("organization_name") or account.get("first_name") or "",
                email=account.get("contact_email") or "",
            ),
        )

    def get_campaigns(self, options: Optional[PaginationOptions] = None) -> PaginatedResult[PlatformCampaign]:
        options = options or PaginationOptions(limit=DEFAULT_PAGE_SIZE)
        page = min(max(options.page, 1), MAX_PAGES)
        try:
            response = self._http.fetch_cursor_page(
                "/emails", params={"limit": options.limit}, next_url=next_page_url, page=page
            )
        except Exception as e:
            self._fail("getCampaigns", e)

        campaigns = [self._map_campaign(c) for c in response.get("campaigns") or []]
        return PaginatedResult(
            items=campaigns,
            total=len(campaigns),
            page=page,
            limit=options.limit,
            has_more=bool(campaigns) and next_page_url(response) is not None,
        )

    def get_campaign(self, external_id: str) -> Optional[PlatformCampaign]:
        campaign = self._fetch_campaign(external_id, "getCampaign")
        return self._map_campaign(campaign) if campaign is not None else None

    def _fetch_campaign(self, external_id: str, operation: str) -> Optional[Dict[str, Any]]:
        try:
            return self._http.get(f"/emails/{external_id}")
        except Exception as e:
            if is_not_found(e):
                return None
            self._fail(operation, e)

    def _require_activity_id(self, external_id: str, operation: str) -> str:
        campaign = self._fetch_campaign(external_id, operation)
        activity = primary_activity(campaign) if campaign else None
        if not activity or not activity.get("campaign_activity_id"):
            raise PlatformError(self.platform, operation, "No campaign activity found")
        return activity["campaign_activity_id"]

    def create_campaign(self, data: CreateCampaignInput) -> PlatformCampaign:
        activity = {
            "format_type": CUSTOM_HTML_FORMAT,
            "from_name": data.from_name,
            "from_email": data.from_email,
            "reply_to_email": data.from_email,
            "subject": data.subject_line,
            "preheader": data.preview_text or "",
            "html_content": data.content_html,
        }
        try:
            created = self._http.post(
                "/emails", json={"name": data.name, "email_campaign_activities": [activity]}
            )
            campaign_id = created.get("campaign_id")
            activities = created.get("campaign_activities") or []
            activity_id = activities[0].get("campaign_activity_id") if activities else None

            # Lists can only be attached by updating the activity
            if activity_id and data.list_id:
                self._http.put(
                    f"/emails/activities/{activity_id}",
                    json={**activity, "contact_list_ids": [data.list_id]},
                )

            campaign = self.get_campaign(campaign_id)
            return require_refetched(self.platform, "createCampaign", campaign, "creation")
        except Exception as e:
            self._fail("createCampaign", e)

    def update_campaign(self, external_id: str, data: UpdateCampaignInput) -> PlatformCampaign:
        try:
            if data.name is not None:
                self._http.patch(f"/emails/{external_id}", json={"name": data.name})

            if data.has_content_changes():
                activity_id = self._require_activity_id(external_id, "updateCampaign")
                # PUT replaces the activity, so unchanged fields are carried over
                activity = self._http.get(f"/emails/activities/{activity_id}")
                body: Dict[str, Any] = {
                    "format_type": activity.get("format_type") or CUSTOM_HTML_FORMAT,
                    "from_name": data.from_name or activity.get("from_name"),
                    "from_email": data.from_email or activity.get("from_email"),
                    "reply_to_email": data.from_email or activity.get("reply_to_email"),
                    "subject": data.subject_line or activity.get("subject"),
                    "preheader": (
                        data.preview_text
                        if data.preview_text is not None
                        else activity.get("preheader") or ""
                    ),
                    "html_content": data.content_html or activity.get("html_content"),
                }
                if activity.get("contact_list_ids"):
                    body["contact_list_ids"] = activity["contact_list_ids"]
                self._http.put(f"/emails/activities/{activity_id}", json=body)

            campaign = self.get_campaign(external_id)
            return require_refetched(self.platform, "updateCampaign", campaign, "update")
        except Exception as e:
            self._fail("updateCampaign", e)

    def schedule_campaign(self, external_id: str, scheduled_at: datetime) -> None:
        try:
            activity_id = self._require_activity_id(external_id, "scheduleCampaign")
            self._http.post(
                f"/emails/activities/{activity_id}/schedules",
                json={"scheduled_date": to_iso(scheduled_at)},
            )
        except Exception as e:
            self._fail("scheduleCampaign", e)
        self._log.info(f"Constant Contact campaign {external_id} scheduled for {to_iso(scheduled_at)}")

    def send_campaign(self, external_id: str) -> None:
        try:
            activity_id = self._require_activity_id(external_id, "sendCampaign")
            self._http.post(
                f"/emails/activities/{activity_id}/schedules", json={"scheduled_date": SEND_NOW}
            )
        except Exception as e:
            self._fail("sendCampaign", e)
        self._log.info(f"Constant Contact campaign {external_id} sent")

    def get_campaign_metrics(self, external_id: str) -> Metrics:
        try:
            campaign = self._fetch_campaign(external_id, "getCampaignMetrics")
            activity = primary_activity(campaign) if campaign else None
            if not activity or not activity.get("campaign_activity_id"):
                return Metrics.empty()
            report = self._http.get(
                f"/reports/stats/email_campaign_activities/{activity['campaign_activity_id']}"
            )
        except Exception as e:
            if is_not_found(e):
                return Metrics.empty()
            self._fail("getCampaignMetrics", e)

        summaries = report.get("bulk_email_campaign_summaries") or []
        stats = summaries[0].get("stats") if summaries else None
        if not stats:
            return Metrics.empty()

        unique_opens = to_int(stats.get("em_opens"))
        unique_clicks = to_int(stats.get("em_clicks"))
        return Metrics.from_counts(
            sent=to_int(stats.get("em_sends")),
            bounces=to_int(stats.get("em_bounces")),
            unique_opens=unique_opens,
            total_opens=to_int(stats.get("em_opens_all"), unique_opens) or unique_opens,
            unique_clicks=unique_clicks,
            total_clicks=to_int(stats.get("em_clicks_all"), unique_clicks) or unique_clicks,
            unsubscribes=to_int(stats.get("em_optouts")),
            complaints=to_int(stats.get("em_abuse")),
        )

    def get_lists(self) -> List[PlatformList]:
        lists: List[PlatformList] = []
        try:
            for response in self._http.iter_cursor_pages(
                "/contact_lists", params={"include_membership_count": "all"}, next_url=next_page_url
            ):
                lists.extend(self._map_list(item) for item in response.get("lists") or [])
        except Exception as e:
            self._fail("getLists", e)
        return lists

    def get_list(self, external_id: str) -> Optional[PlatformList]:
        try:
            item = self._http.get(f"/contact_lists/{external_id}")
        except Exception as e:
            if is_not_found(e):
                return None
            self._fail("getList", e)
        return self._map_list(item)

    def normalize_status(self, vendor_status: Any) -> CampaignStatus:
        return normalize_with(STATUS_MAP, vendor_status)

    def map_status(self, status: CampaignStatus) -> str:
        return map_with(REVERSE_STATUS_MAP, status, "Draft")

    def _map_campaign(self, cc: Mapping[str, Any]) -> PlatformCampaign:
        activity = primary_activity(cc) or {}
        vendor_status = cc.get("current_status") or "Draft"
        status = self.normalize_status(vendor_status)
        return PlatformCampaign(
            external_id=str(cc.get("campaign_id")),
            name=cc.get("name") or "",
            status=status,
            subject_line=activity.get("subject") or "",
            preview_text=activity.get("preheader") or "",
            from_name=activity.get("from_name") or "",
            from_email=activity.get("from_email") or "",
            content_html=activity.get("html_content") or None,
            scheduled_at=parse_datetime(activity.get("scheduled_date")),
            sent_at=parse_datetime(cc.get("updated_at")) if status == CampaignStatus.SENT else None,
            metadata={
                "campaignActivityId": activity.get("campaign_activity_id"),
                "type": cc.get("type"),
                "typeCode": cc.get("type_code"),
                "createdAt": cc.get("created_at"),
                "updatedAt": cc.get("updated_at"),
            },
        )

    def _map_list(self, item: Mapping[str, Any]) -> PlatformList:
        return PlatformList(
            external_id=str(item.get("list_id")),
            name=item.get("name") or "",
            member_count=to_int(item.get("membership_count")),
            created_at=parse_datetime(item.get("created_at")),
            updated_at=parse_datetime(item.get("updated_at")),
            metadata={"description": item.get("description"), "favorite": item.get("favorite")},
        )
