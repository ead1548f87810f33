"""ServiceTitan adapter.

ServiceTitan Marketing is reachable only through partner OAuth apps, so the
integration is registered but not implemented: every operation raises.
"""

from datetime import datetime
from typing import Any, List, Mapping, NoReturn, Optional

from emailops.adapters.errors import adapter_logger
from emailops.core.constants import CampaignStatus
from emailops.core.exceptions import PlatformError
from emailops.domain.models import (
    ConnectionTestResult,
    CreateCampaignInput,
    Metrics,
    PaginatedResult,
    PaginationOptions,
    PlatformCampaign,
    PlatformList,
    UpdateCampaignInput,
)


class ServiceTitanAdapter:
    """Placeholder adapter that satisfies the contract and fails every call."""

    platform = "ServiceTitan"

    def __init__(self, client_id: str, credentials: Mapping[str, Any], session: Optional[Any] = None):
        self.client_id = client_id
        self._log = adapter_logger(self.platform, client_id)

    def _unimplemented(self, operation: str) -> NoReturn:
        self._log.warning(f"ServiceTitan {operation} called on an unimplemented adapter")
        raise PlatformError(self.platform, operation, "ServiceTitan adapter not yet implemented")

    def test_connection(self) -> ConnectionTestResult:
        self._unimplemented("testConnection")

    def get_campaigns(self, options: Optional[PaginationOptions] = None) -> PaginatedResult[PlatformCampaign]:
        self._unimplemented("getCampaigns")

    def get_campaign(self, external_id: str) -> Optional[PlatformCampaign]:
        self._unimplemented("getCampaign")

    def create_campaign(self, data: CreateCampaignInput) -> PlatformCampaign:
        self._unimplemented("createCampaign")

    def update_campaign(self, external_id: str, data: UpdateCampaignInput) -> PlatformCampaign:
        self._unimplemented("updateCampaign")

    def schedule_campaign(self, external_id: str, scheduled_at: datetime) -> None:
        self._unimplemented("scheduleCampaign")

    def send_campaign(self, external_id: str) -> None:
        self._unimplemented("sendCampaign")

    def get_campaign_metrics(self, external_id: str) -> Metrics:
        self._unimplemented("getCampaignMetrics")

    def get_lists(self) -> List[PlatformList]:
        self._unimplemented("getLists")

    def get_list(self, external_id: str) -> Optional[PlatformList]:
        self._unimplemented("getList")

    def normalize_status(self, vendor_status: Any) -> CampaignStatus:
        return CampaignStatus.UNKNOWN

    def map_status(self, status: CampaignStatus) -> str:
        return CampaignStatus(status).value.lower()
