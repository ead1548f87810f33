"""Status vocabulary helpers shared by the vendor adapters."""

from typing import Any, Mapping, Optional, TypeVar

from emailops.core.constants import CampaignStatus
from emailops.core.exceptions import PlatformError

T = TypeVar("T")


def normalize_with(status_map: Mapping[Any, CampaignStatus], vendor_status: Any) -> CampaignStatus:
    """Look a vendor status up in ``status_map``; anything unmapped is UNKNOWN."""
    if vendor_status is None:
        return CampaignStatus.UNKNOWN
    try:
        return status_map.get(vendor_status, CampaignStatus.UNKNOWN)
    except TypeError:
        # Unhashable vendor values (lists, dicts)
        return CampaignStatus.UNKNOWN


def map_with(reverse_map: Mapping[CampaignStatus, Any], status: Any, default: Any) -> Any:
    try:
        status = CampaignStatus(status)
    except ValueError:
        return default
    return reverse_map.get(status, default)


def require_refetched(platform: str, operation: str, entity: Optional[T], action: str) -> T:
    """Return the re-fetched entity or fail the write when it is missing.

    Args:
        platform: Vendor display name
        operation: Adapter operation name
        entity: Result of the re-fetch after a write
        action: "creation" or "update"

    Raises:
        PlatformError: If the vendor no longer returns the entity
    """
    if entity is None:
        raise PlatformError(platform, operation, f"Campaign not found after {action}")
    return entity
