"""Job payload contracts.

Payloads travel as plain dicts with camelCase keys. Each parser validates
the raw dict and returns a typed payload; anything malformed raises
ValidationError so the job fails without touching a vendor.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from emailops.core.constants import BENCHMARK_PERIOD_DAYS, JobName
from emailops.core.exceptions import ValidationError


@dataclass(frozen=True)
class ClientPayload:
    client_id: str


@dataclass(frozen=True)
class MetricsPayload:
    client_id: str
    campaign_id: Optional[str] = None


@dataclass(frozen=True)
class BenchmarkPayload:
    period: str = "weekly"

    @property
    def days(self) -> int:
        return BENCHMARK_PERIOD_DAYS[self.period]


@dataclass(frozen=True)
class AnomalyPayload:
    client_id: Optional[str] = None


@dataclass(frozen=True)
class CleanupPayload:
    older_than_days: int
    only_resolved: bool = False


def _as_mapping(data: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValidationError(f"Job payload must be an object, got {type(data).__name__}")
    return data


def _require_client_id(data: Mapping[str, Any]) -> str:
    client_id = data.get("clientId")
    if not client_id or not isinstance(client_id, str):
        raise ValidationError("Job payload requires a non-empty 'clientId'", details={"payload": dict(data)})
    return client_id


def parse_client_payload(data: Optional[Mapping[str, Any]]) -> ClientPayload:
    return ClientPayload(client_id=_require_client_id(_as_mapping(data)))


def parse_metrics_payload(data: Optional[Mapping[str, Any]]) -> MetricsPayload:
    data = _as_mapping(data)
    campaign_id = data.get("campaignId")
    if campaign_id is not None and not isinstance(campaign_id, str):
        raise ValidationError("'campaignId' must be a string")
    return MetricsPayload(client_id=_require_client_id(data), campaign_id=campaign_id or None)


def parse_benchmark_payload(data: Optional[Mapping[str, Any]]) -> BenchmarkPayload:
    period = _as_mapping(data).get("period", "weekly")
    if period not in BENCHMARK_PERIOD_DAYS:
        raise ValidationError(
            f"Invalid benchmark period '{period}'. Must be one of: {', '.join(BENCHMARK_PERIOD_DAYS)}"
        )
    return BenchmarkPayload(period=period)


def parse_anomaly_payload(data: Optional[Mapping[str, Any]]) -> AnomalyPayload:
    client_id = _as_mapping(data).get("clientId")
    if client_id is not None and (not isinstance(client_id, str) or not client_id):
        raise ValidationError("'clientId' must be a non-empty string when given")
    return AnomalyPayload(client_id=client_id)


def parse_cleanup_payload(data: Optional[Mapping[str, Any]], default_days: int) -> CleanupPayload:
    """Parse a cleanup payload.

    Args:
        data: Raw payload with optional ``olderThanDays`` and ``onlyResolved`` (default False)
        default_days: Retention used when ``olderThanDays`` is absent

    Raises:
        ValidationError: If ``olderThanDays`` is negative or not an integer
    """
    data = _as_mapping(data)
    days = data.get("olderThanDays", default_days)
    if isinstance(days, bool) or not isinstance(days, int):
        raise ValidationError(f"'olderThanDays' must be an integer, got {days!r}")
    if days < 0:
        raise ValidationError(f"'olderThanDays' must be non-negative, got {days}")
    return CleanupPayload(older_than_days=days, only_resolved=bool(data.get("onlyResolved", False)))


# Default retention per cleanup job, in days
CLEANUP_DEFAULT_DAYS: Dict[JobName, int] = {
    JobName.CLEANUP_OLD_ALERTS: 30,
    JobName.CLEANUP_OLD_JOBS: 30,
    JobName.CLEANUP_OLD_SESSIONS: 7,
}
