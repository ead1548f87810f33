"""Domain models for the email platform mirror."""

from emailops.domain.models import (
    Metrics,
    PlatformCampaign,
    PlatformList,
    ConnectionTestResult,
    AccountInfo,
    CreateCampaignInput,
    UpdateCampaignInput,
    PaginationOptions,
    PaginatedResult,
    Client,
    Credential,
    Campaign,
    AudienceList,
    JobRun,
    Alert,
    IndustryBenchmark,
    Session,
)

__all__ = [
    "Metrics",
    "PlatformCampaign",
    "PlatformList",
    "ConnectionTestResult",
    "AccountInfo",
    "CreateCampaignInput",
    "UpdateCampaignInput",
    "PaginationOptions",
    "PaginatedResult",
    "Client",
    "Credential",
    "Campaign",
    "AudienceList",
    "JobRun",
    "Alert",
    "IndustryBenchmark",
    "Session",
]
