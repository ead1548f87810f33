"""Adapter factory.

Maps a platform identifier and a decrypted credential bag to a concrete
adapter. The tables here are the single source of truth for which
platforms exist, which are implemented, and which credential fields each
one needs before a bag is ever encrypted.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional

from loguru import logger

from emailops.adapters.activecampaign import ActiveCampaignAdapter
from emailops.adapters.beehiiv import BeehiivAdapter
from emailops.adapters.brevo import BrevoAdapter
from emailops.adapters.constant_contact import ConstantContactAdapter
from emailops.adapters.hubspot import HubSpotAdapter
from emailops.adapters.klaviyo import KlaviyoAdapter
from emailops.adapters.mailchimp import MailchimpAdapter
from emailops.adapters.servicetitan import ServiceTitanAdapter
from emailops.core.exceptions import ValidationError
from emailops.core.protocols import EmailPlatformAdapter

SUPPORTED_PLATFORMS: List[str] = [
    "MAILCHIMP",
    "KLAVIYO",
    "HUBSPOT",
    "ACTIVECAMPAIGN",
    "CONSTANT_CONTACT",
    "BREVO",
    "SERVICETITAN",
    "BEEHIIV",
]

PLATFORM_ALIASES: Dict[str, str] = {
    "CONSTANTCONTACT": "CONSTANT_CONTACT",
}

IMPLEMENTED_PLATFORMS: List[str] = [
    "MAILCHIMP",
    "KLAVIYO",
    "HUBSPOT",
    "ACTIVECAMPAIGN",
    "CONSTANT_CONTACT",
    "BREVO",
    "BEEHIIV",
]

REQUIRED_CREDENTIALS: Dict[str, List[str]] = {
    "MAILCHIMP": ["apiKey"],
    "KLAVIYO": ["apiKey"],
    "HUBSPOT": ["accessToken"],
    "ACTIVECAMPAIGN": ["apiKey", "accountUrl"],
    "CONSTANT_CONTACT": ["accessToken", "refreshToken", "clientId", "clientSecret"],
    "BREVO": ["apiKey"],
    "SERVICETITAN": ["clientId", "clientSecret", "accessToken"],
    "BEEHIIV": ["apiKey", "accountId"],
}

AdapterConstructor = Callable[..., EmailPlatformAdapter]

ADAPTER_REGISTRY: Dict[str, AdapterConstructor] = {
    "MAILCHIMP": MailchimpAdapter,
    "KLAVIYO": KlaviyoAdapter,
    "HUBSPOT": HubSpotAdapter,
    "ACTIVECAMPAIGN": ActiveCampaignAdapter,
    "CONSTANT_CONTACT": ConstantContactAdapter,
    "BREVO": BrevoAdapter,
    "SERVICETITAN": ServiceTitanAdapter,
    "BEEHIIV": BeehiivAdapter,
}


def canonical_platform(platform: str) -> str:
    """Upper-case a platform identifier and resolve aliases."""
    key = (platform or "").strip().upper()
    return PLATFORM_ALIASES.get(key, key)


def is_platform_supported(platform: str) -> bool:
    return canonical_platform(platform) in SUPPORTED_PLATFORMS


def is_platform_implemented(platform: str) -> bool:
    return canonical_platform(platform) in IMPLEMENTED_PLATFORMS


def get_supported_platforms() -> List[str]:
    return list(SUPPORTED_PLATFORMS)


def get_required_credentials(platform: str) -> List[str]:
    """Credential field names a platform needs; empty for unknown platforms."""
    return list(REQUIRED_CREDENTIALS.get(canonical_platform(platform), []))


def validate_credentials(platform: str, credentials: Mapping[str, Any]) -> None:
    """Check a credential bag before it is encrypted and stored.

    Args:
        platform: Platform identifier
        credentials: Plaintext credential bag

    Raises:
        ValidationError: If the platform is unsupported or fields are missing
    """
    if not is_platform_supported(platform):
        raise ValidationError(f"Unsupported email platform: {platform}")

    missing = [
        field_name
        for field_name in get_required_credentials(platform)
        if not str(credentials.get(field_name) or "").strip()
    ]
    if missing:
        raise ValidationError(
            f"Missing required credentials for {canonical_platform(platform)}: {', '.join(missing)}",
            details={"missing": missing},
        )


def create_platform_adapter(
    client_id: str,
    platform: str,
    credentials: Mapping[str, Any],
    session: Optional[Any] = None,
) -> EmailPlatformAdapter:
    """Build the adapter for ``platform``.

    Args:
        client_id: Client the adapter acts for
        platform: Platform identifier, case-insensitive
        credentials: Decrypted credential bag
        session: Optional HTTP session shared with the adapter

    Returns:
        Adapter implementing EmailPlatformAdapter

    Raises:
        ValidationError: If the platform is unsupported
    """
    key = canonical_platform(platform)
    constructor = ADAPTER_REGISTRY.get(key)
    if constructor is None:
        raise ValidationError(f"Unsupported email platform: {platform}")

    if not is_platform_implemented(key):
        logger.warning(f"Platform {key} is not implemented; client {client_id} gets a placeholder adapter")

    return constructor(client_id, credentials, session=session)
