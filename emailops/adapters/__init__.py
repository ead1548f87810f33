"""Vendor adapters behind the unified platform contract."""

from emailops.adapters.factory import (
    SUPPORTED_PLATFORMS,
    IMPLEMENTED_PLATFORMS,
    REQUIRED_CREDENTIALS,
    create_platform_adapter,
    is_platform_supported,
    is_platform_implemented,
    get_supported_platforms,
    get_required_credentials,
    validate_credentials,
)

__all__ = [
    "SUPPORTED_PLATFORMS",
    "IMPLEMENTED_PLATFORMS",
    "REQUIRED_CREDENTIALS",
    "create_platform_adapter",
    "is_platform_supported",
    "is_platform_implemented",
    "get_supported_platforms",
    "get_required_credentials",
    "validate_credentials",
]
