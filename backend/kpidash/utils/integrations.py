"""Integration health and display helpers."""

from __future__ import annotations

from datetime import datetime
from typing import Mapping, Optional, Union

from ..schemas import Integration, IntegrationWithLastSync
from .dates import Timestamp, as_utc, format_date, hours_since

# Max hours since last sync before an integration is considered stale.
# Daily and weekly carry an extra hour/day of slack for scheduling jitter.
HEALTH_THRESHOLDS_HOURS = {
    "realtime": 1,
    "hourly": 2,
    "daily": 25,
    "weekly": 168,
}

PLATFORM_NAMES = {
    "shopify": "Shopify",
    "etsy": "Etsy",
    "woocommerce": "WooCommerce",
    "squarespace": "Squarespace",
}


def _field(integration, name: str):
    if isinstance(integration, Mapping):
        return integration.get(name)
    return getattr(integration, name, None)


def is_healthy(integration: Union[Integration, Mapping], now: Optional[datetime] = None) -> bool:
    """True when the last sync is within the threshold for the integration's sync frequency."""
    last_sync = _field(integration, "last_sync")
    if not last_sync:
        return False
    frequency = _field(integration, "sync_frequency")
    frequency = getattr(frequency, "value", frequency)
    threshold = HEALTH_THRESHOLDS_HOURS.get(frequency)
    if threshold is None:
        return False
    return hours_since(last_sync, now) <= threshold


def format_last_sync(last_sync: Optional[Timestamp], now: Optional[datetime] = None) -> str:
    if not last_sync:
        return "Never synced"

    hours = int(hours_since(last_sync, now))
    days = hours // 24

    if hours < 1:
        return "Just now"
    if hours < 24:
        return f"{hours} hour{'s' if hours > 1 else ''} ago"
    if days < 7:
        return f"{days} day{'s' if days > 1 else ''} ago"
    return format_date(as_utc(last_sync))


def get_platform_display_name(platform: str) -> str:
    return PLATFORM_NAMES.get(platform, platform)


def enhance_integration_data(
    integration: Union[Integration, Mapping],
    now: Optional[datetime] = None,
) -> IntegrationWithLastSync:
    """Build the UI view of an integration. The stored api_key is reduced to a flag."""
    if not isinstance(integration, Integration):
        integration = Integration.model_validate(integration)
    data = integration.model_dump(exclude={"api_key"})
    return IntegrationWithLastSync(
        **data,
        platform_name=get_platform_display_name(integration.platform),
        has_api_key=bool(integration.api_key),
        last_sync_formatted=format_last_sync(integration.last_sync, now),
        is_healthy=is_healthy(integration, now),
    )
