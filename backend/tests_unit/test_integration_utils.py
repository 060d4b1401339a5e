"""
Integration Health Tests (Unit)
===============================

WHAT: Health thresholds per sync frequency and last-sync display text.
WHY: An hourly integration that missed a run must show as unhealthy.

REFERENCES:
- backend/kpidash/utils/integrations.py
"""

from datetime import datetime, timedelta, timezone

import pytest

from kpidash.utils.integrations import (
    enhance_integration_data,
    format_last_sync,
    get_platform_display_name,
    is_healthy,
)

NOW = datetime(2024, 8, 1, 12, 0, tzinfo=timezone.utc)


def _integration(frequency: str, last_sync) -> dict:
    return {"sync_frequency": frequency, "last_sync": last_sync}


@pytest.mark.parametrize(
    "frequency,age,expected",
    [
        ("hourly", timedelta(hours=1, minutes=59), True),
        ("hourly", timedelta(hours=2, minutes=1), False),
        ("realtime", timedelta(minutes=30), True),
        ("realtime", timedelta(minutes=61), False),
        ("daily", timedelta(hours=24), True),
        ("daily", timedelta(hours=26), False),
        ("weekly", timedelta(hours=167), True),
        ("weekly", timedelta(days=8), False),
    ],
)
def test_is_healthy_thresholds(frequency, age, expected) -> None:
    assert is_healthy(_integration(frequency, NOW - age), now=NOW) is expected


def test_never_synced_is_unhealthy() -> None:
    assert is_healthy(_integration("hourly", None), now=NOW) is False


def test_unknown_frequency_is_unhealthy() -> None:
    assert is_healthy(_integration("monthly", NOW), now=NOW) is False


def test_naive_timestamps_are_utc() -> None:
    naive = (NOW - timedelta(minutes=10)).replace(tzinfo=None)
    assert is_healthy(_integration("realtime", naive), now=NOW) is True


@pytest.mark.parametrize(
    "age,expected",
    [
        (timedelta(minutes=30), "Just now"),
        (timedelta(hours=1), "1 hour ago"),
        (timedelta(hours=5), "5 hours ago"),
        (timedelta(hours=24), "1 day ago"),
        (timedelta(days=3), "3 days ago"),
        (timedelta(days=10), "7/22/2024"),
    ],
)
def test_format_last_sync(age, expected) -> None:
    assert format_last_sync(NOW - age, now=NOW) == expected


def test_format_last_sync_never() -> None:
    assert format_last_sync(None, now=NOW) == "Never synced"


def test_format_last_sync_accepts_iso_strings() -> None:
    assert format_last_sync("2024-08-01T09:00:00Z", now=NOW) == "3 hours ago"


def test_platform_display_names() -> None:
    assert get_platform_display_name("woocommerce") == "WooCommerce"
    assert get_platform_display_name("shopify") == "Shopify"
    assert get_platform_display_name("bigcartel") == "bigcartel"


def test_enhance_integration_drops_api_key() -> None:
    row = {
        "id": "int-1",
        "user_id": "user-1",
        "platform": "etsy",
        "status": "connected",
        "api_key": "encrypted-value",
        "store_name": "Handmade Goods",
        "sync_frequency": "daily",
        "last_sync": NOW - timedelta(hours=2),
        "created_at": NOW - timedelta(days=30),
    }

    enhanced = enhance_integration_data(row, now=NOW)

    assert "api_key" not in enhanced.model_dump()
    assert enhanced.has_api_key is True
    assert enhanced.platform_name == "Etsy"
    assert enhanced.is_healthy is True
    assert enhanced.last_sync_formatted == "2 hours ago"
