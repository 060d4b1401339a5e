"""
Telemetry Module
================

Error tracking for the kpidash API (Sentry). Application logging uses the
standard `logging` module configured in kpidash/main.py.

Usage:
    from kpidash.telemetry import init_observability

    init_observability()
"""

from kpidash.telemetry.sentry import (
    init_sentry,
    set_user_context,
    clear_user_context,
    capture_exception,
)


def init_observability() -> dict:
    """Initialize observability tools. Returns which ones came up."""
    return {
        "sentry": init_sentry(),
    }


__all__ = [
    "init_observability",
    "init_sentry",
    "set_user_context",
    "clear_user_context",
    "capture_exception",
]
