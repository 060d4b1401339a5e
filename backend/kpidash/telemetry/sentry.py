"""
Sentry Error Tracking
=====================

Centralized error tracking using Sentry.

Related files:
- kpidash/main.py: Initializes Sentry in create_app()
- kpidash/queries.py: Sets user context once the caller is resolved
- kpidash/main.py exception handlers: Capture unexpected backend errors

Environment Variables:
- SENTRY_DSN: Sentry project DSN (Sentry stays off without it)
- ENVIRONMENT: Environment name (production, staging, development)
- RELEASE_VERSION: Release identifier set by CI
"""

from __future__ import annotations

import logging
import os
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

logger = logging.getLogger(__name__)


def get_sentry_dsn() -> Optional[str]:
    return os.environ.get("SENTRY_DSN")


def init_sentry() -> bool:
    """
    Initialize the Sentry SDK. Call once, before the FastAPI app is built.

    Returns:
        True if Sentry was initialized, False when no DSN is configured.
    """
    dsn = get_sentry_dsn()
    if not dsn:
        return False

    environment = os.environ.get("ENVIRONMENT", "development")

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(
                level=logging.INFO,        # INFO+ as breadcrumbs
                event_level=logging.ERROR,  # ERROR+ as events
            ),
        ],
        traces_sample_rate=0.1,
        send_default_pii=False,  # user context is set explicitly
        release=os.environ.get("RELEASE_VERSION"),
    )

    logger.info("[SENTRY] Initialized for %s environment", environment)
    return True


def set_user_context(user_id: str, email: Optional[str] = None) -> None:
    """Attach the authenticated user to subsequent Sentry events.

    A no-op when Sentry was never initialized.
    """
    sentry_sdk.set_user({"id": user_id, "email": email})


def clear_user_context() -> None:
    """Remove user context, e.g. on sign-out."""
    sentry_sdk.set_user(None)


def capture_exception(exception: Exception, extra: Optional[dict] = None) -> None:
    """
    Report an exception that is handled but should still be tracked.

    Example:
        except BackendError as exc:
            capture_exception(exc, extra={"table": "kpi_data"})
            raise
    """
    logger.error("[SENTRY] Captured %s: %s", type(exception).__name__, exception)
    sentry_sdk.capture_exception(exception, extras=extra or {})
