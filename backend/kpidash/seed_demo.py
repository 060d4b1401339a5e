"""
Demo account seed script.
Creates a demo user with the sample KPIs and two connected stores.

Idempotent:
- Signs in when the demo user already exists (never creates a second one)
- Skips KPIs and integrations when the user already has some

Usage:
    cd backend
    python -m kpidash.seed_demo
"""

import logging
import os
from datetime import datetime, timedelta
from typing import Optional

from kpidash.database import get_sync_session, init_db
from kpidash.exceptions import AuthApiError
from kpidash.hosted import ChangeFeed, HostedClient
from kpidash.queries import IntegrationQueries, KpiQueries
from kpidash.schemas import IntegrationInsert, KpiDataInsert
from kpidash.services.sync_service import record_sync

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

DEMO_EMAIL = os.getenv("DEMO_EMAIL", "teto@kpidash.app")
DEMO_PASSWORD = os.getenv("DEMO_PASSWORD", "demo-password")
DEMO_PROFILE = {"first_name": "Teto", "last_name": "Kasane"}

DEMO_KPIS = [
    {
        "metric_name": "Monthly Revenue",
        "value": 45000,
        "target": 50000,
        "unit": "currency",
        "category": "Revenue",
        "change_percent": 12.5,
    },
    {
        "metric_name": "Conversion Rate",
        "value": 3.2,
        "target": 4.0,
        "unit": "percentage",
        "category": "Marketing",
        "change_percent": 8.3,
    },
    {
        "metric_name": "Average Order Value",
        "value": 85,
        "target": 90,
        "unit": "currency",
        "category": "Sales",
        "change_percent": -2.1,
    },
]

# (platform, store name, hours since last successful sync)
DEMO_INTEGRATIONS = [
    ("shopify", "Teto's Shopify Store", 2),
    ("etsy", "Teto's Etsy Shop", 24),
]


def _signed_in_client(db, feed: ChangeFeed) -> HostedClient:
    client = HostedClient(db, feed)
    try:
        client.auth.sign_in(DEMO_EMAIL, DEMO_PASSWORD)
        logger.info("[SEED] Demo user exists, signed in")
    except AuthApiError:
        client.auth.sign_up(DEMO_EMAIL, DEMO_PASSWORD, metadata=DEMO_PROFILE)
        logger.info("[SEED] Created demo user %s", DEMO_EMAIL)
    return client


def seed_demo(now: Optional[datetime] = None) -> str:
    """Seed the demo account. Returns the demo user's id."""
    now = now or datetime.utcnow()
    init_db()

    with get_sync_session() as db:
        client = _signed_in_client(db, ChangeFeed())
        user = client.auth.get_user()

        kpis = KpiQueries(client)
        if not kpis.list(limit=1):
            for offset, fields in enumerate(DEMO_KPIS):
                kpis.create(KpiDataInsert(**fields, recorded_at=now - timedelta(minutes=offset)))
            logger.info("[SEED] Created %d KPIs", len(DEMO_KPIS))

        integrations = IntegrationQueries(client)
        if not integrations.list():
            for platform, store_name, hours_ago in DEMO_INTEGRATIONS:
                row = integrations.create(IntegrationInsert(platform=platform, store_name=store_name))
                record_sync(client, row.id, "success", now=now - timedelta(hours=hours_ago))
            logger.info("[SEED] Created %d integrations", len(DEMO_INTEGRATIONS))

        return str(user.id)


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    user_id = seed_demo()
    print(f"Seeded demo account {DEMO_EMAIL} (user {user_id})")


if __name__ == "__main__":
    main()
